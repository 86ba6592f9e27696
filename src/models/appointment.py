"""Appointment model - client visits and consultations booked against a property."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.property import PropertySummary
from src.models.user import AgentSummary


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status. Any status may move to any other."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


# Statuses that hold an agent's time slot
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


class AppointmentType(str, Enum):
    """Appointment types."""
    IN_PERSON = "in-person"
    VIRTUAL = "virtual"
    CONSULTATION = "consultation"
    VALUATION = "valuation"


class AppointmentPriority(str, Enum):
    """Appointment priorities."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Feedback(BaseModel):
    """Client feedback left after a completed appointment."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rating: int = Field(..., ge=1, le=5, description="Rating (1-5)")
    comment: Optional[str] = Field(None, description="Free-form comment")
    submitted_at: Optional[datetime] = None


class FollowUp(BaseModel):
    """Follow-up planned by the agent after the visit."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    required: bool = False
    follow_up_date: Optional[date] = Field(None, alias="date")
    notes: Optional[str] = None


class Appointment(BaseModel):
    """Appointment record as stored in the appointments table.

    Storage rows use snake_case columns; the HTTP surface uses the camelCase
    aliases.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Appointment ID (ULID text)")
    name: str = Field(..., description="Client name")
    email: str = Field(..., description="Client email")
    phone: str = Field(..., description="Client phone")
    property_id: str = Field(..., description="Property ID (text FK)")
    appointment_date: date
    appointment_time: str = Field(..., description="Time of day, HH:MM 24-hour")
    type: AppointmentType = AppointmentType.IN_PERSON
    status: AppointmentStatus = AppointmentStatus.PENDING
    priority: AppointmentPriority = AppointmentPriority.MEDIUM
    notes: Optional[str] = None
    assigned_agent: Optional[str] = Field(None, description="Assigned agent user ID (text FK)")
    meeting_link: Optional[str] = None
    duration: int = Field(default=60, ge=15, le=240, description="Duration in minutes")
    reminder_sent: bool = False
    feedback: Optional[Feedback] = None
    follow_up: FollowUp = Field(default_factory=FollowUp)
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Denormalized summaries, never persisted
    property_info: Optional[PropertySummary] = Field(None, alias="property")
    agent_info: Optional[AgentSummary] = Field(None, alias="agent")

    def to_record(self) -> dict[str, Any]:
        """Serialize for the appointments table."""
        return self.model_dump(mode="json", exclude={"property_info", "agent_info"})
