"""Request schemas for the appointment endpoints.

Bodies arrive as camelCase JSON; every schema accepts the field names as
well so services can build them directly.
"""

import re
from datetime import date
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from src.models.appointment import AppointmentPriority, AppointmentStatus, AppointmentType
from src.utils.settings import AppConfig


TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"

# Saudi mobile numbers: +9665XXXXXXXX, 9665XXXXXXXX, 05XXXXXXXX or 5XXXXXXXX
PHONE_PATTERN = r"^(\+?966|0)?5\d{8}$"


def normalize_time(value: str) -> str:
    """Zero-pad the hour so 9:30 and 09:30 name the same slot."""
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


def is_valid_time(value: object) -> bool:
    return isinstance(value, str) and re.match(TIME_PATTERN, value.strip()) is not None


class RequestModel(BaseModel):
    """Base for request bodies."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class AppointmentCreate(RequestModel):
    """Public booking request."""
    name: str = Field(..., min_length=2)
    email: EmailStr
    phone: str = Field(..., pattern=PHONE_PATTERN)
    property_id: str = Field(..., min_length=1)
    appointment_date: date
    appointment_time: str = Field(..., pattern=TIME_PATTERN)
    type: AppointmentType = AppointmentType.IN_PERSON
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("phone", mode="before")
    @classmethod
    def strip_phone_separators(cls, value: object) -> object:
        if isinstance(value, str):
            return re.sub(r"[\s\-()]", "", value)
        return value

    @field_validator("appointment_time")
    @classmethod
    def pad_time(cls, value: str) -> str:
        return normalize_time(value)


class StatusUpdate(RequestModel):
    """Admin status change."""
    status: AppointmentStatus
    cancellation_reason: Optional[str] = Field(None, min_length=5, max_length=200)


class AgentAssignment(RequestModel):
    """Admin agent assignment."""
    assigned_agent: str = Field(..., min_length=1)


class RescheduleRequest(RequestModel):
    """Admin reschedule to a new slot."""
    appointment_date: date
    appointment_time: str = Field(..., pattern=TIME_PATTERN)

    @field_validator("appointment_time")
    @classmethod
    def pad_time(cls, value: str) -> str:
        return normalize_time(value)


class FeedbackCreate(RequestModel):
    """Public feedback on a completed appointment."""
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=5, max_length=500)


SortField = Literal["appointmentDate", "createdAt", "status", "priority"]


class AppointmentListQuery(RequestModel):
    """Query parameters of the admin listing."""
    page: int = Field(1, ge=1)
    limit: int = Field(AppConfig.DEFAULT_PAGE_SIZE, ge=1, le=AppConfig.MAX_PAGE_SIZE)
    search: Optional[str] = None
    status: Optional[AppointmentStatus] = None
    type: Optional[AppointmentType] = None
    priority: Optional[AppointmentPriority] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    sort_by: SortField = "appointmentDate"
    sort_order: Literal["asc", "desc"] = "asc"

    @field_validator("search", "status", "type", "priority", "start_date", "end_date", mode="before")
    @classmethod
    def empty_as_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def check_date_range(self) -> "AppointmentListQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
