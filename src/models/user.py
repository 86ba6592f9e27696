"""User models - accounts that act as admins and agents."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Account roles."""
    USER = "user"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Account statuses."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    BANNED = "banned"


class User(BaseModel):
    """Account record read by the authorization gate."""
    id: str = Field(..., description="User ID (text)")
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE


class AgentSummary(BaseModel):
    """Agent fields denormalized into appointment responses."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
