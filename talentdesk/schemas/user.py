"""
TalentDesk Backend: Auth and User Schemas
=========================================

Request bodies for login, invitations and user management, and the user
representations returned by /api/auth and /api/users.
"""

import re
import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from talentdesk.permissions import Role


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class LoginRequest(BaseModel):
    email: EmailStr = Field(description="Account email (case-insensitive)")
    password: str = Field(min_length=1, max_length=256)


class UserUpdateRequest(BaseModel):
    """Only the fields present in the body are applied."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[Role] = None


class InviteRequest(BaseModel):
    """
    OWNER cannot be granted through an invitation; promote an existing user
    instead (owners only).
    """
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=100)
    role: Literal["ADMIN", "RECRUITER", "VIEWER"] = "RECRUITER"
    pipeline_ids: Optional[List[uuid.UUID]] = Field(
        default=None,
        description="Pipelines the user may see; replaces existing assignments when given",
    )


class AcceptInviteRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        """At least one uppercase letter, one lowercase letter and one digit."""
        if not re.search(r"[A-Z]", v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", v):
            raise ValueError("Password must contain at least one lowercase letter")
        if not re.search(r"[0-9]", v):
            raise ValueError("Password must contain at least one number")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    name: Optional[str] = None
    role: str
    invited_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    created_at: datetime
    pipeline_ids: List[uuid.UUID] = Field(
        default_factory=list,
        description="Assigned pipelines (only meaningful for RECRUITER and VIEWER)",
    )

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    token: str = Field(description="Signed session token; also set as an HttpOnly cookie")
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse
    permissions: List[str]


class UserStats(BaseModel):
    total: int
    active: int = Field(description="Activated accounts")
    pending: int = Field(description="Invited, not yet activated")


class UserListResponse(BaseModel):
    users: List[UserResponse]
    stats: UserStats


class InvitedUser(BaseModel):
    id: uuid.UUID
    email: str
    name: Optional[str] = None
    role: str

    model_config = {"from_attributes": True}


class InviteResponse(BaseModel):
    success: bool = True
    user: InvitedUser
    email_sent: bool = Field(description="False when the invitation email could not be delivered")


class InviteCheckResponse(BaseModel):
    valid: bool
    email: str
    name: Optional[str] = None


class AcceptInviteResponse(BaseModel):
    success: bool = True
    message: str
