"""
Request models for sign-in and the admin back-office.

Fields the handlers validate themselves (with their own 400 messages)
are Optional here, so a missing value reaches the handler instead of
failing as a generic invalid body.
"""
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class CreateUserRequest(BaseModel):
    """Body of POST /api/admin/users."""
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None


class CycleNoteRequest(BaseModel):
    content: Optional[str] = None


class CycleReviewRequest(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None


class ImpersonateRequest(BaseModel):
    target_user_id: Optional[str] = Field(default=None, alias="targetUserId")
    reason: Optional[str] = None

    model_config = {"populate_by_name": True}
