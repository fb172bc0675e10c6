"""
Request models for institutions, change requests and events.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class InstitutionCreate(BaseModel):
    slug: Optional[str] = None
    name: Optional[str] = None
    short_name: Optional[str] = None
    type: Optional[str] = None


class InstitutionUpdate(BaseModel):
    slug: Optional[str] = None
    name: Optional[str] = None
    short_name: Optional[str] = None
    type: Optional[str] = None
    is_active: Optional[bool] = None


class SetInstitutionRequest(BaseModel):
    institution_id: Optional[str] = None


class ChangeRequestCreate(BaseModel):
    to_institution_id: Optional[str] = None
    reason: Optional[str] = None


class ChangeRequestAction(BaseModel):
    request_id: Optional[str] = None
    action: Optional[str] = None


class EventCreate(BaseModel):
    """Body of POST /api/events."""
    slug: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    banner_color: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class EventUpdate(BaseModel):
    slug: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    banner_color: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class JoinEventRequest(BaseModel):
    event_id: Optional[str] = Field(default=None, alias="eventId")

    model_config = {"populate_by_name": True}


class EventAdminCreate(BaseModel):
    email: Optional[str] = None
    role: str = "admin"
