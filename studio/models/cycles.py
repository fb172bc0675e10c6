"""
Request models for flywheel cycles.

Step payloads stay free-form dicts: each step writes a different table
and the service keeps only the columns that table has.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CycleCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)


class CycleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    status: Optional[str] = None


class InterviewInput(BaseModel):
    interviewee_name: Optional[str] = None
    interviewee_role: Optional[str] = None
    key_quote: Optional[str] = None
    pain_level: Optional[int] = Field(default=None, ge=1, le=10)
    referrals: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    conducted_at: Optional[str] = None


class StepUpdate(BaseModel):
    """
    Body of PUT /api/cycles/{id}/steps/{step}.

    Attributes:
        data: Column values for the step's table
        complete: Mark the step done and advance the cycle
        interviews: Context Discovery only; replaces the stored interviews
    """
    data: Dict[str, Any] = Field(default_factory=dict)
    complete: bool = False
    interviews: Optional[List[InterviewInput]] = None
