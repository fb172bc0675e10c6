"""
Request models for BYOS credentials, the AI coach and prompt generation.

The front-end posts camelCase keys for these endpoints; aliases map
them onto snake_case attributes and `populate_by_name` lets tests use
either spelling.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CredentialCreate(BaseModel):
    provider: Optional[str] = None
    credential_type: Optional[str] = Field(default=None, alias="credentialType")
    credentials: Optional[str] = None

    model_config = {"populate_by_name": True}


class CoachMessage(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class CoachRequest(BaseModel):
    """
    Body of POST /api/coach.

    Attributes:
        messages: Conversation so far; the last entry is the new question
        cycle_id: Persist the exchange against this cycle and read its data
        cycle: Cycle snapshot from the client, used when no cycle_id is sent
        current_step: Step the learner is on
    """
    messages: List[CoachMessage] = Field(default_factory=list)
    cycle_id: Optional[str] = None
    cycle: Optional[Dict[str, Any]] = None
    current_step: int = Field(default=1, alias="currentStep", ge=1, le=9)

    model_config = {"populate_by_name": True}


class ValueAssessmentInput(BaseModel):
    desperate_user_score: Optional[int] = Field(default=None, alias="desperateUserScore")
    criteria: Optional[Dict[str, Any]] = None
    evidence: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}


class GeneratePromptsRequest(BaseModel):
    workflow_type: Optional[str] = Field(default=None, alias="workflowType")
    problem_statement: Optional[str] = Field(default=None, alias="problemStatement")
    frequency: Optional[str] = None
    pain_level: Optional[int] = Field(default=None, alias="painLevel")
    current_solution: Optional[str] = Field(default=None, alias="currentSolution")
    primary_users: Optional[str] = Field(default=None, alias="primaryUsers")
    when: Optional[str] = None
    value_assessment: Optional[ValueAssessmentInput] = Field(default=None, alias="valueAssessment")
    custom_workflow_description: Optional[str] = Field(default=None, alias="customWorkflowDescription")

    model_config = {"populate_by_name": True}
