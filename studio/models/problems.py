"""
Request models for the problem bank and everything attached to it.

Covers banked problems, attempts, outcomes, refinements, scores,
similarity runs, clusters, case studies and the incubation pipeline.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================
# Problems
# ============================================================

class ProblemCreate(BaseModel):
    """Body of POST /api/problems and POST /api/problems/submit."""
    title: Optional[str] = None
    problem_statement: Optional[str] = None
    theme: Optional[str] = None
    sub_theme: Optional[str] = None
    who_affected: Optional[str] = None
    when_occurs: Optional[str] = None
    where_occurs: Optional[str] = None
    frequency: Optional[str] = None
    severity_rating: Optional[int] = Field(default=None, ge=1, le=10)
    current_workaround: Optional[str] = None
    source_type: Optional[str] = None
    source_event: Optional[str] = None
    validation_status: Optional[str] = None
    status: Optional[str] = None


class ProblemUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    problem_statement: Optional[str] = None
    theme: Optional[str] = None
    sub_theme: Optional[str] = None
    who_affected: Optional[str] = None
    when_occurs: Optional[str] = None
    where_occurs: Optional[str] = None
    frequency: Optional[str] = None
    severity_rating: Optional[int] = Field(default=None, ge=1, le=10)
    current_workaround: Optional[str] = None
    validation_status: Optional[str] = None
    desperate_user_score: Optional[int] = Field(default=None, ge=0, le=5)
    status: Optional[str] = None
    is_open_for_attempts: Optional[bool] = None
    best_solution_url: Optional[str] = None
    department: Optional[str] = None


class FromCycleRequest(BaseModel):
    cycle_id: Optional[str] = None
    source_event: Optional[str] = None


class ForkRequest(BaseModel):
    problem_id: Optional[str] = None


class AttemptCreate(BaseModel):
    team_name: Optional[str] = None
    cycle_id: Optional[str] = None


# ============================================================
# Learning loop
# ============================================================

class OutcomeCreate(BaseModel):
    attempt_id: Optional[str] = None
    outcome_type: Optional[str] = None
    outcome_description: Optional[str] = None
    time_to_solution_days: Optional[int] = None
    iterations_count: int = 1
    user_adoption_rate: Optional[float] = None
    satisfaction_score: Optional[float] = None
    users_impacted: int = 0
    time_saved_hours: float = 0
    cost_saved: float = 0
    revenue_generated: float = 0
    what_worked: Optional[str] = None
    what_didnt_work: Optional[str] = None
    key_insights: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class RefinementCreate(BaseModel):
    refinement_type: str = "clarity"
    based_on: str = "patterns"


class RefinementAction(BaseModel):
    action: Optional[str] = None
    modified_statement: Optional[str] = None


class ScoreCreate(BaseModel):
    """
    Body of POST /api/problems/{id}/score.

    Dimensions are range-checked by the service so the caller gets
    "Scores must be between 1 and 10" instead of a generic body error.
    """
    severity_score: Optional[int] = None
    validation_score: Optional[int] = None
    uniqueness_score: Optional[int] = None
    feasibility_score: Optional[int] = None
    impact_potential_score: Optional[int] = None
    notes: Optional[str] = None
    scored_by: str = "manual"


# ============================================================
# Similarity and clusters
# ============================================================

class ComputeSimilaritiesRequest(BaseModel):
    problem_id: Optional[str] = None
    threshold: float = Field(default=0.3, ge=0, le=1)
    recompute_all: bool = False


class ClusterCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    primary_theme: Optional[str] = None
    problem_ids: List[str] = Field(default_factory=list)


# ============================================================
# Case studies and pipeline
# ============================================================

class CaseStudyCreate(BaseModel):
    problem_id: Optional[str] = None
    attempt_id: Optional[str] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    full_content: Optional[str] = None
    problem_section: Optional[str] = None
    approach_section: Optional[str] = None
    solution_section: Optional[str] = None
    impact_section: Optional[str] = None
    lessons_section: Optional[str] = None
    target_audience: List[str] = Field(default_factory=list)
    difficulty_level: str = "intermediate"
    estimated_read_time_minutes: int = 10
    related_problems: List[str] = Field(default_factory=list)
    external_references: List[Any] = Field(default_factory=list)
    media_urls: List[str] = Field(default_factory=list)


class CaseStudyUpdate(BaseModel):
    title: Optional[str] = None
    summary: Optional[str] = None
    full_content: Optional[str] = None
    problem_section: Optional[str] = None
    approach_section: Optional[str] = None
    solution_section: Optional[str] = None
    impact_section: Optional[str] = None
    lessons_section: Optional[str] = None
    target_audience: Optional[List[str]] = None
    difficulty_level: Optional[str] = None
    estimated_read_time_minutes: Optional[int] = None
    related_problems: Optional[List[str]] = None
    external_references: Optional[List[Any]] = None
    media_urls: Optional[List[str]] = None
    status: Optional[str] = None


class PipelineCreate(BaseModel):
    problem_id: Optional[str] = None
    notes: Optional[str] = None


class PipelineUpdate(BaseModel):
    stage: Optional[str] = None
    decision_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    startup_name: Optional[str] = None
    startup_status: Optional[str] = None
    startup_website: Optional[str] = None
    team_members: Optional[List[Dict[str, Any]]] = None
    funding_stage: Optional[str] = None
    funding_amount: Optional[float] = None
    jobs_created: Optional[int] = None
    revenue_generated: Optional[float] = None
    graduated_at: Optional[datetime] = None
