"""
Cycle Service - Walking a learner through the flywheel.

A cycle owns one row per step table. Saving a step upserts that row;
completing it checks the step's required fields and moves the cycle
forward. Derived values are computed here, never trusted from the client:
- Value Discovery: desperate user score, quadrant and decision
- Impact Discovery: impact score (copied onto the cycle on completion)
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime

from studio.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.database.connection import get_database
from studio.database.models import (
    AppathonSubmission,
    Build,
    Context,
    Cycle,
    ImpactAssessment,
    Interview,
    Problem,
    Prompt,
    ValueAssessment,
    WorkflowClassification,
)
from studio.flywheel.methodology import can_access_step, get_methodology_for_cycle
from studio.flywheel.scoring import calculate_impact_score, is_valid_workflow_type, score_desperate_users
from studio.flywheel.templates import generate_lovable_prompt
from studio.services.auth_service import CurrentUser
from studio.services.event_service import check_event_admin_access

CYCLE_STATUSES = ("active", "completed", "abandoned")

# data_table -> (model, Cycle relationship)
STEP_TABLES = {
    "problems": (Problem, "problem"),
    "contexts": (Context, "context"),
    "value_assessments": (ValueAssessment, "value_assessment"),
    "workflow_classifications": (WorkflowClassification, "workflow_classification"),
    "prompts": (Prompt, "prompt"),
    "builds": (Build, "build"),
    "appathon_submissions": (AppathonSubmission, "appathon_submission"),
    "impact_assessments": (ImpactAssessment, "impact_assessment"),
}

PROTECTED_COLUMNS = {"id", "cycle_id", "created_at", "updated_at", "completed"}

# Server-side values the client may not set
DERIVED_COLUMNS = {
    "value_assessments": {"desperate_user_score", "quadrant", "decision"},
    "impact_assessments": {"impact_score"},
    "appathon_submissions": {"user_id", "event_id", "status"},
}


def _parse_datetime(value: Any) -> Any:
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Invalid date: {value}") from e
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return value


def _assign_columns(row: Any, data: Dict[str, Any], skip: set) -> None:
    """Copy known columns from `data` onto `row`, parsing ISO dates."""
    for attr in row.__mapper__.column_attrs:
        key = attr.key
        if key in skip or key not in data:
            continue
        value = data[key]
        if isinstance(attr.columns[0].type, DateTime):
            value = _parse_datetime(value)
        setattr(row, key, value)


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def serialize_cycle(cycle: Cycle, include_steps: bool = True) -> Dict[str, Any]:
    """Cycle row plus every step row that exists, keyed by relationship name."""
    data = cycle.to_dict()
    if not include_steps:
        return data

    for _, attr in STEP_TABLES.values():
        row = getattr(cycle, attr)
        data[attr] = row.to_dict() if row is not None else None
    if cycle.context is not None:
        data["context"]["interviews"] = [i.to_dict() for i in cycle.context.interviews]
    return data


class CycleService(LoggerMixin):
    """
    CRUD and step progression for flywheel cycles.

    Example:
        >>> service = CycleService()
        >>> cycle = service.create(user, "Hostel water complaints")
        >>> service.save_step(user, cycle["id"], 1, {"selected_question": "..."}, complete=True)
    """

    def _load(self, session, user: CurrentUser, cycle_id: str, write: bool = False) -> Cycle:
        cycle = session.get(Cycle, cycle_id)
        if cycle is None:
            raise NotFoundError("Cycle not found")
        if cycle.user_id == user.id:
            return cycle
        if not write:
            if user.is_superadmin:
                return cycle
            if cycle.event_id and check_event_admin_access(user, cycle.event_id, session)[0]:
                return cycle
        # Other people's cycles are invisible rather than forbidden
        raise NotFoundError("Cycle not found")

    def list_for_user(self, user: CurrentUser) -> List[Dict[str, Any]]:
        with get_database().get_session() as session:
            cycles = (
                session.query(Cycle)
                .filter(Cycle.user_id == user.id)
                .order_by(Cycle.created_at.desc())
                .all()
            )
            return [serialize_cycle(c, include_steps=False) for c in cycles]

    def create(self, user: CurrentUser, name: Optional[str] = None) -> Dict[str, Any]:
        with get_database().get_session() as session:
            cycle = Cycle(
                user_id=user.id,
                event_id=user.active_event_id,
                name=name or "Untitled Cycle",
                status="active",
                current_step=1,
            )
            session.add(cycle)
            session.flush()
            self.logger.info(f"Cycle {cycle.id} created by {user.id}")
            return serialize_cycle(cycle, include_steps=False)

    def get(self, user: CurrentUser, cycle_id: str) -> Dict[str, Any]:
        with get_database().get_session() as session:
            cycle = self._load(session, user, cycle_id)
            data = serialize_cycle(cycle)
            data["methodology"] = get_methodology_for_cycle(cycle).to_dict()
            return data

    def update(
        self,
        user: CurrentUser,
        cycle_id: str,
        name: Optional[str] = None,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        if status is not None and status not in CYCLE_STATUSES:
            raise ValidationError("Invalid status", field="status")

        with get_database().get_session() as session:
            cycle = self._load(session, user, cycle_id, write=True)
            if name is not None:
                cycle.name = name
            if status is not None:
                cycle.status = status
                if status == "completed" and cycle.completed_at is None:
                    cycle.completed_at = datetime.utcnow()
            session.flush()
            return serialize_cycle(cycle, include_steps=False)

    def delete(self, user: CurrentUser, cycle_id: str) -> None:
        with get_database().get_session() as session:
            cycle = self._load(session, user, cycle_id, write=True)
            session.delete(cycle)
        self.logger.info(f"Cycle {cycle_id} deleted by {user.id}")

    # ============================================================
    # Steps
    # ============================================================

    def save_step(
        self,
        user: CurrentUser,
        cycle_id: str,
        step: int,
        data: Dict[str, Any],
        complete: bool = False,
        interviews: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Upsert one step's row and optionally complete the step.

        Raises:
            ValidationError: Unknown step, bad workflow type or missing required fields
            ForbiddenError: The step is beyond the cycle's current step
        """
        with get_database().get_session() as session:
            cycle = self._load(session, user, cycle_id, write=True)
            methodology = get_methodology_for_cycle(cycle)

            step_def = methodology.get_step(step)
            if step_def is None:
                raise ValidationError("Invalid step", field="step")
            if not can_access_step(step, cycle.current_step):
                raise ForbiddenError("Complete the previous steps first")

            model, attr = STEP_TABLES[step_def.data_table]
            row = getattr(cycle, attr)
            if row is None:
                row = model(cycle_id=cycle.id)
                setattr(cycle, attr, row)

            skip = PROTECTED_COLUMNS | DERIVED_COLUMNS.get(step_def.data_table, set())
            _assign_columns(row, data, skip)
            self._apply_step_rules(step_def.data_table, cycle, row, interviews, complete)

            if complete:
                missing = [f for f in step_def.required_fields if _is_blank(getattr(row, f, None))]
                if missing:
                    raise ValidationError(f"Missing required fields: {', '.join(missing)}")
                self._complete_step(cycle, row, step, methodology.completion_step)

            session.flush()
            self.logger.info(
                f"Cycle {cycle.id} step {step} saved (complete={complete}, current_step={cycle.current_step})"
            )

            result = serialize_cycle(cycle)
            result["methodology"] = methodology.to_dict()
            return result

    def _apply_step_rules(
        self,
        table: str,
        cycle: Cycle,
        row: Any,
        interviews: Optional[List[Dict[str, Any]]],
        complete: bool
    ) -> None:
        if table == "value_assessments":
            scored = score_desperate_users({
                "complained_before": row.complained_before,
                "doing_something": row.doing_something,
                "light_up_at_solution": row.light_up_at_solution,
                "ask_when_can_use": row.ask_when_can_use,
                "multiple_have_it": row.multiple_have_it,
            })
            row.desperate_user_score = scored["desperate_user_score"]
            row.quadrant = scored["quadrant"]
            row.decision = scored["decision"]

        elif table == "workflow_classifications":
            if row.workflow_type is not None and not is_valid_workflow_type(row.workflow_type):
                raise ValidationError("Invalid workflow type", field="workflow_type")

        elif table == "impact_assessments":
            if row.time_saved_minutes is not None:
                row.impact_score = calculate_impact_score(row.total_users, row.time_saved_minutes)

        elif table == "contexts" and interviews is not None:
            row.interviews = []
            for item in interviews:
                interview = Interview(referrals=item.get("referrals") or [])
                _assign_columns(interview, item, {"id", "context_id", "referrals"})
                if interview.conducted_at is None:
                    interview.conducted_at = datetime.utcnow()
                row.interviews.append(interview)

        elif table == "builds":
            if row.started_at is None:
                row.started_at = datetime.utcnow()

        elif table == "appathon_submissions":
            row.user_id = cycle.user_id
            row.event_id = cycle.event_id
            if complete and row.submitted_at is None:
                row.submitted_at = datetime.utcnow()
            if row.submitted_at is not None:
                row.status = "submitted"

    def _complete_step(self, cycle: Cycle, row: Any, step: int, completion_step: int) -> None:
        if hasattr(row, "completed"):
            row.completed = True
        if isinstance(row, Build) and row.deployed_url and row.completed_at is None and step >= 7:
            row.completed_at = datetime.utcnow()
        if isinstance(row, ImpactAssessment):
            cycle.impact_score = row.impact_score

        if step == completion_step:
            cycle.status = "completed"
            cycle.completed_at = cycle.completed_at or datetime.utcnow()
        elif step == cycle.current_step:
            cycle.current_step = step + 1

    # ============================================================
    # Lovable prompt
    # ============================================================

    def build_lovable_prompt(self, user: CurrentUser, cycle_id: str) -> Dict[str, Any]:
        """Render the deterministic Lovable prompt and store it on the cycle."""
        with get_database().get_session() as session:
            cycle = self._load(session, user, cycle_id, write=True)
            problem, context = cycle.problem, cycle.context
            workflow = cycle.workflow_classification

            text = generate_lovable_prompt(
                workflow_type=workflow.workflow_type if workflow else None,
                problem_statement=(problem.refined_statement or problem.selected_question) if problem else None,
                frequency=(context.frequency if context else None) or (problem.frequency if problem else None),
                pain_level=(context.pain_level if context else None) or (problem.pain_level if problem else None),
                primary_users=context.primary_users if context else None,
                current_solution=context.current_workaround if context else None,
            )

            if cycle.prompt is None:
                cycle.prompt = Prompt(cycle_id=cycle.id)
            cycle.prompt.generated_prompt = text
            if not cycle.prompt.final_prompt:
                cycle.prompt.final_prompt = text
            session.flush()
            return {"prompt": cycle.prompt.to_dict()}


# Global service instance
_cycle_service: Optional[CycleService] = None


def get_cycle_service() -> CycleService:
    """Get or create the global cycle service."""
    global _cycle_service
    if _cycle_service is None:
        _cycle_service = CycleService()
    return _cycle_service
