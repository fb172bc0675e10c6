"""
Database Models - SQLAlchemy ORM models for the studio.

This module defines the schema for:
- Identity: institutions, users, provider credentials
- Events and their admins
- Flywheel cycles and one table per step
- Coach conversations
- Admin back-office: activity log, impersonation log, notes, reviews
- Problem bank and everything that hangs off a banked problem
- The incubation (NIF) pipeline
"""
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SerializerMixin:
    """
    Adds to_dict() over the mapped columns.

    Keys are the database column names, so a Python attribute renamed to
    avoid a clash (e.g. `extra_data` for `metadata`) still serializes under
    its column name. Datetimes become ISO strings.
    """
    __hidden_fields__: Iterable[str] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for attr in self.__mapper__.column_attrs:
            name = attr.columns[0].name
            if name in self.__hidden_fields__:
                continue
            data[name] = _serialize(getattr(self, attr.key))
        return data


# ============================================================
# Identity
# ============================================================

class Institution(SerializerMixin, Base):
    __tablename__ = "institutions"

    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    short_name = Column(String(50), nullable=False)
    type = Column(String(20), nullable=False, default="college")  # college | school | external
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class User(SerializerMixin, Base):
    """
    A learner, facilitator or admin.

    Google sign-in users have no password_hash; accounts created by a
    superadmin sign in with email and password.
    """
    __tablename__ = "users"
    __hidden_fields__ = ("password_hash",)

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    avatar_url = Column(Text, nullable=True)
    institution_id = Column(String(36), ForeignKey("institutions.id", ondelete="SET NULL"), nullable=True)
    department = Column(String(255), nullable=True)
    year_of_study = Column(Integer, nullable=True)
    role = Column(String(30), nullable=False, default="learner")
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    language = Column(String(5), nullable=False, default="en")
    active_event_id = Column(
        String(36),
        ForeignKey("events.id", ondelete="SET NULL", use_alter=True, name="fk_users_active_event_id"),
        nullable=True,
    )
    password_hash = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    institution = relationship("Institution", foreign_keys=[institution_id])
    active_event = relationship("Event", foreign_keys=[active_event_id])

    def brief(self) -> Dict[str, Any]:
        """The {id, name, email} shape embedded in other responses."""
        return {"id": self.id, "name": self.name, "email": self.email}


class ProviderCredential(SerializerMixin, Base):
    """Encrypted BYOS credentials, one row per user and provider."""
    __tablename__ = "provider_credentials"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_provider_credentials_user_provider"),)
    __hidden_fields__ = ("credentials_encrypted",)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(20), nullable=False)  # claude | gemini
    credentials_encrypted = Column(Text, nullable=False)
    credential_type = Column(String(20), nullable=False)  # token | oauth_json
    is_valid = Column(Boolean, nullable=False, default=False)
    last_validated_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class InstitutionChangeRequest(SerializerMixin, Base):
    __tablename__ = "institution_change_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    from_institution_id = Column(String(36), ForeignKey("institutions.id", ondelete="SET NULL"), nullable=True)
    to_institution_id = Column(String(36), ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending | approved | rejected
    reason = Column(Text, nullable=True)
    reviewed_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id])
    from_institution = relationship("Institution", foreign_keys=[from_institution_id])
    to_institution = relationship("Institution", foreign_keys=[to_institution_id])


# ============================================================
# Events
# ============================================================

class Event(SerializerMixin, Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    banner_color = Column(String(30), nullable=True, default="amber")
    config = Column(JSON, nullable=True, default=dict)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    admins = relationship("EventAdmin", back_populates="event", cascade="all, delete-orphan")


class EventAdmin(SerializerMixin, Base):
    __tablename__ = "event_admins"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_admins_event_user"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False, default="admin")  # admin | reviewer | viewer
    assigned_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    event = relationship("Event", back_populates="admins")
    user = relationship("User", foreign_keys=[user_id])


# ============================================================
# Flywheel cycles and step data
# ============================================================

_STEP_CASCADE = "all, delete-orphan"


class Cycle(SerializerMixin, Base):
    """One pass through the flywheel by one user."""
    __tablename__ = "cycles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active | completed | abandoned
    current_step = Column(Integer, nullable=False, default=1)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    impact_score = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id])
    event = relationship("Event", foreign_keys=[event_id])

    problem = relationship("Problem", uselist=False, cascade=_STEP_CASCADE, back_populates="cycle")
    context = relationship("Context", uselist=False, cascade=_STEP_CASCADE, back_populates="cycle")
    value_assessment = relationship("ValueAssessment", uselist=False, cascade=_STEP_CASCADE)
    workflow_classification = relationship("WorkflowClassification", uselist=False, cascade=_STEP_CASCADE)
    prompt = relationship("Prompt", uselist=False, cascade=_STEP_CASCADE)
    build = relationship("Build", uselist=False, cascade=_STEP_CASCADE)
    appathon_submission = relationship("AppathonSubmission", uselist=False, cascade=_STEP_CASCADE)
    impact_assessment = relationship("ImpactAssessment", uselist=False, cascade=_STEP_CASCADE)
    conversations = relationship("Conversation", cascade=_STEP_CASCADE)
    admin_notes = relationship("AdminCycleNote", cascade=_STEP_CASCADE)
    review = relationship("CycleReview", uselist=False, cascade=_STEP_CASCADE)


class Problem(SerializerMixin, Base):
    __tablename__ = "problems"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    q_takes_too_long = Column(Text, nullable=True)
    q_repetitive = Column(Text, nullable=True)
    q_lookup_repeatedly = Column(Text, nullable=True)
    q_complaints = Column(Text, nullable=True)
    q_would_pay = Column(Text, nullable=True)
    selected_question = Column(Text, nullable=True)
    refined_statement = Column(Text, nullable=True)
    pain_level = Column(Integer, nullable=True)
    frequency = Column(String(20), nullable=True)  # daily | weekly | monthly | occasional
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    cycle = relationship("Cycle", back_populates="problem")

    QUESTION_FIELDS = ("q_takes_too_long", "q_repetitive", "q_lookup_repeatedly", "q_complaints", "q_would_pay")

    def has_any_answer(self) -> bool:
        return any(getattr(self, field) for field in self.QUESTION_FIELDS)


class Context(SerializerMixin, Base):
    """Who has the problem, when it strikes and how much it hurts."""
    __tablename__ = "contexts"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    primary_users = Column(Text, nullable=True)
    secondary_users = Column(Text, nullable=True)
    estimated_count = Column(Integer, nullable=True)
    frequency = Column(String(20), nullable=True)
    specific_trigger = Column(Text, nullable=True)
    where_occurs = Column(Text, nullable=True)
    problem_description = Column(Text, nullable=True)
    duration = Column(String(100), nullable=True)
    pain_level = Column(Integer, nullable=True)
    impact_if_unsolved = Column(Text, nullable=True)
    current_workaround = Column(Text, nullable=True)
    time_on_workaround = Column(String(100), nullable=True)
    workaround_satisfaction = Column(Integer, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    cycle = relationship("Cycle", back_populates="context")
    interviews = relationship(
        "Interview",
        cascade="all, delete-orphan",
        order_by="Interview.conducted_at",
    )


class Interview(SerializerMixin, Base):
    __tablename__ = "interviews"

    id = Column(String(36), primary_key=True, default=_uuid)
    context_id = Column(String(36), ForeignKey("contexts.id", ondelete="CASCADE"), nullable=False)
    interviewee_name = Column(String(255), nullable=True)
    interviewee_role = Column(String(255), nullable=True)
    key_quote = Column(Text, nullable=True)
    pain_level = Column(Integer, nullable=True)
    referrals = Column(JSON, nullable=True, default=list)
    notes = Column(Text, nullable=True)
    conducted_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ValueAssessment(SerializerMixin, Base):
    """Desperate User Test answers and the derived score."""
    __tablename__ = "value_assessments"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    multiple_have_it = Column(Boolean, nullable=True)
    multiple_have_it_evidence = Column(Text, nullable=True)
    complained_before = Column(Boolean, nullable=True)
    complained_before_evidence = Column(Text, nullable=True)
    doing_something = Column(Boolean, nullable=True)
    doing_something_evidence = Column(Text, nullable=True)
    light_up_at_solution = Column(Boolean, nullable=True)
    light_up_evidence = Column(Text, nullable=True)
    ask_when_can_use = Column(Boolean, nullable=True)
    ask_when_evidence = Column(Text, nullable=True)
    desperate_user_score = Column(Integer, nullable=True)
    quadrant = Column(String(20), nullable=True)
    decision = Column(String(20), nullable=True)
    reasoning = Column(Text, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class WorkflowClassification(SerializerMixin, Base):
    __tablename__ = "workflow_classifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    workflow_type = Column(String(30), nullable=True)
    classification_path = Column(JSON, nullable=True)
    confidence = Column(String(10), nullable=True)  # high | medium | low
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Prompt(SerializerMixin, Base):
    __tablename__ = "prompts"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    generated_prompt = Column(Text, nullable=True)
    user_edited_prompt = Column(Text, nullable=True)
    final_prompt = Column(Text, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Build(SerializerMixin, Base):
    """Shared by the Building and Deployment steps."""
    __tablename__ = "builds"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    lovable_project_url = Column(Text, nullable=True)
    deployed_url = Column(Text, nullable=True)
    screenshot_urls = Column(JSON, nullable=True, default=list)
    notes = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AppathonSubmission(SerializerMixin, Base):
    __tablename__ = "appathon_submissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    participation_type = Column(String(20), nullable=True)  # individual | team
    team_name = Column(String(255), nullable=True)
    team_members = Column(JSON, nullable=True, default=list)
    applicant_name = Column(String(255), nullable=True)
    applicant_email = Column(String(255), nullable=True)
    app_name = Column(String(255), nullable=True)
    problem_statement = Column(Text, nullable=True)
    solution_summary = Column(Text, nullable=True)
    live_url = Column(Text, nullable=True)
    lovable_url = Column(Text, nullable=True)
    github_url = Column(Text, nullable=True)
    demo_video_url = Column(Text, nullable=True)
    elevator_pitch = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)
    impact_metrics = Column(JSON, nullable=True, default=dict)
    status = Column(String(20), nullable=False, default="draft")
    submitted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ImpactAssessment(SerializerMixin, Base):
    __tablename__ = "impact_assessments"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    total_users = Column(Integer, nullable=True)
    potential_users = Column(Integer, nullable=True)
    adoption_rate = Column(Float, nullable=True)
    weekly_active_users = Column(Integer, nullable=True)
    returning_users = Column(Integer, nullable=True)
    retention_rate = Column(Float, nullable=True)
    pain_before = Column(Integer, nullable=True)
    pain_after = Column(Integer, nullable=True)
    time_before = Column(String(100), nullable=True)
    time_after = Column(String(100), nullable=True)
    time_saved_minutes = Column(Integer, nullable=True)
    referral_users = Column(Integer, nullable=True)
    referral_rate = Column(Float, nullable=True)
    nps_score = Column(Integer, nullable=True)
    impact_score = Column(Integer, nullable=True)
    new_problems_discovered = Column(JSON, nullable=True, default=list)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# ============================================================
# Coach conversations
# ============================================================

class Conversation(SerializerMixin, Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    step = Column(Integer, nullable=False, default=1)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )


class Message(SerializerMixin, Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False)  # user | assistant | system
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")


# ============================================================
# Admin back-office
# ============================================================

class AdminActivityLog(SerializerMixin, Base):
    __tablename__ = "admin_activity_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    admin_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=True)
    details = Column(JSON, nullable=True, default=dict)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    admin = relationship("User", foreign_keys=[admin_id])


class ImpersonationLog(SerializerMixin, Base):
    __tablename__ = "impersonation_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    admin_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    target_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(10), nullable=False)  # start | end
    reason = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AdminCycleNote(SerializerMixin, Base):
    __tablename__ = "admin_cycle_notes"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), nullable=False)
    admin_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    admin = relationship("User", foreign_keys=[admin_id])


class CycleReview(SerializerMixin, Base):
    __tablename__ = "cycle_reviews"

    id = Column(String(36), primary_key=True, default=_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), unique=True, nullable=False)
    reviewer_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    reviewer = relationship("User", foreign_keys=[reviewer_id])


# ============================================================
# Problem bank
# ============================================================

_PROBLEM_CASCADE = "all, delete-orphan"


class ProblemBankEntry(SerializerMixin, Base):
    """A problem saved for others to attempt."""
    __tablename__ = "problem_bank"

    id = Column(String(36), primary_key=True, default=_uuid)

    original_cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="SET NULL"), nullable=True)
    source_type = Column(String(20), nullable=False, default="manual")
    source_year = Column(Integer, nullable=False, default=lambda: datetime.utcnow().year)
    source_event = Column(String(255), nullable=True)

    title = Column(String(200), nullable=False)
    problem_statement = Column(Text, nullable=False)
    theme = Column(String(30), nullable=True, default="other")
    sub_theme = Column(String(255), nullable=True)

    who_affected = Column(Text, nullable=True)
    when_occurs = Column(Text, nullable=True)
    where_occurs = Column(Text, nullable=True)
    frequency = Column(String(20), nullable=True)
    severity_rating = Column(Integer, nullable=True)
    current_workaround = Column(Text, nullable=True)

    validation_status = Column(String(30), nullable=False, default="unvalidated")
    users_interviewed = Column(Integer, nullable=False, default=0)
    desperate_user_count = Column(Integer, nullable=False, default=0)
    desperate_user_score = Column(Integer, nullable=True)

    institution_id = Column(String(36), ForeignKey("institutions.id", ondelete="SET NULL"), nullable=True)
    department = Column(String(255), nullable=True)
    submitted_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    status = Column(String(20), nullable=False, default="open")
    is_open_for_attempts = Column(Boolean, nullable=False, default=True)

    best_solution_cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="SET NULL"), nullable=True)
    best_solution_url = Column(Text, nullable=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True)

    extra_data = Column("metadata", JSON, nullable=True, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    institution = relationship("Institution", foreign_keys=[institution_id])
    submitter = relationship("User", foreign_keys=[submitted_by])

    attempts = relationship("ProblemAttempt", cascade=_PROBLEM_CASCADE, back_populates="problem")
    tags = relationship("ProblemTag", cascade=_PROBLEM_CASCADE)
    evidence = relationship("ProblemEvidence", cascade=_PROBLEM_CASCADE)
    refinements = relationship("AIRefinement", cascade=_PROBLEM_CASCADE)
    evolution = relationship("ProblemEvolution", cascade=_PROBLEM_CASCADE)
    outcomes = relationship("ProblemOutcome", cascade=_PROBLEM_CASCADE)
    scores = relationship("ProblemScore", cascade=_PROBLEM_CASCADE)
    cluster_memberships = relationship("ProblemClusterMember", cascade=_PROBLEM_CASCADE, back_populates="problem")
    case_studies = relationship("CaseStudy", cascade=_PROBLEM_CASCADE, back_populates="problem")
    nif_candidate = relationship("NifCandidate", uselist=False, cascade=_PROBLEM_CASCADE, back_populates="problem")


class ProblemAttempt(SerializerMixin, Base):
    __tablename__ = "problem_attempts"

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    team_name = Column(String(255), nullable=True)
    outcome = Column(String(20), nullable=True)  # building | deployed | abandoned | success | partial
    outcome_notes = Column(Text, nullable=True)
    users_reached = Column(Integer, nullable=False, default=0)
    impact_score = Column(Integer, nullable=True)
    app_url = Column(Text, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    problem = relationship("ProblemBankEntry", back_populates="attempts")
    user = relationship("User", foreign_keys=[user_id])


class ProblemTag(SerializerMixin, Base):
    __tablename__ = "problem_tags"

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    tag = Column(String(100), nullable=False)
    tag_type = Column(String(30), nullable=False, default="keyword")
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ProblemEvidence(SerializerMixin, Base):
    __tablename__ = "problem_evidence"

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    evidence_type = Column(String(20), nullable=False)  # interview | survey | observation | testimonial | metric | quote
    content = Column(Text, nullable=False)
    source_name = Column(String(255), nullable=True)
    source_role = Column(String(255), nullable=True)
    pain_level = Column(Integer, nullable=True)
    collected_at = Column(DateTime, nullable=True)
    collected_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AIRefinement(SerializerMixin, Base):
    __tablename__ = "ai_refinements"

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    refinement_type = Column(String(30), nullable=False)
    original_statement = Column(Text, nullable=False)
    suggested_statement = Column(Text, nullable=False)
    refinement_reason = Column(Text, nullable=True)
    based_on = Column(String(30), nullable=True)
    confidence_score = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending | accepted | rejected | modified
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ProblemEvolution(SerializerMixin, Base):
    __tablename__ = "problem_evolution"

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    version = Column(Integer, nullable=False)
    previous_statement = Column(Text, nullable=True)
    new_statement = Column(Text, nullable=False)
    change_reason = Column(String(100), nullable=True)
    changed_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ProblemOutcome(SerializerMixin, Base):
    __tablename__ = "problem_outcomes"

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    attempt_id = Column(String(36), ForeignKey("problem_attempts.id", ondelete="SET NULL"), nullable=True)
    outcome_type = Column(String(20), nullable=False)
    outcome_description = Column(Text, nullable=True)
    time_to_solution_days = Column(Integer, nullable=True)
    iterations_count = Column(Integer, nullable=False, default=1)
    user_adoption_rate = Column(Float, nullable=True)
    satisfaction_score = Column(Float, nullable=True)
    users_impacted = Column(Integer, nullable=False, default=0)
    time_saved_hours = Column(Float, nullable=False, default=0)
    cost_saved = Column(Float, nullable=False, default=0)
    revenue_generated = Column(Float, nullable=False, default=0)
    what_worked = Column(Text, nullable=True)
    what_didnt_work = Column(Text, nullable=True)
    key_insights = Column(JSON, nullable=True, default=list)
    recommendations = Column(JSON, nullable=True, default=list)
    recorded_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    recorder = relationship("User", foreign_keys=[recorded_by])
    attempt = relationship("ProblemAttempt", foreign_keys=[attempt_id])


class ProblemScore(SerializerMixin, Base):
    __tablename__ = "problem_scores"
    __table_args__ = (
        UniqueConstraint("problem_id", "scored_by", "scored_by_user", name="uq_problem_scores_scorer"),
    )

    DIMENSIONS = (
        "severity_score",
        "validation_score",
        "uniqueness_score",
        "feasibility_score",
        "impact_potential_score",
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    severity_score = Column(Integer, nullable=True)
    validation_score = Column(Integer, nullable=True)
    uniqueness_score = Column(Integer, nullable=True)
    feasibility_score = Column(Integer, nullable=True)
    impact_potential_score = Column(Integer, nullable=True)
    composite_score = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    scored_by = Column(String(20), nullable=False, default="manual")
    scored_by_user = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ProblemSimilarity(SerializerMixin, Base):
    """Pairwise similarity, stored once per pair with problem_id_a < problem_id_b."""
    __tablename__ = "problem_similarities"
    __table_args__ = (UniqueConstraint("problem_id_a", "problem_id_b", name="uq_problem_similarities_pair"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id_a = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    problem_id_b = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    similarity_score = Column(Float, nullable=False)
    similarity_type = Column(String(20), nullable=False, default="keyword")
    algorithm_version = Column(String(20), nullable=True)
    computed_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ProblemCluster(SerializerMixin, Base):
    __tablename__ = "problem_clusters"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    primary_theme = Column(String(30), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    problem_count = Column(Integer, nullable=False, default=0)
    avg_severity = Column(Float, nullable=True)
    cross_institutional = Column(Boolean, nullable=False, default=False)
    institutions_count = Column(Integer, nullable=False, default=0)
    ai_summary = Column(Text, nullable=True)
    key_patterns = Column(JSON, nullable=True, default=list)
    suggested_actions = Column(JSON, nullable=True, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    members = relationship("ProblemClusterMember", cascade="all, delete-orphan", back_populates="cluster")


class ProblemClusterMember(SerializerMixin, Base):
    __tablename__ = "problem_cluster_members"
    __table_args__ = (UniqueConstraint("cluster_id", "problem_id", name="uq_cluster_members_pair"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    cluster_id = Column(String(36), ForeignKey("problem_clusters.id", ondelete="CASCADE"), nullable=False)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    membership_score = Column(Float, nullable=False, default=1.0)
    is_centroid = Column(Boolean, nullable=False, default=False)
    added_by = Column(String(20), nullable=False, default="manual")  # manual | auto
    added_by_user = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    cluster = relationship("ProblemCluster", back_populates="members")
    problem = relationship("ProblemBankEntry", foreign_keys=[problem_id], back_populates="cluster_memberships")


class CaseStudy(SerializerMixin, Base):
    __tablename__ = "case_studies"

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), nullable=False)
    attempt_id = Column(String(36), ForeignKey("problem_attempts.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    summary = Column(Text, nullable=True)
    full_content = Column(Text, nullable=True)
    problem_section = Column(Text, nullable=True)
    approach_section = Column(Text, nullable=True)
    solution_section = Column(Text, nullable=True)
    impact_section = Column(Text, nullable=True)
    lessons_section = Column(Text, nullable=True)
    target_audience = Column(JSON, nullable=True, default=list)
    difficulty_level = Column(String(20), nullable=False, default="intermediate")
    estimated_read_time_minutes = Column(Integer, nullable=False, default=10)
    related_problems = Column(JSON, nullable=True, default=list)
    external_references = Column(JSON, nullable=True, default=list)
    media_urls = Column(JSON, nullable=True, default=list)
    status = Column(String(20), nullable=False, default="draft")  # draft | review | published | archived
    view_count = Column(Integer, nullable=False, default=0)
    published_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    problem = relationship("ProblemBankEntry", foreign_keys=[problem_id], back_populates="case_studies")
    attempt = relationship("ProblemAttempt", foreign_keys=[attempt_id])
    author = relationship("User", foreign_keys=[created_by])


# ============================================================
# Incubation pipeline
# ============================================================

class NifCandidate(SerializerMixin, Base):
    """A banked problem being considered for incubation as a startup."""
    __tablename__ = "nif_candidates"

    id = Column(String(36), primary_key=True, default=_uuid)
    problem_id = Column(String(36), ForeignKey("problem_bank.id", ondelete="CASCADE"), unique=True, nullable=False)
    stage = Column(String(20), nullable=False, default="identified")
    decision_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    startup_name = Column(String(255), nullable=True)
    startup_status = Column(String(50), nullable=True)
    startup_website = Column(Text, nullable=True)
    team_members = Column(JSON, nullable=True, default=list)
    funding_stage = Column(String(50), nullable=True)
    funding_amount = Column(Float, nullable=True)
    jobs_created = Column(Integer, nullable=False, default=0)
    revenue_generated = Column(Float, nullable=False, default=0)
    identified_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    identified_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    screened_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    shortlisted_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    graduated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    problem = relationship("ProblemBankEntry", foreign_keys=[problem_id], back_populates="nif_candidate")
    history = relationship(
        "NifStageHistory",
        cascade="all, delete-orphan",
        order_by="NifStageHistory.created_at.desc()",
    )


class NifStageHistory(SerializerMixin, Base):
    __tablename__ = "nif_stage_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    candidate_id = Column(String(36), ForeignKey("nif_candidates.id", ondelete="CASCADE"), nullable=False)
    from_stage = Column(String(20), nullable=True)
    to_stage = Column(String(20), nullable=False)
    changed_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
