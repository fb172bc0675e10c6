"""
Methodology registry - which steps a cycle walks through.

Each event may pick a methodology through `event.config.methodology_id`
(or the legacy `appathon_mode` flag). Cycles outside an event use the
plain 8-step flywheel.
"""
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from studio.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MethodologyStep:
    """One step of a methodology and where its data lives."""
    id: int
    name: str
    short_name: str
    description: str
    icon: str
    color: str
    component: str
    data_table: str
    required_fields: Tuple[str, ...] = ()
    optional: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["required_fields"] = list(self.required_fields)
        return data


@dataclass(frozen=True)
class Methodology:
    id: str
    name: str
    description: str
    version: str
    steps: Tuple[MethodologyStep, ...]
    completion_step: int
    features: Dict[str, bool] = field(default_factory=dict)
    branding: Dict[str, str] = field(default_factory=dict)

    def get_step(self, step_id: int) -> Optional[MethodologyStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "steps": [step.to_dict() for step in self.steps],
            "completion_step": self.completion_step,
            "features": dict(self.features),
            "branding": dict(self.branding),
        }


FLYWHEEL_8 = Methodology(
    id="flywheel-8",
    name="Flywheel 8-Step",
    description=(
        "The complete innovation cycle: discover problems, validate value, "
        "build solutions, measure impact."
    ),
    version="1.0.0",
    steps=(
        MethodologyStep(
            id=1,
            name="Problem Discovery",
            short_name="Problem",
            description="Find a problem worth solving through 5 key questions",
            icon="Search",
            color="text-amber-400",
            component="ProblemDiscovery",
            data_table="problems",
            required_fields=("selected_question", "refined_statement"),
        ),
        MethodologyStep(
            id=2,
            name="Context Discovery",
            short_name="Context",
            description="Understand who, when, and how painful the problem is",
            icon="Target",
            color="text-blue-400",
            component="ContextDiscovery",
            data_table="contexts",
            required_fields=("primary_users", "specific_trigger"),
        ),
        MethodologyStep(
            id=3,
            name="Value Discovery",
            short_name="Value",
            description="Apply the Desperate User Test to validate demand",
            icon="Gem",
            color="text-purple-400",
            component="ValueDiscovery",
            data_table="value_assessments",
            required_fields=("desperate_user_score",),
        ),
        MethodologyStep(
            id=4,
            name="Workflow Classification",
            short_name="Workflow",
            description="Identify which of 10 workflow types fits best",
            icon="Settings",
            color="text-green-400",
            component="WorkflowClassification",
            data_table="workflow_classifications",
            required_fields=("workflow_type",),
        ),
        MethodologyStep(
            id=5,
            name="Prompt Generation",
            short_name="Prompt",
            description="Generate a Lovable-ready prompt for building",
            icon="Sparkles",
            color="text-pink-400",
            component="PromptGeneration",
            data_table="prompts",
            required_fields=("generated_prompt",),
        ),
        MethodologyStep(
            id=6,
            name="Building",
            short_name="Build",
            description="Build your solution with Lovable AI",
            icon="Hammer",
            color="text-orange-400",
            component="Building",
            data_table="builds",
            required_fields=("lovable_project_url",),
        ),
        MethodologyStep(
            id=7,
            name="Deployment",
            short_name="Deploy",
            description="Deploy your solution and get it live",
            icon="Rocket",
            color="text-cyan-400",
            component="Deployment",
            data_table="builds",
            required_fields=("deployed_url",),
        ),
        MethodologyStep(
            id=8,
            name="Impact Discovery",
            short_name="Impact",
            description="Measure results and discover new problems",
            icon="BarChart3",
            color="text-emerald-400",
            component="ImpactDiscovery",
            data_table="impact_assessments",
            required_fields=("total_users",),
        ),
    ),
    completion_step=8,
    features={
        "problem_bank": True,
        "team_mode": False,
        "submission": False,
        "impact_tracking": True,
    },
    branding={"primary_color": "amber", "accent_color": "orange"},
)

# Appended as step 9 when a cycle belongs to an appathon
APPATHON_SUBMISSION_STEP = MethodologyStep(
    id=9,
    name="Appathon Submission",
    short_name="Submit",
    description="Submit your solution for the Appathon competition",
    icon="Trophy",
    color="text-yellow-400",
    component="AppathonSubmission",
    data_table="appathon_submissions",
    required_fields=("submitted_at",),
)


def get_flywheel_methodology(include_appathon: bool = False) -> Methodology:
    """Return the 8-step flywheel, optionally extended with the submission step."""
    if not include_appathon:
        return FLYWHEEL_8

    return replace(
        FLYWHEEL_8,
        id="flywheel-8-appathon",
        name="Flywheel 8-Step + Appathon",
        steps=FLYWHEEL_8.steps + (APPATHON_SUBMISSION_STEP,),
        completion_step=9,
        features={**FLYWHEEL_8.features, "submission": True},
    )


METHODOLOGIES: Dict[str, Methodology] = {
    "flywheel-8": FLYWHEEL_8,
    "flywheel-8-appathon": get_flywheel_methodology(True),
}


def get_methodology(methodology_id: str) -> Optional[Methodology]:
    return METHODOLOGIES.get(methodology_id)


def get_methodology_for_event(event_config: Optional[Dict[str, Any]]) -> Methodology:
    """
    Resolve an event's methodology from its config.

    `methodology_id` wins when it names a registered methodology; the
    legacy `appathon_mode` flag selects the appathon variant; anything
    else falls back to the 8-step flywheel.
    """
    if not event_config:
        return FLYWHEEL_8

    methodology_id = event_config.get("methodology_id")
    if methodology_id and methodology_id in METHODOLOGIES:
        return METHODOLOGIES[methodology_id]
    if methodology_id:
        logger.warning(f"Unknown methodology_id in event config: {methodology_id}")

    if event_config.get("appathon_mode") is True:
        return get_flywheel_methodology(True)

    return FLYWHEEL_8


def get_methodology_for_user(user) -> Methodology:
    """Methodology of the user's active event, if any."""
    event = getattr(user, "active_event", None) if user is not None else None
    return get_methodology_for_event(event.config if event is not None else None)


def get_methodology_for_cycle(cycle) -> Methodology:
    """
    Methodology of the cycle's own event, else of its owner's active event.
    """
    if cycle.event is not None:
        return get_methodology_for_event(cycle.event.config)
    return get_methodology_for_user(cycle.user)


def can_access_step(target_step: int, current_step: int) -> bool:
    """Any step up to and including the current one may be opened."""
    return target_step <= current_step


def get_completion_step(methodology_id: str) -> int:
    methodology = get_methodology(methodology_id)
    return methodology.completion_step if methodology else 8


def methodology_has_feature(methodology_id: str, feature: str) -> bool:
    methodology = get_methodology(methodology_id)
    return bool(methodology and methodology.features.get(feature) is True)


def list_methodology_ids() -> List[str]:
    return list(METHODOLOGIES.keys())


def get_methodology_summary(methodology_id: str) -> Optional[Dict[str, Any]]:
    methodology = get_methodology(methodology_id)
    if methodology is None:
        return None
    return {
        "id": methodology.id,
        "name": methodology.name,
        "step_count": len(methodology.steps),
        "description": methodology.description,
    }
