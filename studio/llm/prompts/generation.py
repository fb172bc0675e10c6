"""
Prompt Generation Prompts - Ask Gemini for a 9-step Lovable build plan.

The system prompt fixes the output contract (a JSON array of nine
prompts in three phases); the user prompt carries the learner's problem,
the workflow template and any Desperate User Test evidence.
"""
from typing import Any, Dict, Mapping, Optional

from studio.flywheel.templates import WorkflowTemplate

GENERATION_CONFIG: Dict[str, Any] = {
    "temperature": 0.7,
    "top_k": 40,
    "top_p": 0.95,
    "max_tokens": 8192,
    "response_mime_type": "application/json",
}

# criterion key -> label used in the evidence list
EVIDENCE_LABELS = (
    ("activelySearching", "Users have complained"),
    ("triedAlternatives", "Current workarounds"),
    ("willingToPay", "User excitement"),
    ("urgentNeed", "Urgency signals"),
    ("frequentProblem", "Multiple users affected"),
)

GENERATION_SYSTEM_PROMPT = """You are an expert at writing prompts for Lovable.dev, an AI-powered app builder.
Your job is to generate a sequence of 9 incremental prompts that will guide Lovable to build a complete, production-ready application.

The prompts must follow this structure:
- Prompts 1-3: Foundation (project setup, auth, navigation)
- Prompts 4-7: Features (workflow-specific functionality)
- Prompts 8-9: Polish (error handling, mobile optimization)

Each prompt should:
1. Be specific and actionable
2. Reference what was built in previous prompts
3. Include exact user flows and UI requirements
4. Specify what NOT to change from previous prompts
5. Be tailored to the specific problem and users

Return a JSON array with exactly 9 objects, each having:
- number: 1-9
- phase: "foundation" | "features" | "polish"
- title: short title
- description: one sentence description
- prompt: the full prompt text

IMPORTANT: Make prompts highly specific to the user's problem, users, and validation evidence. Don't be generic."""


def get_generation_system_prompt() -> str:
    return GENERATION_SYSTEM_PROMPT


def build_validation_context(value_assessment: Optional[Mapping[str, Any]]) -> str:
    """
    Turn Desperate User Test evidence into prompt lines.

    Only criteria that are both met and backed by evidence text are
    listed; an empty string means there is nothing worth adding.
    """
    if not value_assessment or not (value_assessment.get("desperateUserScore") or 0) > 0:
        return ""

    criteria = value_assessment.get("criteria") or {}
    evidence = value_assessment.get("evidence") or {}

    points = [
        f'{label}: "{evidence[key]}"'
        for key, label in EVIDENCE_LABELS
        if criteria.get(key) and evidence.get(key)
    ]
    if not points:
        return ""

    joined = "\n".join(points)
    return (
        f"\nUser Validation (Desperate User Score: {value_assessment['desperateUserScore']}%):\n"
        f"{joined}\n"
    )


def get_generation_user_prompt(
    template: WorkflowTemplate,
    workflow_type: str,
    problem_statement: str,
    primary_users: str,
    when: str,
    current_solution: str,
    pain_level: Any,
    frequency: str,
    validation_context: str = "",
    custom_workflow_description: Optional[str] = None
) -> str:
    custom = f"- Custom workflow: {custom_workflow_description}" if custom_workflow_description else ""
    features = "\n".join(f"- {f}" for f in template.features)
    constraints = "\n".join(f"- {c}" for c in template.constraints)

    return f"""Generate 9 personalized Lovable prompts for this project:

PROJECT CONTEXT:
- Problem: "{problem_statement}"
- Primary Users: {primary_users}
- When they need it: {when}
- Current workaround: {current_solution}
- Pain level: {pain_level}/10
- Frequency: {frequency}
- Workflow Type: {template.name} ({workflow_type})
{custom}

{validation_context}

WORKFLOW ACTIONS (from {template.name} template):
1. {template.action1}
2. {template.action2}
3. {template.action3}

REQUIRED FEATURES:
{features}

CONSTRAINTS:
{constraints}

Generate the 9 prompts as a JSON array. Make them specific to "{problem_statement}" for "{primary_users}"."""
