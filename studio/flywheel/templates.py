"""
Workflow templates - the building blocks of a Lovable prompt.

Every workflow type maps to three user actions, four features and two
constraints. `generate_lovable_prompt` renders them, together with the
cycle's problem and context, into the one-shot prompt a learner pastes
into Lovable during the Prompt Generation step.
"""
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class WorkflowTemplate:
    type: str
    name: str
    action1: str
    action2: str
    action3: str
    features: Tuple[str, ...]
    constraints: Tuple[str, ...]


PROMPT_TEMPLATES = {
    "AUDIT": WorkflowTemplate(
        type="AUDIT",
        name="Audit",
        action1="Upload content to evaluate",
        action2="See scores against defined criteria",
        action3="Get specific feedback and improvement suggestions",
        features=(
            "Scoring dashboard with visual indicators",
            "Rubric management (create/edit criteria)",
            "History view showing improvements over time",
            "Export to PDF for reporting",
        ),
        constraints=(
            "Consistent, fair evaluation every time",
            "Clear explanation of each score",
        ),
    ),
    "GENERATION": WorkflowTemplate(
        type="GENERATION",
        name="Generation",
        action1="Provide context and requirements",
        action2="Choose from templates or customize",
        action3="Generate content and refine",
        features=(
            "Template library organized by type",
            "Customization options (tone, length, format)",
            "Version history to compare outputs",
            "Export in multiple formats",
        ),
        constraints=(
            "Brand-consistent output",
            "Editable before finalizing",
        ),
    ),
    "TRANSFORMATION": WorkflowTemplate(
        type="TRANSFORMATION",
        name="Transformation",
        action1="Upload or input source content",
        action2="Apply transformation rules automatically",
        action3="Review and export in target format",
        features=(
            "Batch processing for multiple items",
            "Preview before final transformation",
            "Rule customization interface",
            "Multiple export format options (PDF, Word, Excel, JSON)",
        ),
        constraints=(
            "Preserve critical information during conversion",
            "Handle edge cases and malformed inputs gracefully",
        ),
    ),
    "CLASSIFICATION": WorkflowTemplate(
        type="CLASSIFICATION",
        name="Classification",
        action1="Submit item to classify",
        action2="See automatic categorization with confidence score",
        action3="Route to appropriate destination",
        features=(
            "Auto-categorization with confidence indicators",
            "Manual override and correction capability",
            "Routing rules configuration",
            "Analytics on category distribution",
        ),
        constraints=(
            "Handle ambiguous cases with human review option",
            "Learn from corrections to improve accuracy",
        ),
    ),
    "EXTRACTION": WorkflowTemplate(
        type="EXTRACTION",
        name="Extraction",
        action1="Upload unstructured documents",
        action2="See extracted structured data",
        action3="Verify and export to destination",
        features=(
            "Bulk upload capability (100+ at once)",
            "Side-by-side source vs extracted view",
            "Confidence highlighting for uncertain extractions",
            "Export to Excel, database, or API",
        ),
        constraints=(
            "Handle poor quality scans and photos",
            "Support multiple document formats (PDF, Word, images)",
        ),
    ),
    "SYNTHESIS": WorkflowTemplate(
        type="SYNTHESIS",
        name="Synthesis",
        action1="Connect or upload multiple data sources",
        action2="See unified insights and patterns",
        action3="Drill down to source details",
        features=(
            "Multi-source integration dashboard",
            "Theme and pattern identification",
            "Source attribution for all insights",
            "Trend visualization over time",
        ),
        constraints=(
            "Handle conflicting information transparently",
            "Show confidence levels in synthesized conclusions",
        ),
    ),
    "PREDICTION": WorkflowTemplate(
        type="PREDICTION",
        name="Prediction",
        action1="Input or import historical data",
        action2="See predictions with probability scores",
        action3="Understand reasoning and take action",
        features=(
            "Risk/opportunity score dashboard (color-coded)",
            "Trend and projection visualization",
            "Alert system for high-risk/opportunity cases",
            "Intervention tracking and outcome logging",
        ),
        constraints=(
            "Explain predictions in human-readable terms",
            "Work gracefully with incomplete data",
        ),
    ),
    "RECOMMENDATION": WorkflowTemplate(
        type="RECOMMENDATION",
        name="Recommendation",
        action1="Input context and preferences",
        action2="See ranked options with match scores",
        action3="Compare and select recommendation",
        features=(
            "Ranked list with match percentage",
            "Reasoning explanation for each recommendation",
            "Side-by-side comparison view",
            "Action tracking for selected recommendations",
        ),
        constraints=(
            "Explain reasoning in simple terms",
            "Update dynamically as preferences change",
        ),
    ),
    "MONITORING": WorkflowTemplate(
        type="MONITORING",
        name="Monitoring",
        action1="See real-time status of all items being monitored",
        action2="Get alerts when something needs attention",
        action3="Track history and identify trends",
        features=(
            "Status dashboard with visual indicators",
            "Alert configuration (thresholds, recipients)",
            "History view with trends",
            "Export for reporting",
        ),
        constraints=(
            "Real-time updates without manual refresh",
            "Works even if some data sources are offline",
        ),
    ),
    "ORCHESTRATION": WorkflowTemplate(
        type="ORCHESTRATION",
        name="Orchestration",
        action1="Define workflow steps and triggers",
        action2="Track progress through each step",
        action3="Handle exceptions and complete workflow",
        features=(
            "Visual workflow designer",
            "Status tracking dashboard per item",
            "Automatic notifications at each step",
            "Exception handling and escalation rules",
        ),
        constraints=(
            "Easy to modify workflows without coding",
            "Handle delays and timeouts gracefully",
        ),
    ),
}


def get_workflow_template(workflow_type: Optional[str]) -> WorkflowTemplate:
    """Template for a workflow type; unknown types fall back to MONITORING."""
    return PROMPT_TEMPLATES.get((workflow_type or "").upper(), PROMPT_TEMPLATES["MONITORING"])


def _bullets(items) -> str:
    return "\n".join(f"- {item}" for item in items)


def generate_lovable_prompt(
    workflow_type: Optional[str],
    problem_statement: Optional[str] = None,
    frequency: Optional[str] = None,
    pain_level: Optional[int] = None,
    primary_users: Optional[str] = None,
    current_solution: Optional[str] = None,
) -> str:
    """
    Render the one-shot Lovable prompt for a cycle.

    Missing values fall back to neutral defaults so a half-finished cycle
    still produces a usable prompt.
    """
    template = get_workflow_template(workflow_type)
    statement = problem_statement or "Problem not specified"
    users = primary_users or "users"

    return (
        f"Build me a {template.name.lower()} app where {users} can:\n"
        f"\n"
        f"1. {template.action1}\n"
        f"2. {template.action2}\n"
        f"3. {template.action3}\n"
        f"\n"
        f"CONTEXT:\n"
        f"- Problem: \"{statement}\"\n"
        f"- Frequency: {frequency or 'daily'}\n"
        f"- Current workaround: {current_solution or 'Manual process'}\n"
        f"- Pain level: {pain_level or 5}/10\n"
        f"\n"
        f"INCLUDE:\n"
        f"{_bullets(template.features)}\n"
        f"\n"
        f"MAKE IT:\n"
        f"- Work on mobile (users access on phones)\n"
        f"- Work on slow internet (2G compatible)\n"
        f"- Simple enough for {users}\n"
        f"{_bullets(template.constraints)}"
    )
