"""
Coach Prompts - System prompt for the AI coach.

The coach sees a plain-text snapshot of the learner's cycle (current
step plus whatever step data exists) appended to a fixed persona. The
snapshot is rebuilt on every request so the coach never works from
stale cycle data.
"""
from typing import Any, Mapping, Optional

from studio.flywheel.methodology import FLYWHEEL_8

COACH_FALLBACK_MESSAGE = "I apologize, but I could not generate a response."

COACH_MAX_TOKENS = 1024


def _value(data: Optional[Mapping[str, Any]], key: str, default: str) -> Any:
    if not data:
        return default
    value = data.get(key)
    return default if value in (None, "") else value


def build_coach_context(cycle: Mapping[str, Any], current_step: int) -> str:
    """
    Describe the cycle for the coach.

    Args:
        cycle: Cycle dict with optional nested step dicts (`problem`,
               `context`, `value_assessment`, `workflow_classification`, `build`)
        current_step: Step the learner is on (1-based)

    Returns:
        Context block to embed in the system prompt
    """
    step = FLYWHEEL_8.get_step(current_step) or FLYWHEEL_8.steps[0]

    context_info = (
        f"\nCurrent Flywheel Step: {current_step} - {step.name}\n"
        f"Step Description: {step.description}\n"
        f"\n"
        f"Cycle Data:\n"
        f"- Status: {_value(cycle, 'status', 'active')}\n"
        f"- Current Step: {_value(cycle, 'current_step', current_step)}\n"
    )

    problem = cycle.get("problem")
    if problem:
        context_info += (
            f"\nProblem:\n"
            f"- Statement: {_value(problem, 'selected_question', 'Not yet defined')}\n"
            f"- Refined Statement: {_value(problem, 'refined_statement', 'Not yet refined')}\n"
            f"- Pain Level: {_value(problem, 'pain_level', 'Not rated')}/10\n"
            f"- Frequency: {_value(problem, 'frequency', 'Not specified')}\n"
        )

    context = cycle.get("context")
    if context:
        context_info += (
            f"\nContext:\n"
            f"- Who: {_value(context, 'primary_users', 'Not specified')}\n"
            f"- When: {_value(context, 'specific_trigger', 'Not specified')}\n"
            f"- How Painful: {_value(context, 'pain_level', 'Not rated')}/10\n"
            f"- Current Solution: {_value(context, 'current_workaround', 'None specified')}\n"
        )

    value = cycle.get("value_assessment")
    if value:
        context_info += (
            f"\nValue Assessment:\n"
            f"- Desperate User Score: {_value(value, 'desperate_user_score', 0)}/5\n"
            f"- Decision: {_value(value, 'decision', 'Not decided')}\n"
        )

    workflow = cycle.get("workflow_classification")
    if workflow:
        context_info += (
            f"\nWorkflow Classification:\n"
            f"- Type: {_value(workflow, 'workflow_type', 'Not selected')}\n"
            f"- Confidence: {_value(workflow, 'confidence', 'Not rated')}\n"
        )

    build = cycle.get("build")
    if build:
        context_info += (
            f"\nBuild:\n"
            f"- Lovable URL: {_value(build, 'lovable_project_url', 'Not linked')}\n"
            f"- Project URL: {_value(build, 'deployed_url', 'Not deployed')}\n"
        )

    return context_info


def get_coach_system_prompt(context_info: str) -> str:
    """Persona, methodology and the learner's cycle snapshot."""
    return f"""You are an AI Coach for the JKKN Solution Studio application. Your role is to guide users through the 8-step Problem-to-Impact Flywheel methodology.

Your persona:
- Friendly, encouraging, and practical
- Ask clarifying questions to help users think deeper
- Give actionable advice, not generic platitudes
- Keep responses concise (2-4 paragraphs max)
- Use the Socratic method - ask questions that lead to insights
- Celebrate small wins and progress

The 8 Flywheel Steps:
1. Problem Discovery - Find a problem worth solving through 5 key questions
2. Context Discovery - Understand who, when, and how painful the problem is
3. Value Discovery - Apply the Desperate User Test to validate demand
4. Workflow Classification - Identify which of 10 workflow types fits best
5. Prompt Generation - Generate a Lovable-ready prompt for building
6. Building - Build the solution with Lovable AI
7. Deployment - Deploy and get the solution live
8. Impact Discovery - Measure results and discover new problems (completing the flywheel)

Key principles to reinforce:
- Problems are the currency of innovation
- Build for desperate users, not merely interested ones
- Ship fast, iterate faster
- Every solution reveals new problems (the flywheel effect)
- Validate before building
- Use JKKN terminology: "Learners" not "students", "Learning Facilitators" not "teachers"

Current user context:
{context_info}

Help the user succeed at their current step. If they're stuck, help them move forward. If they're confused, clarify. If they need encouragement, provide it. Always relate your advice back to the flywheel methodology."""
