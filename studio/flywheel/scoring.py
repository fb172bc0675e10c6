"""
Flywheel scoring - the arithmetic behind the steps and the problem bank.

Desperate User Test (Value Discovery):
    Five yes/no criteria carry weights summing to 100. The raw score
    picks the quadrant and the go/pivot/stop decision; the stored score
    is the raw score scaled to 0-5.

Impact Discovery:
    impact = users reached x minutes saved / 100, clamped to 0-100.
"""
import math
import re
from typing import Any, Dict, Mapping, Optional

DESPERATE_USER_WEIGHTS: Dict[str, int] = {
    "complained_before": 20,
    "doing_something": 20,
    "light_up_at_solution": 25,
    "ask_when_can_use": 20,
    "multiple_have_it": 15,
}

QUICK_WIN_THRESHOLD = 70
STRATEGIC_THRESHOLD = 40

WORKFLOW_TYPES = (
    "AUDIT",
    "GENERATION",
    "TRANSFORMATION",
    "CLASSIFICATION",
    "EXTRACTION",
    "SYNTHESIS",
    "PREDICTION",
    "RECOMMENDATION",
    "MONITORING",
    "ORCHESTRATION",
)

PROBLEM_THEMES = ("healthcare", "education", "agriculture", "environment", "community", "myjkkn", "other")

VALIDATED_STATUSES = ("user_tested", "desperate_user_confirmed", "market_validated")

# Checked in order; first match wins
_THEME_KEYWORDS = (
    ("healthcare", r"health|patient|hospital|clinic|medical|doctor|nurse|pharma|drug|medicine"),
    ("education", r"education|student|learner|teacher|school|college|course|exam|study"),
    ("agriculture", r"farm|crop|agriculture|soil|harvest|irrigation|farmer|plant"),
    ("environment", r"environment|waste|pollution|water|air|climate|sustainability|recycle"),
    ("community", r"community|social|village|society|public|welfare|volunteer"),
    ("myjkkn", r"myjkkn"),
)


def _round_half_up(value: float) -> int:
    # round() rounds halves to even; scores round halves up
    return int(math.floor(value + 0.5))


def score_desperate_users(answers: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Score a Desperate User Test.

    Args:
        answers: Mapping with any of the five criteria as truthy/falsy values

    Returns:
        Dict with raw_score (0-100), desperate_user_score (0-5),
        quadrant and decision

    Example:
        >>> score_desperate_users({"complained_before": True, "light_up_at_solution": True,
        ...                        "ask_when_can_use": True})
        {'raw_score': 65, 'desperate_user_score': 3, 'quadrant': 'strategic', 'decision': 'pivot'}
    """
    raw = sum(weight for key, weight in DESPERATE_USER_WEIGHTS.items() if answers.get(key))

    if raw >= QUICK_WIN_THRESHOLD:
        quadrant, decision = "quick-win", "proceed"
    elif raw >= STRATEGIC_THRESHOLD:
        quadrant, decision = "strategic", "pivot"
    else:
        quadrant, decision = "skip", "stop"

    return {
        "raw_score": raw,
        "desperate_user_score": _round_half_up(raw / 20),
        "quadrant": quadrant,
        "decision": decision,
    }


def calculate_impact_score(total_users: Optional[int], time_saved_minutes: Optional[int]) -> int:
    """Impact from reach and time saved, clamped to 0-100."""
    raw = _round_half_up((total_users or 0) * (time_saved_minutes or 0) / 100)
    return min(100, max(0, raw))


def is_valid_workflow_type(workflow_type: Optional[str]) -> bool:
    return workflow_type in WORKFLOW_TYPES


# ============================================================
# Problem bank helpers
# ============================================================

def get_severity_label(severity: Optional[int]) -> str:
    if severity is None:
        return "Unknown"
    if severity <= 3:
        return "Low"
    if severity <= 6:
        return "Medium"
    if severity <= 8:
        return "High"
    return "Critical"


def is_high_potential_problem(
    validation_status: Optional[str],
    desperate_user_score: Optional[int],
    severity_rating: Optional[int]
) -> bool:
    return (
        validation_status in ("desperate_user_confirmed", "market_validated")
        or (desperate_user_score or 0) >= 3
        or (severity_rating or 0) >= 7
    )


def format_desperate_user_score(score: Optional[int]) -> str:
    if score is None:
        return "Not assessed"
    return f"{score}/5 criteria met"


def detect_theme(*texts: Optional[str]) -> str:
    """Keyword-based theme for free text; `other` when nothing matches."""
    text = " ".join(t for t in texts if t).lower()
    for theme, pattern in _THEME_KEYWORDS:
        if re.search(pattern, text):
            return theme
    return "other"
