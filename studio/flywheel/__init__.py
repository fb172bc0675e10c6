"""
Flywheel module - the Problem-to-Impact methodology.

This module provides:
- methodology.py : Step registry and per-event methodology resolution
- scoring.py     : Desperate User Test, impact score, problem-bank helpers
- templates.py   : Workflow templates and the Lovable prompt renderer
"""
from studio.flywheel.methodology import (
    APPATHON_SUBMISSION_STEP,
    FLYWHEEL_8,
    Methodology,
    MethodologyStep,
    get_flywheel_methodology,
    get_methodology,
    get_methodology_for_cycle,
    get_methodology_for_event,
)
from studio.flywheel.scoring import calculate_impact_score, score_desperate_users
from studio.flywheel.templates import PROMPT_TEMPLATES, generate_lovable_prompt

__all__ = [
    "APPATHON_SUBMISSION_STEP",
    "FLYWHEEL_8",
    "Methodology",
    "MethodologyStep",
    "get_flywheel_methodology",
    "get_methodology",
    "get_methodology_for_cycle",
    "get_methodology_for_event",
    "calculate_impact_score",
    "score_desperate_users",
    "PROMPT_TEMPLATES",
    "generate_lovable_prompt",
]
