"""
Unit tests for the flywheel's pure rules: scoring, methodologies,
prompt templates and input validators.
"""
import pytest

from studio.core.validators import normalize_email, sanitize_message, slugify, validate_slug
from studio.flywheel.methodology import (
    can_access_step,
    get_completion_step,
    get_methodology_for_event,
    get_methodology_summary,
    list_methodology_ids,
    methodology_has_feature,
)
from studio.flywheel.scoring import (
    calculate_impact_score,
    detect_theme,
    format_desperate_user_score,
    get_severity_label,
    is_high_potential_problem,
    is_valid_workflow_type,
    score_desperate_users,
)
from studio.flywheel.templates import generate_lovable_prompt, get_workflow_template


class TestDesperateUserScore:

    def test_all_criteria_is_quick_win(self):
        result = score_desperate_users({
            "complained_before": True,
            "doing_something": True,
            "light_up_at_solution": True,
            "ask_when_can_use": True,
            "multiple_have_it": True,
        })

        assert result == {"raw_score": 100, "desperate_user_score": 5, "quadrant": "quick-win", "decision": "proceed"}

    def test_strategic_band(self):
        result = score_desperate_users({
            "complained_before": True,
            "light_up_at_solution": True,
            "ask_when_can_use": True,
        })

        assert result["raw_score"] == 65
        assert result["desperate_user_score"] == 3
        assert (result["quadrant"], result["decision"]) == ("strategic", "pivot")

    def test_seventy_five_is_quick_win(self):
        result = score_desperate_users({
            "complained_before": True, "doing_something": True, "ask_when_can_use": True, "multiple_have_it": True,
        })

        assert result["raw_score"] == 75
        assert result["quadrant"] == "quick-win"

    def test_forty_is_strategic(self):
        result = score_desperate_users({"complained_before": True, "doing_something": True})

        assert result["raw_score"] == 40
        assert result["quadrant"] == "strategic"
        assert result["desperate_user_score"] == 2

    def test_stored_score_is_rounded(self):
        # 35 / 20 = 1.75
        assert score_desperate_users({"complained_before": True, "multiple_have_it": True})["desperate_user_score"] == 2

    def test_nothing_checked_is_stop(self):
        result = score_desperate_users({})

        assert result == {"raw_score": 0, "desperate_user_score": 0, "quadrant": "skip", "decision": "stop"}


class TestImpactScore:

    @pytest.mark.parametrize("users, minutes, expected", [
        (10, 30, 3),
        (50, 150, 75),
        (1000, 60, 100),
        (None, 30, 0),
        (3, 50, 2),
    ])
    def test_impact_score(self, users, minutes, expected):
        assert calculate_impact_score(users, minutes) == expected


class TestProblemHelpers:

    def test_severity_labels(self):
        assert [get_severity_label(s) for s in (None, 2, 5, 8, 10)] == ["Unknown", "Low", "Medium", "High", "Critical"]

    def test_high_potential(self):
        assert is_high_potential_problem("market_validated", None, None)
        assert is_high_potential_problem("unvalidated", 3, None)
        assert is_high_potential_problem(None, None, 7)
        assert not is_high_potential_problem("unvalidated", 2, 6)

    def test_score_formatting(self):
        assert format_desperate_user_score(None) == "Not assessed"
        assert format_desperate_user_score(4) == "4/5 criteria met"

    def test_theme_detection_uses_first_match(self):
        assert detect_theme("Students miss hospital appointments") == "healthcare"
        assert detect_theme("Crop prices are unclear to the farmer") == "agriculture"
        assert detect_theme("Nothing relevant here") == "other"

    def test_workflow_types(self):
        assert is_valid_workflow_type("MONITORING")
        assert not is_valid_workflow_type("monitoring")
        assert not is_valid_workflow_type(None)


class TestMethodologies:

    def test_default_is_eight_steps(self):
        methodology = get_methodology_for_event(None)

        assert methodology.id == "flywheel-8"
        assert len(methodology.steps) == 8
        assert methodology.completion_step == 8

    def test_methodology_id_wins_over_appathon_flag(self):
        methodology = get_methodology_for_event({"methodology_id": "flywheel-8", "appathon_mode": True})

        assert methodology.id == "flywheel-8"

    def test_appathon_flag_adds_submission_step(self):
        methodology = get_methodology_for_event({"appathon_mode": True})

        assert methodology.completion_step == 9
        assert methodology.get_step(9).data_table == "appathon_submissions"
        assert methodology.features["submission"] is True

    def test_unknown_methodology_falls_back(self):
        assert get_methodology_for_event({"methodology_id": "made-up"}).id == "flywheel-8"

    def test_registry_helpers(self):
        assert list_methodology_ids() == ["flywheel-8", "flywheel-8-appathon"]
        assert get_completion_step("unknown") == 8
        assert methodology_has_feature("flywheel-8", "problem_bank")
        assert not methodology_has_feature("flywheel-8", "submission")
        assert get_methodology_summary("flywheel-8-appathon")["step_count"] == 9
        assert get_methodology_summary("nope") is None

    def test_steps_open_up_to_current(self):
        assert can_access_step(3, 3)
        assert can_access_step(1, 3)
        assert not can_access_step(4, 3)


class TestLovablePrompt:

    def test_unknown_workflow_uses_monitoring(self):
        assert get_workflow_template("whatever").type == "MONITORING"
        assert get_workflow_template("audit").type == "AUDIT"

    def test_prompt_includes_context(self):
        prompt = generate_lovable_prompt(
            "AUDIT",
            problem_statement="Lab reports are graded inconsistently",
            frequency="weekly",
            pain_level=8,
            primary_users="lab instructors",
        )

        assert prompt.startswith("Build me a audit app where lab instructors can:")
        assert '- Problem: "Lab reports are graded inconsistently"' in prompt
        assert "- Frequency: weekly" in prompt
        assert "- Pain level: 8/10" in prompt
        assert "- Current workaround: Manual process" in prompt

    def test_defaults_for_empty_cycle(self):
        prompt = generate_lovable_prompt(None)

        assert 'Problem: "Problem not specified"' in prompt
        assert "Pain level: 5/10" in prompt
        assert "Simple enough for users" in prompt


class TestValidators:

    def test_sanitize_message(self):
        assert sanitize_message("  hi\x00 there \n\n\n\nbye ") == "hi there \n\nbye"
        assert sanitize_message("") == ""
        assert len(sanitize_message("x" * 9000)) == 8000

    def test_slugs(self):
        assert slugify("Healthcare + AI Problems") == "healthcare-ai-problems"
        assert validate_slug("appathon-2") == (True, None)
        assert validate_slug("Bad Slug")[0] is False

    def test_normalize_email(self):
        assert normalize_email("  Someone@JKKN.ac.in ") == "someone@jkkn.ac.in"
