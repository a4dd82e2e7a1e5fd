"""Tests for per-step validators and the validator registry."""

import pytest

from blueprint_coach.flows.node_logic.stage2_step_validation import (
    ERROR,
    VALIDATORS,
    WARN,
    ValidationResult,
    ValidatorRegistry,
    format_list,
    parse_list_items,
    validate_big_idea,
    validate_challenge,
    validate_essential_question,
    validate_impact,
    validate_phases,
    validate_resources,
    validate_rubric,
)
from blueprint_coach.state.stage_graph import StepId


class TestListParsing:
    """Test free-text list splitting."""

    def test_commas(self):
        assert parse_list_items("Investigate, Ideate, Prototype, Share") == ["Investigate", "Ideate", "Prototype", "Share"]

    def test_semicolons_win_over_commas(self):
        text = "Interview experts, elders; build a prototype"
        assert parse_list_items(text) == ["Interview experts, elders", "build a prototype"]

    def test_bullets_and_numbers(self):
        text = "1. Research brief\n2) Prototype showcase\n- Final presentation."
        assert parse_list_items(text) == ["Research brief", "Prototype showcase", "Final presentation"]

    def test_leading_and_dropped(self):
        assert parse_list_items("Plan, build, and share") == ["Plan", "build", "share"]

    def test_empty(self):
        assert parse_list_items("  ") == []

    def test_format(self):
        assert format_list(["a", "b"]) == "- a\n- b"


class TestBigIdea:
    """Test Big Idea validation."""

    def test_conceptual_lens_passes(self):
        result = validate_big_idea("Technology as a force for change", {})
        assert result.is_valid is True
        assert result.severity is None
        assert result.transformed_input == "Technology as a force for change"

    def test_lead_in_stripped(self):
        result = validate_big_idea("My big idea is community as a living system", {})
        assert result.transformed_input == "Community as a living system"

    def test_single_topic_rejected(self):
        result = validate_big_idea("Ecosystems", {})
        assert result.is_valid is False
        assert result.severity == ERROR
        assert result.suggestions

    def test_short_without_lens_warns(self):
        result = validate_big_idea("Ocean pollution matters", {})
        assert result.is_valid is True
        assert result.severity == WARN


class TestEssentialQuestion:
    """Test Essential Question validation."""

    def test_how_might_we_passes(self):
        result = validate_essential_question("How might we reduce waste in our school?", {})
        assert result.is_valid is True

    def test_missing_question_mark(self):
        result = validate_essential_question("Students will build an app", {})
        assert result.is_valid is False
        assert "question" in result.message

    def test_question_stem_without_mark_gets_one(self):
        result = validate_essential_question("How might we improve recycling in our town", {})
        assert result.is_valid is True
        assert result.severity == WARN
        assert result.transformed_input == "How might we improve recycling in our town?"

    @pytest.mark.parametrize("raw", [
        "Why do cities grow the way they do",
        "In what ways does water shape a town.",
        "To what extent can one person change a community",
    ])
    def test_open_stems_accepted(self, raw):
        result = validate_essential_question(raw, {})
        assert result.is_valid is True
        assert result.transformed_input.endswith("?")

    def test_short_stem_still_rejected(self):
        assert validate_essential_question("Why water", {}).is_valid is False

    def test_closed_question(self):
        result = validate_essential_question("Is recycling good for the planet?", {})
        assert result.is_valid is False
        assert "yes/no" in result.message

    def test_too_short(self):
        assert validate_essential_question("Why water?", {}).is_valid is False

    def test_interest_statement_coerced(self):
        """An interest statement becomes an open question with a nudge."""
        result = validate_essential_question("I'm interested in renewable energy", {})
        assert result.is_valid is True
        assert result.severity == WARN
        assert result.transformed_input == "How might renewable energy shape our community?"

    def test_lead_in_stripped(self):
        result = validate_essential_question("Our question is: why do cities grow?", {})
        assert result.transformed_input == "Why do cities grow?"


class TestChallenge:
    """Test Challenge validation."""

    def test_action_verb_passes(self):
        result = validate_challenge("Design a campaign that informs our community about local recycling", {})
        assert result.is_valid is True
        assert result.severity is None

    def test_no_action_rejected(self):
        assert validate_challenge("Recycling in our town", {}).is_valid is False

    def test_short_action_warns(self):
        result = validate_challenge("Build robots", {})
        assert result.severity == WARN

    def test_lead_in_stripped(self):
        result = validate_challenge("Our challenge is to create a podcast for younger students", {})
        assert result.transformed_input == "Create a podcast for younger students"


class TestListSteps:
    """Test list-valued step validators."""

    def test_phases_need_two(self):
        assert validate_phases("Investigate", {}).is_valid is False
        result = validate_phases("Investigate, Share", {})
        assert result.items == ["Investigate", "Share"]
        assert result.transformed_input == "- Investigate\n- Share"

    def test_resources_need_one(self):
        assert validate_resources("Local librarian", {}).is_valid is True
        assert validate_resources("", {}).is_valid is False

    def test_rubric_single_criterion_warns(self):
        result = validate_rubric("Collaboration", {})
        assert result.is_valid is True
        assert result.severity == WARN
        assert result.items == ["Collaboration"]

    def test_rubric_empty(self):
        assert validate_rubric("", {}).severity == ERROR


class TestImpact:
    """Test Impact validation."""

    def test_audience_named(self):
        assert validate_impact("Students present their campaigns to the city council", {}).severity is None

    def test_no_audience_warns(self):
        assert validate_impact("Make a nice poster", {}).severity == WARN

    def test_too_short(self):
        assert validate_impact("Posters", {}).is_valid is False


class TestRegistry:
    """Test validator lookup and failure containment."""

    def test_covers_every_step(self):
        assert set(VALIDATORS) == set(StepId)

    def test_dispatch_by_value(self):
        registry = ValidatorRegistry()
        assert registry.validate("EssentialQuestion", "Students will build an app").is_valid is False

    def test_question_stem_through_registry(self):
        result = ValidatorRegistry().validate("EssentialQuestion", "How might we improve recycling in our town", {})
        assert result.is_valid is True
        assert result.transformed_input == "How might we improve recycling in our town?"

    def test_validator_exception_becomes_error_result(self):
        """A crashing validator is reported as a result, never raised."""
        def broken(raw_text, context):
            raise RuntimeError("boom")

        validators = dict(VALIDATORS)
        validators[StepId.BIG_IDEA] = broken
        result = ValidatorRegistry(validators).validate(StepId.BIG_IDEA, "anything")
        assert result.is_valid is False
        assert result.severity == ERROR

    def test_incomplete_table_rejected(self):
        validators = {step: validate_big_idea for step in StepId if step is not StepId.RUBRIC}
        with pytest.raises(Exception):
            ValidatorRegistry(validators)

    def test_result_constructors(self):
        assert ValidationResult.ok().is_valid is True
        assert ValidationResult.warn("m", []).severity == WARN
        assert ValidationResult.error("m", ["s"]).is_valid is False
