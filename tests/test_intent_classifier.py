"""Tests for the keyword intent classifier and the graduated-response router."""

import pytest

from blueprint_coach.config.settings import EngineSettings
from blueprint_coach.flows.node_logic import util_prompt_templates as templates
from blueprint_coach.flows.node_logic.stage1_intent_classifier import (
    CONFIRMING,
    EXPLORING,
    QUESTIONING,
    SUBMITTING,
    UNCERTAIN,
    ClassificationContext,
    ClassifierConfig,
    IntentResult,
    KeywordIntentClassifier,
)
from blueprint_coach.flows.node_logic.stage1_intent_routing import (
    classify_turn_intent,
    implied_assistant_message,
    route_turn,
)
from blueprint_coach.state.conversation_state import Phase, make_captured_value, new_conversation_state
from blueprint_coach.state.stage_graph import get_step
from blueprint_coach.state.turn_state import TurnState


def step_context(step_id="BigIdea", phase="AWAITING_INPUT", turn_count=1, last_intent=None):
    step = get_step(step_id)
    if phase == "AWAITING_CONFIRMATION":
        last_ai = templates.confirmation_message(step, "Technology as a force for change")
    else:
        last_ai = templates.step_prompt(step)
    return ClassificationContext(
        stage=step.stage.value,
        step_index=step.ordinal,
        phase=phase,
        turn_count=turn_count,
        last_intent=last_intent,
        last_assistant_message=last_ai,
    )


@pytest.fixture
def classifier():
    return KeywordIntentClassifier()


class TestClassification:
    """Test intent and confidence for representative answers."""

    def test_declarative_answer_is_submitting(self, classifier):
        result = classifier.classify("Technology as a force for change", step_context())
        assert result.intent == SUBMITTING
        assert result.confidence == 80

    def test_without_prompt_question_confidence_drops(self, classifier):
        context = ClassificationContext(stage="IDEATION", turn_count=1, last_assistant_message="Tell me more.")
        result = classifier.classify("Technology as a force for change", context)
        assert result.intent == SUBMITTING
        assert result.confidence == 74

    def test_tentative_language_is_exploring(self, classifier):
        result = classifier.classify("I'm thinking maybe something about ecosystems", step_context())
        assert result.intent == EXPLORING
        assert result.confidence >= 90

    def test_question_is_questioning(self, classifier):
        context = step_context("EssentialQuestion", turn_count=3, last_intent=SUBMITTING)
        result = classifier.classify("How might we use technology to improve our community?", context)
        assert result.intent == QUESTIONING
        assert result.confidence == 70
        assert EXPLORING in result.alternatives

    def test_yes_while_confirming(self, classifier):
        context = step_context(phase="AWAITING_CONFIRMATION", turn_count=2)
        result = classifier.classify("yes", context)
        assert result.intent == CONFIRMING
        assert result.confidence == 60

    def test_filler_is_low_confidence(self, classifier):
        result = classifier.classify("Hmm", step_context())
        assert result.intent == UNCERTAIN
        assert result.confidence < 50

    def test_list_structure_reads_as_submission(self, classifier):
        context = step_context("Phases", turn_count=6)
        result = classifier.classify("Investigate, Ideate, Prototype, Share", context)
        assert result.intent == SUBMITTING
        assert result.confidence == 67

    def test_empty_text(self, classifier):
        result = classifier.classify("   ", step_context())
        assert result.intent == UNCERTAIN
        assert result.confidence == 0

    def test_short_follow_up_inherits_exploring(self, classifier):
        """A short reply right after exploring keeps the exploring thread going."""
        context = step_context(turn_count=2, last_intent=EXPLORING)
        result = classifier.classify("ocean pollution", context)
        assert result.intent == EXPLORING
        assert result.inherited is True
        assert result.confidence >= 60

    def test_record(self):
        result = IntentResult(intent=SUBMITTING, confidence=80, scores={SUBMITTING: 15.0})
        assert result.to_record() == {"intent": SUBMITTING, "confidence": 80}

    def test_patterns_are_configuration(self):
        """Swapping the pattern table changes the outcome without code changes."""
        config = ClassifierConfig(patterns={CONFIRMING: (r"^ship it\b",)})
        result = KeywordIntentClassifier(config).classify("ship it", step_context(turn_count=2))
        assert result.intent == CONFIRMING


class TestImpliedAssistantMessage:
    """Test the prompt the user is assumed to be answering."""

    def test_awaiting_input_uses_step_prompt(self):
        state = new_conversation_state()
        state["phase"] = Phase.AWAITING_INPUT.value
        assert "What's your Big Idea?" in implied_assistant_message(state)

    def test_awaiting_confirmation_uses_confirmation(self):
        state = new_conversation_state()
        state["phase"] = Phase.AWAITING_CONFIRMATION.value
        state["capturedData"]["BigIdea"] = make_captured_value(get_step("BigIdea"), "Art as protest", "Art as protest")
        assert "Current **Big Idea**" in implied_assistant_message(state)


def make_turn(text, phase="AWAITING_INPUT", step_index=0):
    state = new_conversation_state()
    state["phase"] = phase
    state["stepIndex"] = step_index
    state["conversationDepth"] = 1
    return TurnState(conversation=state, text=text, entry_phase=phase, prior_messages=[])


class TestRouting:
    """Test the graduated-response router."""

    settings = EngineSettings()

    def route(self, turn, intent, confidence):
        turn["intent"] = {"intent": intent, "confidence": confidence, "alternatives": []}
        return route_turn(turn, self.settings)["route"]

    def test_low_confidence_probes(self):
        assert self.route(make_turn("Hmm"), UNCERTAIN, 47) == "probe"

    def test_submission_validates(self):
        assert self.route(make_turn("x"), SUBMITTING, 80) == "validate"

    def test_exploring_explores(self):
        assert self.route(make_turn("x"), EXPLORING, 93) == "explore"

    def test_question_on_question_step_validates(self):
        turn = make_turn("How might we?", step_index=1)
        assert self.route(turn, QUESTIONING, 70) == "validate"

    def test_question_elsewhere_gets_help(self):
        assert self.route(make_turn("What is a big idea?"), QUESTIONING, 70) == "help"

    def test_uncertain_gets_help(self):
        assert self.route(make_turn("not sure"), UNCERTAIN, 60) == "help"

    def test_confirming_while_pending_confirms(self):
        turn = make_turn("yes", phase="AWAITING_CONFIRMATION")
        assert self.route(turn, CONFIRMING, 60) == "confirm"

    def test_confirming_without_pending_validates(self):
        assert self.route(make_turn("Ecosystems"), CONFIRMING, 60) == "validate"

    def test_cards_always_validate(self):
        turn = make_turn("Technology as a force for change")
        turn["is_card"] = True
        assert route_turn(turn, self.settings)["route"] == "validate"

    def test_classify_node_records_last_intent(self):
        turn = classify_turn_intent(make_turn("Technology as a force for change"), KeywordIntentClassifier())
        assert turn["intent"]["intent"] == SUBMITTING
        assert turn["conversation"]["lastIntent"] == {"intent": SUBMITTING, "confidence": 80}

    def test_classify_node_skips_cards(self):
        turn = make_turn("Technology as a force for change")
        turn["is_card"] = True
        assert classify_turn_intent(turn, KeywordIntentClassifier())["intent"] is None
