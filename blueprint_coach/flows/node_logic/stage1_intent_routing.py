"""Intent classification node and the graduated-response router.

Routes:
- validate: the text reads as an answer, check it
- probe: classifier is unsure (below the low threshold), let the validator decide
- confirm: "yes" / "sounds good" while an answer awaits confirmation
- help: a question or doubt on a step whose answer is not itself a question
- explore: thinking out loud, encourage and offer ideas
"""

import logging
from typing import Optional

from blueprint_coach.config.settings import EngineSettings
from blueprint_coach.flows.node_logic.stage1_intent_classifier import (
    CONFIRMING,
    ELABORATING,
    EXPLORING,
    QUESTIONING,
    UNCERTAIN,
    ClassificationContext,
    IntentClassifier,
)
from blueprint_coach.flows.node_logic import util_prompt_templates as templates
from blueprint_coach.observability import create_custom_span
from blueprint_coach.state.conversation_state import ConversationState, Phase, current_step
from blueprint_coach.state.turn_state import TurnState

logger = logging.getLogger(__name__)


def implied_assistant_message(conversation: ConversationState) -> Optional[str]:
    """The prompt the user is most likely answering, derived from the phase."""
    step = current_step(conversation)
    if step is None:
        return None
    phase = conversation.get("phase")
    if phase == Phase.AWAITING_CONFIRMATION.value:
        captured = conversation.get("capturedData", {}).get(step.id.value, {})
        return templates.confirmation_message(step, captured.get("processedText", ""))
    if phase == Phase.ADVANCING.value:
        return templates.review_message(conversation["stage"], conversation.get("recaps", {}).get(conversation["stage"], ""))
    if phase == Phase.WELCOME.value:
        return templates.welcome_message(conversation["stage"])
    return templates.step_prompt(step)


def classify_turn_intent(turn: TurnState, classifier: IntentClassifier) -> TurnState:
    if turn.get("is_card"):
        turn["intent"] = None
        return turn

    conversation = turn["conversation"]
    last_intent = (conversation.get("lastIntent") or {}).get("intent")
    context = ClassificationContext(
        stage=conversation["stage"],
        step_index=conversation.get("stepIndex", 0),
        phase=turn.get("entry_phase", conversation["phase"]),
        prior_messages=list(turn.get("prior_messages", [])),
        last_intent=last_intent,
        turn_count=conversation.get("conversationDepth", 0),
        last_assistant_message=implied_assistant_message(conversation),
    )
    with create_custom_span("classify_intent", {"text": turn.get("text", "")[:120], "stage": context.stage}):
        result = classifier.classify(turn.get("text", ""), context)

    turn["intent"] = {
        "intent": result.intent,
        "confidence": result.confidence,
        "alternatives": list(result.alternatives),
    }
    conversation["lastIntent"] = result.to_record()
    logger.debug(f"Intent {result.intent} ({result.confidence}) for {turn.get('text', '')[:60]!r}")
    return turn


def route_turn(turn: TurnState, settings: EngineSettings) -> TurnState:
    """Pick what to do with the text based on intent and confidence."""
    if turn.get("is_card"):
        turn["route"] = "validate"
        return turn

    conversation = turn["conversation"]
    step = current_step(conversation)
    intent = turn["intent"]["intent"]
    confidence = turn["intent"]["confidence"]

    if (
        turn.get("entry_phase") == Phase.AWAITING_CONFIRMATION.value
        and intent == CONFIRMING
        and confidence >= settings.low_confidence_threshold
    ):
        route = "confirm"
    elif confidence < settings.low_confidence_threshold:
        route = "probe"
    elif intent in (EXPLORING, ELABORATING):
        route = "explore"
    elif intent == QUESTIONING:
        route = "validate" if step.expects_question else "help"
    elif intent == UNCERTAIN:
        route = "help"
    else:
        route = "validate"

    turn["route"] = route
    logger.debug(f"Routed {intent}@{confidence} on {step.id.value} to {route}")
    return turn
