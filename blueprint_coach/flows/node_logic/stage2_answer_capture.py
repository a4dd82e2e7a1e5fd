"""Validate the routed answer and apply the outcome to the conversation.

validate_turn_answer runs the step validator for validate / probe routes.
apply_turn_answer turns route + validation into the reply:
- explore / help: conversational reply, nothing captured
- confirm: commit the pending answer
- validation error: guidance (or a clarifying question when probing), nothing captured
- valid: capture unconfirmed and ask for confirmation, or commit straight away
  when a confident submission needs no nudge and auto-advance is on
"""

import logging

from blueprint_coach.config.settings import EngineSettings
from blueprint_coach.flows.node_logic import util_prompt_templates as templates
from blueprint_coach.flows.node_logic.stage1_intent_classifier import SUBMITTING
from blueprint_coach.flows.node_logic.stage2_step_validation import ValidatorRegistry
from blueprint_coach.flows.node_logic.stage4_progression import RecapGenerator, commit_current_step
from blueprint_coach.state.conversation_state import CaptureSource, Phase, current_step, make_captured_value
from blueprint_coach.state.turn_state import TurnState

logger = logging.getLogger(__name__)


def validate_turn_answer(turn: TurnState, registry: ValidatorRegistry) -> TurnState:
    if turn.get("route") not in ("validate", "probe"):
        return turn
    conversation = turn["conversation"]
    step = current_step(conversation)
    conversation["phase"] = Phase.VALIDATING.value
    context = {
        "capturedData": conversation.get("capturedData", {}),
        "wizardContext": conversation.get("wizardContext", {}),
        "stage": conversation["stage"],
    }
    turn["validation"] = registry.validate(step.id, turn.get("text", ""), context)
    return turn


def _should_auto_advance(turn: TurnState, settings: EngineSettings) -> bool:
    intent = turn.get("intent") or {}
    validation = turn["validation"]
    return (
        settings.auto_advance_enabled
        and not turn.get("is_card")
        and intent.get("intent") == SUBMITTING
        and intent.get("confidence", 0) >= settings.high_confidence_threshold
        and validation.severity is None
    )


def apply_turn_answer(turn: TurnState, settings: EngineSettings, recap_generator: RecapGenerator) -> TurnState:
    conversation = turn["conversation"]
    step = current_step(conversation)
    route = turn.get("route")
    text = turn.get("text", "")

    if route == "explore":
        conversation["phase"] = turn["entry_phase"]
        turn["reply_text"] = templates.explore_message(step, text)
        turn["ui_affordances"] = [templates.buttons("ideas", "whatif", "help")]
        turn["outcome"] = "explore"
        return turn

    if route == "help":
        conversation["phase"] = turn["entry_phase"]
        turn["reply_text"] = templates.help_message(step)
        turn["ui_affordances"] = [templates.input_buttons(step)]
        turn["outcome"] = "help"
        return turn

    if route == "confirm":
        transition = commit_current_step(conversation, settings, recap_generator)
        turn["reply_text"] = transition.reply_text
        turn["ui_affordances"] = transition.ui_affordances
        turn["outcome"] = transition.outcome
        return turn

    validation = turn["validation"]
    if not validation.is_valid:
        conversation["phase"] = turn["entry_phase"]
        if route == "probe":
            turn["reply_text"] = templates.clarify_message(step, validation.suggestions)
            turn["outcome"] = "clarify"
        else:
            turn["reply_text"] = templates.guidance_message(step, validation.message, validation.suggestions)
            turn["outcome"] = "guidance"
        turn["ui_affordances"] = [templates.input_buttons(step)]
        logger.debug(f"Rejected {step.id.value} answer: {validation.message}")
        return turn

    processed = validation.transformed_input or text.strip()
    source = turn.get("source") or CaptureSource.USER_INPUT.value
    conversation["capturedData"][step.id.value] = make_captured_value(
        step,
        raw_text=text,
        processed_text=processed,
        source=source,
        items=validation.items,
    )
    skipped = conversation.get("skippedSteps") or []
    if step.id.value in skipped:
        skipped.remove(step.id.value)
    conversation["draftText"] = None

    if _should_auto_advance(turn, settings):
        logger.info(f"Auto-advancing confident submission for {step.id.value}")
        transition = commit_current_step(conversation, settings, recap_generator)
        turn["reply_text"] = transition.reply_text
        turn["ui_affordances"] = transition.ui_affordances
        turn["outcome"] = transition.outcome
        return turn

    conversation["phase"] = Phase.AWAITING_CONFIRMATION.value
    nudge = None
    if validation.severity == "warn":
        nudge = templates.guidance_message(step, validation.message, validation.suggestions)
    turn["reply_text"] = templates.confirmation_message(step, processed, nudge)
    turn["ui_affordances"] = [templates.buttons("confirm", "refine")]
    turn["outcome"] = "captured"
    return turn
