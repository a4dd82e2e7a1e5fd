"""Stage and step progression: commit, review, advance, skip, edit, refine.

These helpers mutate a working copy of ConversationState (the engine copies
before calling) and return a Transition describing what to tell the user.
Both the confirm/skip/edit buttons and the auto-advance path of the answer
pipeline go through here, so the confirmation protocol lives in one place.

Stage transition rule: a stage only moves forward once ``recaps[stage]``
exists. The recap is generated once when the stage's last step is confirmed,
cached, and reused by the advance. A failed recap leaves the stage in
ADVANCING and the next confirm retries.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from blueprint_coach.config.settings import EngineSettings
from blueprint_coach.errors import RecapError
from blueprint_coach.flows.node_logic import util_prompt_templates as templates
from blueprint_coach.flows.node_logic.stage3_recap import generate_recap
from blueprint_coach.state.conversation_state import ConversationState, Phase, current_step
from blueprint_coach.state.stage_graph import Stage, StepDescriptor, get_step, next_stage, steps_for

logger = logging.getLogger(__name__)

RecapGenerator = Callable[..., str]


@dataclass
class Transition:
    reply_text: str
    ui_affordances: List[Dict[str, Any]] = field(default_factory=list)
    outcome: str = "noop"


def _is_done(state: ConversationState, step: StepDescriptor) -> bool:
    value = (state.get("capturedData") or {}).get(step.id.value)
    if value and value.get("confirmed"):
        return True
    return step.id.value in (state.get("skippedSteps") or [])


def next_open_step(state: ConversationState, after_index: int = -1) -> Optional[StepDescriptor]:
    """First step of the current stage that is neither confirmed nor skipped.

    Prefers steps after ``after_index``; falls back to earlier ones so a step
    left open by an edit is never stranded.
    """
    steps = steps_for(state["stage"])
    open_steps = [step for step in steps if not _is_done(state, step)]
    for step in open_steps:
        if step.ordinal > after_index:
            return step
    return open_steps[0] if open_steps else None


def start_stage(state: ConversationState) -> Transition:
    """Leave the stage welcome and ask for the first open step."""
    step = next_open_step(state) or steps_for(state["stage"])[0]
    state["stepIndex"] = step.ordinal
    state["phase"] = Phase.AWAITING_INPUT.value
    logger.info(f"Starting {state['stage']} at {step.id.value}")
    return Transition(templates.step_prompt(step), [templates.input_buttons(step)], "started")


def commit_current_step(state: ConversationState, settings: EngineSettings,
                        recap_generator: RecapGenerator = generate_recap) -> Transition:
    """Mark the pending answer confirmed, then move to the next open step or the stage review."""
    step = current_step(state)
    captured = state["capturedData"][step.id.value]
    captured["confirmed"] = True
    state["draftText"] = None
    logger.info(f"Committed {step.id.value}: {captured.get('processedText', '')[:80]}")

    following = next_open_step(state, after_index=step.ordinal)
    if following is not None:
        state["stepIndex"] = following.ordinal
        state["phase"] = Phase.AWAITING_INPUT.value
        return Transition(
            templates.committed_message(step, captured.get("processedText", ""), following),
            [templates.input_buttons(following)],
            "committed",
        )

    transition = enter_review(state, settings, recap_generator)
    transition.reply_text = f"{templates.committed_message(step, captured.get('processedText', ''), None)}\n\n{transition.reply_text}"
    return transition


def skip_current_step(state: ConversationState, settings: EngineSettings,
                      recap_generator: RecapGenerator = generate_recap) -> Transition:
    step = current_step(state)
    skipped = state.setdefault("skippedSteps", [])
    if step.id.value not in skipped:
        skipped.append(step.id.value)
    state["capturedData"].pop(step.id.value, None)
    state["draftText"] = None
    logger.info(f"Skipped {step.id.value}")

    following = next_open_step(state, after_index=step.ordinal)
    if following is not None:
        state["stepIndex"] = following.ordinal
        state["phase"] = Phase.AWAITING_INPUT.value
        return Transition(templates.skip_message(step, following), [templates.input_buttons(following)], "skipped")

    transition = enter_review(state, settings, recap_generator)
    transition.reply_text = f"{templates.skip_message(step, None)}\n\n{transition.reply_text}"
    return transition


def _ensure_recap(state: ConversationState, recap_generator: RecapGenerator) -> Optional[RecapError]:
    stage = state["stage"]
    if state.get("recaps", {}).get(stage):
        return None
    try:
        recap = recap_generator(stage, state.get("capturedData", {}), state.get("skippedSteps", []))
    except RecapError as e:
        logger.warning(f"Recap generation blocked stage transition: {e}")
        return e
    except Exception as e:
        logger.error(f"Recap generator for {stage} failed: {e}", exc_info=True)
        return RecapError(stage)
    state.setdefault("recaps", {})[stage] = recap
    return None


def _rejected(state: ConversationState, error: RecapError) -> Transition:
    stage = state["stage"]
    affordances = [templates.buttons("retry"), templates.edit_buttons(stage)]
    return Transition(templates.advance_rejected_message(stage, error.missing), affordances, "advance_rejected")


def enter_review(state: ConversationState, settings: EngineSettings,
                 recap_generator: RecapGenerator = generate_recap) -> Transition:
    """All steps of the stage are done: build the recap and show the review.

    With ``review_before_advance`` off the stage advances immediately.
    """
    stage = state["stage"]
    state["stepIndex"] = len(steps_for(stage)) - 1
    state["phase"] = Phase.ADVANCING.value

    error = _ensure_recap(state, recap_generator)
    if error is not None:
        return _rejected(state, error)

    if not settings.review_before_advance:
        return advance_stage(state, recap_generator)

    recap = state["recaps"][stage]
    return Transition(templates.review_message(stage, recap), [templates.edit_buttons(stage)], "review")


def advance_stage(state: ConversationState, recap_generator: RecapGenerator = generate_recap) -> Transition:
    """Move past the current stage. Requires (or retries) the stage recap."""
    stage = state["stage"]
    error = _ensure_recap(state, recap_generator)
    if error is not None:
        return _rejected(state, error)

    recap = state["recaps"][stage]
    following = next_stage(stage)
    state["draftText"] = None
    if following is Stage.COMPLETE:
        state["stage"] = Stage.COMPLETE.value
        state["stepIndex"] = 0
        state["phase"] = Phase.COMPLETE.value
        logger.info("Blueprint complete")
        return Transition(templates.complete_message(state["recaps"]), [], "completed")

    state["stage"] = following.value
    state["stepIndex"] = 0
    state["phase"] = Phase.WELCOME.value
    logger.info(f"Advanced from {stage} to {following.value}")
    reply = (
        f"{templates.stage_complete_message(stage, recap)}\n\n"
        f"{templates.welcome_message(following, state.get('wizardContext'), recap)}"
    )
    return Transition(reply, [templates.buttons("start", "help")], "advanced")


def refine_current_step(state: ConversationState) -> Transition:
    """Drop the pending confirmation but keep the raw text for re-editing."""
    step = current_step(state)
    captured = state["capturedData"][step.id.value]
    captured["confirmed"] = False
    state["draftText"] = captured.get("rawText", "")
    state["phase"] = Phase.AWAITING_INPUT.value
    reply = (
        f"Let's refine your {step.label}. Here's what you had:\n\n"
        f"\"{state['draftText']}\"\n\n"
        "Edit it and send the new version when you're ready."
    )
    return Transition(reply, [templates.input_buttons(step)], "refine")


def edit_step(state: ConversationState, step_id: str) -> Transition:
    """Jump back to a step of the current stage from the review.

    Later captured steps are kept; the stage recap is invalidated so it is
    rebuilt from the edited values.
    """
    step = get_step(step_id)
    state["stepIndex"] = step.ordinal
    state["phase"] = Phase.AWAITING_INPUT.value
    state.setdefault("recaps", {}).pop(state["stage"], None)
    captured = (state.get("capturedData") or {}).get(step.id.value)
    state["draftText"] = captured.get("rawText") if captured else None
    logger.info(f"Editing {step.id.value} from {state['stage']} review")

    reply = templates.step_prompt(step)
    if captured:
        reply = f"{reply}\n\nCurrent answer: \"{captured.get('processedText', '')}\""
    return Transition(reply, [templates.input_buttons(step)], "edit")
