"""Stage recap generation.

A recap is a one-line synopsis of a finished stage, cached in
``ConversationState.recaps`` and injected into later prompts as context.
Deterministic: same captured values in, same string out.

Formats:
    IDEATION      Big Idea: "...", Essential Question: "...", Challenge: "..."
    JOURNEY       Designed N phases with M activities and K resources
    DELIVERABLES  Created N milestones, rubric with C criteria, and impact plan for <audience>
"""

import logging
import re
from typing import Callable, Dict, List, Optional

from blueprint_coach.errors import RecapError
from blueprint_coach.state.conversation_state import CapturedValue
from blueprint_coach.state.stage_graph import Stage, StepId, get_step, steps_for

logger = logging.getLogger(__name__)


def _text(captured: Dict[str, CapturedValue], step_id: StepId) -> str:
    value = captured.get(step_id.value) or {}
    return (value.get("processedText") or value.get("rawText") or "").strip()


def _count(captured: Dict[str, CapturedValue], step_id: StepId) -> int:
    value = captured.get(step_id.value)
    if not value:
        return 0
    items = value.get("items")
    if items:
        return len(items)
    return 1 if (value.get("processedText") or value.get("rawText")) else 0


def _missing(stage: Stage, captured: Dict[str, CapturedValue], skipped: List[str]) -> List[str]:
    missing = []
    for step in steps_for(stage):
        if step.id.value in skipped and step.skippable:
            continue
        if not _text(captured, step.id):
            missing.append(step.id.value)
    return missing


def _plural(count: int, singular: str, plural: Optional[str] = None) -> str:
    return f"{count} {singular if count == 1 else (plural or singular + 's')}"


_AUDIENCE_PHRASE = re.compile(r"\b(?:to|for|with)\s+(?:the\s+)?(?P<audience>[^,.;]+)", re.IGNORECASE)


def _impact_audience(impact_text: str) -> str:
    match = _AUDIENCE_PHRASE.search(impact_text)
    if match:
        return match.group("audience").strip()
    return impact_text


def _ideation_recap(captured: Dict[str, CapturedValue]) -> str:
    return (
        f"Big Idea: \"{_text(captured, StepId.BIG_IDEA)}\", "
        f"Essential Question: \"{_text(captured, StepId.ESSENTIAL_QUESTION)}\", "
        f"Challenge: \"{_text(captured, StepId.CHALLENGE)}\""
    )


def _journey_recap(captured: Dict[str, CapturedValue]) -> str:
    phases = _count(captured, StepId.PHASES)
    activities = _count(captured, StepId.ACTIVITIES)
    resources = _count(captured, StepId.RESOURCES)
    return (
        f"Designed {_plural(phases, 'phase')} with {_plural(activities, 'activity', 'activities')} "
        f"and {_plural(resources, 'resource')}"
    )


def _deliverables_recap(captured: Dict[str, CapturedValue]) -> str:
    milestones = _count(captured, StepId.MILESTONES)
    criteria = _count(captured, StepId.RUBRIC)
    audience = _impact_audience(_text(captured, StepId.IMPACT))
    return (
        f"Created {_plural(milestones, 'milestone')}, "
        f"rubric with {_plural(criteria, 'criterion', 'criteria')}, "
        f"and impact plan for {audience}"
    )


_RECAP_BUILDERS: Dict[Stage, Callable[[Dict[str, CapturedValue]], str]] = {
    Stage.IDEATION: _ideation_recap,
    Stage.JOURNEY: _journey_recap,
    Stage.DELIVERABLES: _deliverables_recap,
}


def generate_recap(stage, captured_data: Dict[str, CapturedValue],
                   skipped_steps: Optional[List[str]] = None) -> str:
    """Synthesize the carry-forward recap for a finished stage.

    Args:
        stage: Stage being completed (not COMPLETE)
        captured_data: ConversationState.capturedData
        skipped_steps: StepId values the user skipped (only skippable steps count)

    Returns:
        Recap string

    Raises:
        RecapError: a required step has no captured value, or the stage has no recap
    """
    stage = Stage(stage)
    if stage not in _RECAP_BUILDERS:
        raise RecapError(stage.value)
    captured = captured_data or {}
    missing = _missing(stage, captured, list(skipped_steps or []))
    if missing:
        raise RecapError(stage.value, [get_step(step_id).label for step_id in missing])
    recap = _RECAP_BUILDERS[stage](captured)
    logger.debug(f"Generated {stage.value} recap: {recap}")
    return recap
