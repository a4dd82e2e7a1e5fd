"""ConversationState TypedDict and helpers for creating, upgrading and measuring it.

The state is a plain JSON-compatible dict so it can be handed to the store,
to LangGraph nodes and back to the UI without conversion. Enum members are
stored by value (``"IDEATION"``, ``"AWAITING_INPUT"``, ``"BigIdea"``).

Architecture:
    The engine never mutates a state it was given. Each event deep-copies the
    incoming state, applies the transition, and returns the copy inside a
    TurnResult. The session keeps the latest copy and hands it to the
    autosave coordinator.

Example Usage:
    ```python
    from blueprint_coach.state.conversation_state import new_conversation_state, current_step

    state = new_conversation_state({"subject": "Science", "gradeLevel": "8"})
    step = current_step(state)  # BigIdea descriptor
    ```
"""

import copy
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from typing_extensions import TypedDict

from blueprint_coach.state.stage_graph import (
    Stage,
    StepDescriptor,
    StepId,
    all_steps,
    get_step,
    step_at,
    steps_for,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


class Phase(str, Enum):
    WELCOME = "WELCOME"
    AWAITING_INPUT = "AWAITING_INPUT"
    VALIDATING = "VALIDATING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    ADVANCING = "ADVANCING"
    COMPLETE = "COMPLETE"


class CaptureSource(str, Enum):
    USER_INPUT = "user-input"
    CARD_SELECTION = "card-selection"
    AI_SUGGESTION = "ai-suggestion"


class CapturedValue(TypedDict, total=False):
    """One captured answer. Overwritten, never appended, on re-capture."""

    stepId: str
    """StepId value this answer belongs to."""

    rawText: str
    """Exactly what the user typed or selected."""

    processedText: str
    """Text after validator transforms (lead-in stripping, question coercion, list normalisation)."""

    source: str
    """CaptureSource value: user-input, card-selection or ai-suggestion."""

    capturedAt: str
    """ISO-8601 UTC timestamp of the capture."""

    confirmed: bool
    """True once the user confirmed (or the engine auto-advanced) this answer."""

    items: List[str]
    """Parsed list items for list-valued steps; replaced wholesale on every capture."""


class IntentRecord(TypedDict):
    intent: str
    confidence: int


class ConversationState(TypedDict, total=False):
    """Full conversation state for one blueprint.

    Invariants:
        - stepIndex is a valid index into steps_for(stage) for working stages,
          and 0 once stage is COMPLETE
        - phase AWAITING_CONFIRMATION implies capturedData[current step] exists
        - stage only moves forward once recaps[stage] exists
        - phase COMPLETE is terminal
    """

    stage: str
    """Stage value: IDEATION, JOURNEY, DELIVERABLES or COMPLETE."""

    stepIndex: int
    """Index of the active step within the current stage."""

    phase: str
    """Phase value, see Phase."""

    capturedData: Dict[str, CapturedValue]
    """StepId value → captured answer."""

    recaps: Dict[str, str]
    """Stage value → carry-forward recap, cached once generated."""

    conversationDepth: int
    """Count of user text/card turns processed."""

    lastIntent: Optional[IntentRecord]
    """Most recent classifier output, or None."""

    draftText: Optional[str]
    """Raw text retained for re-editing after refine or edit."""

    skippedSteps: List[str]
    """StepId values the user explicitly skipped."""

    wizardContext: Dict[str, Any]
    """Setup-wizard answers (subject, gradeLevel, duration, location)."""

    schemaVersion: int
    """Persisted shape version, see upgrade_state."""


# Fields whose change means the state must be persisted
PERSISTENT_FIELDS = (
    "stage",
    "stepIndex",
    "phase",
    "capturedData",
    "recaps",
    "draftText",
    "skippedSteps",
    "wizardContext",
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_conversation_state(wizard_context: Optional[Dict[str, Any]] = None) -> ConversationState:
    """Create the state for a brand-new blueprint, parked at the Ideation welcome."""
    return ConversationState(
        stage=Stage.IDEATION.value,
        stepIndex=0,
        phase=Phase.WELCOME.value,
        capturedData={},
        recaps={},
        conversationDepth=0,
        lastIntent=None,
        draftText=None,
        skippedSteps=[],
        wizardContext=dict(wizard_context or {}),
        schemaVersion=SCHEMA_VERSION,
    )


def copy_state(state: ConversationState) -> ConversationState:
    return copy.deepcopy(state)


def current_step(state: ConversationState) -> Optional[StepDescriptor]:
    """Active step descriptor, or None once the blueprint is complete."""
    stage = state.get("stage", Stage.IDEATION.value)
    if stage == Stage.COMPLETE.value:
        return None
    return step_at(stage, state.get("stepIndex", 0))


def make_captured_value(
    step: StepDescriptor,
    raw_text: str,
    processed_text: str,
    source: str = CaptureSource.USER_INPUT.value,
    items: Optional[List[str]] = None,
    confirmed: bool = False,
) -> CapturedValue:
    value = CapturedValue(
        stepId=step.id.value,
        rawText=raw_text,
        processedText=processed_text,
        source=source,
        capturedAt=utc_now_iso(),
        confirmed=confirmed,
    )
    if step.list_valued:
        value["items"] = list(items or [])
    return value


def persistent_view(state: ConversationState) -> Dict[str, Any]:
    """Subset of the state that persistence cares about."""
    return {key: state.get(key) for key in PERSISTENT_FIELDS}


def is_empty_state(state: Optional[ConversationState]) -> bool:
    """True for states with nothing worth saving (fresh welcome, nothing captured)."""
    if not state:
        return True
    return (
        not state.get("capturedData")
        and not state.get("recaps")
        and not state.get("skippedSteps")
        and state.get("phase", Phase.WELCOME.value) == Phase.WELCOME.value
        and state.get("stage", Stage.IDEATION.value) == Stage.IDEATION.value
    )


def calculate_progress(state: ConversationState) -> Dict[str, int]:
    """Confirmed or skipped steps over all steps.

    Returns:
        {"completed": int, "total": int, "percentage": int}
    """
    steps = all_steps()
    captured = state.get("capturedData", {}) or {}
    skipped = set(state.get("skippedSteps", []) or [])
    completed = 0
    for step in steps:
        value = captured.get(step.id.value)
        if (value and value.get("confirmed")) or step.id.value in skipped:
            completed += 1
    total = len(steps)
    return {
        "completed": completed,
        "total": total,
        "percentage": round(completed * 100 / total) if total else 0,
    }


# ----------------------------------------------------------------------------
# Legacy shapes
# ----------------------------------------------------------------------------

_LEGACY_STORE_KEYS = {
    "ideation.bigIdea": StepId.BIG_IDEA,
    "ideation.essentialQuestion": StepId.ESSENTIAL_QUESTION,
    "ideation.challenge": StepId.CHALLENGE,
    "journey.phases": StepId.PHASES,
    "journey.activities": StepId.ACTIVITIES,
    "journey.resources": StepId.RESOURCES,
    "deliverables.milestones": StepId.MILESTONES,
    "deliverables.rubric": StepId.RUBRIC,
    "deliverables.impact": StepId.IMPACT,
}

# Legacy journey-state names that are not a step: (stage, phase)
_LEGACY_STAGE_STATES = {
    "IDEATION_INITIATOR": (Stage.IDEATION, Phase.WELCOME),
    "IDEATION_CLARIFIER": (Stage.IDEATION, Phase.ADVANCING),
    "JOURNEY_INITIATOR": (Stage.JOURNEY, Phase.WELCOME),
    "JOURNEY_CLARIFIER": (Stage.JOURNEY, Phase.ADVANCING),
    "DELIVERABLES_INITIATOR": (Stage.DELIVERABLES, Phase.WELCOME),
    "DELIVERABLES_CLARIFIER": (Stage.DELIVERABLES, Phase.ADVANCING),
    "PUBLISH_REVIEW": (Stage.COMPLETE, Phase.COMPLETE),
    "COMPLETE": (Stage.COMPLETE, Phase.COMPLETE),
}

_LEGACY_PHASES = {
    "welcome": Phase.WELCOME,
    "stage_init": Phase.WELCOME,
    "entry": Phase.AWAITING_INPUT,
    "awaiting": Phase.AWAITING_INPUT,
    "clarifier": Phase.ADVANCING,
    "stage_complete": Phase.ADVANCING,
    "transition": Phase.ADVANCING,
    "complete": Phase.COMPLETE,
}

_KNOWN_FIELDS = set(ConversationState.__annotations__)
_LEGACY_ONLY_FIELDS = {"currentState", "step", "progress", "pendingValue", "lastAssistantMessage"}


def _step_from_legacy_key(key: str) -> Optional[StepId]:
    if key in _LEGACY_STORE_KEYS:
        return _LEGACY_STORE_KEYS[key]
    try:
        return StepId(key)
    except ValueError:
        pass
    for step in all_steps():
        if key == step.state_key:
            return step.id
    return None


def _upgrade_captured_value(step_id: StepId, value: Any) -> Optional[CapturedValue]:
    step = get_step(step_id)
    if value is None or value == "" or value == []:
        return None

    if isinstance(value, dict):
        raw = value.get("rawText") or value.get("processedText") or value.get("text") or ""
        upgraded = CapturedValue(
            stepId=step_id.value,
            rawText=str(raw),
            processedText=str(value.get("processedText") or raw),
            source=value.get("source") or CaptureSource.USER_INPUT.value,
            capturedAt=value.get("capturedAt") or utc_now_iso(),
            confirmed=bool(value.get("confirmed", True)),
        )
        if step.list_valued:
            items = value.get("items")
            upgraded["items"] = [str(item) for item in items] if isinstance(items, list) else [raw] if raw else []
        return upgraded

    if isinstance(value, list):
        items = [str(item).strip() for item in value if str(item).strip()]
        text = "\n".join(f"- {item}" for item in items)
        upgraded = CapturedValue(
            stepId=step_id.value,
            rawText=text,
            processedText=text,
            source=CaptureSource.USER_INPUT.value,
            capturedAt=utc_now_iso(),
            confirmed=True,
        )
        if step.list_valued:
            upgraded["items"] = items
        return upgraded

    text = str(value).strip()
    upgraded = CapturedValue(
        stepId=step_id.value,
        rawText=text,
        processedText=text,
        source=CaptureSource.USER_INPUT.value,
        capturedAt=utc_now_iso(),
        confirmed=True,
    )
    if step.list_valued:
        upgraded["items"] = [text]
    return upgraded


def _flatten_nested_legacy(captured: Dict[str, Any]) -> Dict[str, Any]:
    """Turn {"ideation": {"bigIdea": ...}} into {"ideation.bigIdea": ...}."""
    flat: Dict[str, Any] = {}
    for key, value in captured.items():
        if key in ("ideation", "journey", "deliverables") and isinstance(value, dict) and "stepId" not in value:
            for inner_key, inner_value in value.items():
                flat[f"{key}.{inner_key}"] = inner_value
        else:
            flat[key] = value
    return flat


def upgrade_state(raw: Dict[str, Any]) -> ConversationState:
    """Upgrade a persisted state of any known shape to the current schema.

    Handles:
        - capturedData values stored as bare strings or lists
        - dotted store keys ("ideation.bigIdea") and nested stage dicts
        - legacy journey-state names in ``currentState`` or ``step``
        - lower-case legacy phase names ("entry", "clarifier", ...)
        - out-of-range stepIndex (clamped)

    Returns:
        A new ConversationState; ``raw`` is not modified.
    """
    raw = copy.deepcopy(raw or {})
    state = new_conversation_state(raw.get("wizardContext") or raw.get("wizardData"))

    unknown = set(raw) - _KNOWN_FIELDS - _LEGACY_ONLY_FIELDS - {"wizardData"}
    if unknown:
        logger.warning(f"Dropping unknown conversation state fields: {sorted(unknown)}")

    # Captured answers
    captured_raw = _flatten_nested_legacy(raw.get("capturedData") or {})
    captured: Dict[str, CapturedValue] = {}
    for key, value in captured_raw.items():
        step_id = _step_from_legacy_key(key)
        if step_id is None:
            logger.warning(f"Dropping captured value with unknown key: {key}")
            continue
        upgraded = _upgrade_captured_value(step_id, value)
        if upgraded is not None:
            captured[step_id.value] = upgraded
    state["capturedData"] = captured

    # Position: legacy journey-state name wins over stage/stepIndex when present
    stage = Stage.IDEATION
    step_index = 0
    phase: Optional[Phase] = None
    legacy_position = raw.get("currentState") or (raw.get("step") if isinstance(raw.get("step"), str) else None)
    if legacy_position and legacy_position in _LEGACY_STAGE_STATES:
        stage, phase = _LEGACY_STAGE_STATES[legacy_position]
    elif legacy_position and _step_from_legacy_key(legacy_position) is not None:
        step = get_step(_step_from_legacy_key(legacy_position))
        stage, step_index = step.stage, step.ordinal
    else:
        try:
            stage = Stage(str(raw.get("stage", Stage.IDEATION.value)).upper())
        except ValueError:
            logger.warning(f"Unknown stage {raw.get('stage')!r}, resetting to IDEATION")
            stage = Stage.IDEATION
        try:
            step_index = int(raw.get("stepIndex", 0) or 0)
        except (TypeError, ValueError):
            step_index = 0

    raw_phase = raw.get("phase")
    if phase is None and raw_phase is not None:
        if isinstance(raw_phase, str) and raw_phase.lower() in _LEGACY_PHASES:
            phase = _LEGACY_PHASES[raw_phase.lower()]
        else:
            try:
                phase = Phase(str(raw_phase).upper())
            except ValueError:
                logger.warning(f"Unknown phase {raw_phase!r}, resetting to AWAITING_INPUT")
                phase = Phase.AWAITING_INPUT
    if phase is None:
        phase = Phase.WELCOME

    if stage is Stage.COMPLETE or phase is Phase.COMPLETE:
        stage, step_index, phase = Stage.COMPLETE, 0, Phase.COMPLETE
    else:
        max_index = len(steps_for(stage)) - 1
        if step_index < 0 or step_index > max_index:
            logger.warning(f"Clamping stepIndex {step_index} into 0..{max_index} for {stage.value}")
            step_index = min(max(step_index, 0), max_index)
        if phase is Phase.ADVANCING:
            step_index = max_index
        if phase is Phase.VALIDATING:
            phase = Phase.AWAITING_INPUT
        if phase is Phase.AWAITING_CONFIRMATION:
            if steps_for(stage)[step_index].id.value not in captured:
                phase = Phase.AWAITING_INPUT

    state["stage"] = stage.value
    state["stepIndex"] = step_index
    state["phase"] = phase.value

    state["recaps"] = {
        str(key).upper(): str(value)
        for key, value in (raw.get("recaps") or {}).items()
        if str(key).upper() in Stage.__members__ and value
    }
    state["conversationDepth"] = int(raw.get("conversationDepth", 0) or 0)
    last_intent = raw.get("lastIntent")
    state["lastIntent"] = last_intent if isinstance(last_intent, dict) and "intent" in last_intent else None
    state["draftText"] = raw.get("draftText")
    state["skippedSteps"] = [
        step_id for step_id in (raw.get("skippedSteps") or []) if step_id in StepId._value2member_map_
    ]
    state["schemaVersion"] = SCHEMA_VERSION
    return state
