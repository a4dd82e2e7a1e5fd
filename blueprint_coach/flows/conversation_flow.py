"""Conversation engine: applies one UI event to a ConversationState.

Control flow for one event:
    UI event → parse_event → ConversationEngine.handle_event
        button  → progression helpers (start / confirm / refine / skip / edit / help / ideas / whatif)
        text    → answer pipeline (below)
        card    → answer pipeline, classifier bypassed
    → TurnResult {reply_text, ui_affordances, new_state, outcome, committed, generation_request}

Answer pipeline (one TurnState threaded through the nodes):
1. initialize_turn → count the turn, remember the entry phase
2. detect_turn_edge_case → blank / ramble / why / multiple / confusion short-circuit
3. classify_turn_intent → intent + confidence (pluggable classifier)
4. route_turn → validate / probe / confirm / help / explore
5. validate_turn_answer → step validator (never raises)
6. apply_turn_answer → capture, confirm, or guide

Phases:
    WELCOME → AWAITING_INPUT → (VALIDATING) → AWAITING_CONFIRMATION → ADVANCING
        → next stage WELCOME | COMPLETE

Guarantees:
- the incoming state is never mutated; new_state is a fresh copy
- user input never raises; failures come back as outcomes with a helpful reply
- ``committed`` is True only when a persisted field changed
- COMPLETE accepts nothing; every event is a rejected no-op

``build_turn_graph`` exposes the same answer pipeline as a LangGraph
StateGraph for Studio.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from langgraph.graph import END, START, StateGraph

from blueprint_coach.config.settings import EngineSettings, get_settings
from blueprint_coach.core.suggestion_service import GenerationRequest
from blueprint_coach.errors import MalformedEventError
from blueprint_coach.flows.node_logic import util_prompt_templates as templates
from blueprint_coach.flows.node_logic.stage0_turn_setup import detect_turn_edge_case, initialize_turn
from blueprint_coach.flows.node_logic.stage1_intent_classifier import (
    CONFIRMING,
    IntentClassifier,
    KeywordIntentClassifier,
)
from blueprint_coach.flows.node_logic.stage1_intent_routing import (
    classify_turn_intent,
    implied_assistant_message,
    route_turn,
)
from blueprint_coach.flows.node_logic.stage2_answer_capture import apply_turn_answer, validate_turn_answer
from blueprint_coach.flows.node_logic.stage2_step_validation import ValidatorRegistry
from blueprint_coach.flows.node_logic.stage3_recap import generate_recap
from blueprint_coach.flows.node_logic.stage4_progression import (
    RecapGenerator,
    Transition,
    advance_stage,
    commit_current_step,
    edit_step,
    refine_current_step,
    skip_current_step,
    start_stage,
)
from blueprint_coach.flows.node_logic.util_edge_case_detection import detect_edge_cases
from blueprint_coach.observability import create_custom_span
from blueprint_coach.state.conversation_state import (
    CaptureSource,
    ConversationState,
    Phase,
    copy_state,
    current_step,
    new_conversation_state,
    persistent_view,
)
from blueprint_coach.state.stage_graph import StepId, get_step, steps_for
from blueprint_coach.state.turn_state import TurnState

logger = logging.getLogger(__name__)


# ============================================================================
# Events
# ============================================================================

BUTTON_ACTIONS = ("start", "confirm", "refine", "ideas", "whatif", "help", "skip")


@dataclass(frozen=True)
class UserText:
    text: str


@dataclass(frozen=True)
class ButtonAction:
    action: str
    step_id: Optional[str] = None


@dataclass(frozen=True)
class CardSelection:
    text: str
    source: str = CaptureSource.CARD_SELECTION.value


Event = Union[UserText, ButtonAction, CardSelection]


def parse_event(raw: Dict[str, Any]) -> Event:
    """Convert the UI contract ``{type, payload}`` into an Event.

    Accepted shapes:
        {"type": "text", "payload": "..."} or payload {"text": "..."}
        {"type": "button", "payload": "confirm" | "edit:BigIdea"} or payload {"action": ...}
        {"type": "card", "payload": "..."} or payload {"text": "...", "source": "ai-suggestion"}

    Raises:
        MalformedEventError: unknown type, action, step or a missing payload
    """
    if not isinstance(raw, dict):
        raise MalformedEventError(f"Event must be an object, got {type(raw).__name__}")
    event_type = raw.get("type")
    payload = raw.get("payload")

    if event_type == "text":
        text = payload.get("text") if isinstance(payload, dict) else payload
        if not isinstance(text, str):
            raise MalformedEventError("Text event needs a string payload")
        return UserText(text=text)

    if event_type == "button":
        action = payload.get("action") if isinstance(payload, dict) else payload
        if not isinstance(action, str) or not action:
            raise MalformedEventError("Button event needs an action")
        if action.startswith("edit:"):
            step_id = action.split(":", 1)[1]
            if step_id not in StepId._value2member_map_:
                raise MalformedEventError(f"Unknown step in edit action: {step_id!r}")
            return ButtonAction(action="edit", step_id=step_id)
        if action not in BUTTON_ACTIONS:
            raise MalformedEventError(f"Unknown button action: {action!r}")
        return ButtonAction(action=action)

    if event_type == "card":
        if isinstance(payload, dict):
            text = payload.get("text")
            source = payload.get("source") or CaptureSource.CARD_SELECTION.value
        else:
            text, source = payload, CaptureSource.CARD_SELECTION.value
        if not isinstance(text, str) or not text.strip():
            raise MalformedEventError("Card event needs non-empty text")
        if source not in CaptureSource._value2member_map_:
            raise MalformedEventError(f"Unknown card source: {source!r}")
        return CardSelection(text=text, source=source)

    raise MalformedEventError(f"Unknown event type: {event_type!r}")


# ============================================================================
# Result
# ============================================================================

@dataclass
class TurnResult:
    reply_text: str
    ui_affordances: List[Dict[str, Any]]
    new_state: ConversationState
    outcome: str
    committed: bool = False
    generation_request: Optional[GenerationRequest] = None

    def to_response(self) -> Dict[str, Any]:
        return {
            "replyText": self.reply_text,
            "uiAffordances": self.ui_affordances,
            "newState": self.new_state,
        }


Node = Callable[[TurnState], TurnState]


# ============================================================================
# Engine
# ============================================================================

class ConversationEngine:
    """Stateless engine; all conversation state lives in the ConversationState passed in.

    Example:
        engine = ConversationEngine()
        state = new_conversation_state()
        result = engine.handle_event(state, {"type": "button", "payload": "start"})
        result = engine.handle_event(result.new_state, {"type": "text", "payload": "Technology as a force for change"})
        result.new_state["phase"]  # "AWAITING_CONFIRMATION"
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        classifier: Optional[IntentClassifier] = None,
        validators: Optional[ValidatorRegistry] = None,
        recap_generator: RecapGenerator = generate_recap,
    ):
        self.settings = settings or get_settings()
        self.classifier = classifier or KeywordIntentClassifier()
        self.validators = validators or ValidatorRegistry()
        self.recap_generator = recap_generator

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def handle_event(
        self,
        state: Optional[ConversationState],
        event: Union[Event, Dict[str, Any]],
        prior_messages: Optional[Sequence[Dict[str, str]]] = None,
    ) -> TurnResult:
        """Apply one event and return the reply plus the next state.

        Raises:
            MalformedEventError: only for events that break the UI contract
        """
        if isinstance(event, dict):
            event = parse_event(event)
        if state is None:
            state = new_conversation_state()

        start = time.time()
        before = persistent_view(state)
        working = copy_state(state)

        with create_custom_span("handle_event", {
            "event": type(event).__name__,
            "stage": working.get("stage"),
            "phase": working.get("phase"),
        }):
            if working.get("phase") == Phase.COMPLETE.value:
                result = TurnResult(
                    reply_text=templates.complete_message(working.get("recaps", {})),
                    ui_affordances=[],
                    new_state=copy_state(state),
                    outcome="rejected",
                )
            elif isinstance(event, ButtonAction):
                result = self._handle_button(working, event)
            elif isinstance(event, CardSelection):
                result = self._handle_answer(working, event.text, event.source, True, prior_messages)
            elif isinstance(event, UserText):
                result = self._handle_answer(working, event.text, CaptureSource.USER_INPUT.value, False, prior_messages)
            else:
                raise MalformedEventError(f"Unsupported event: {event!r}")

        result.committed = persistent_view(result.new_state) != before
        elapsed_ms = int((time.time() - start) * 1000)
        logger.debug(
            f"{type(event).__name__} → {result.outcome} "
            f"({result.new_state.get('stage')}/{result.new_state.get('phase')}, "
            f"committed={result.committed}, {elapsed_ms}ms)"
        )
        return result

    # ------------------------------------------------------------------
    # Buttons
    # ------------------------------------------------------------------

    def _result(self, state: ConversationState, transition: Transition,
                generation_request: Optional[GenerationRequest] = None) -> TurnResult:
        return TurnResult(
            reply_text=transition.reply_text,
            ui_affordances=transition.ui_affordances,
            new_state=state,
            outcome=transition.outcome,
            generation_request=generation_request,
        )

    def _handle_button(self, state: ConversationState, event: ButtonAction) -> TurnResult:
        phase = state["phase"]
        handler = {
            "start": self._on_start,
            "confirm": self._on_confirm,
            "refine": self._on_refine,
            "skip": self._on_skip,
            "edit": self._on_edit,
            "help": self._on_help,
            "ideas": self._on_generation,
            "whatif": self._on_generation,
        }[event.action]
        logger.debug(f"Button {event.action} in {phase}")
        return handler(state, event)

    def _on_start(self, state: ConversationState, event: ButtonAction) -> TurnResult:
        if state["phase"] == Phase.WELCOME.value:
            return self._result(state, start_stage(state))
        return self._noop(state)

    def _on_confirm(self, state: ConversationState, event: ButtonAction) -> TurnResult:
        phase = state["phase"]
        if phase == Phase.WELCOME.value:
            # A repeated Continue from the previous review lands here
            return self._noop(state)
        if phase == Phase.AWAITING_CONFIRMATION.value:
            return self._result(state, commit_current_step(state, self.settings, self.recap_generator))
        if phase == Phase.ADVANCING.value:
            return self._result(state, advance_stage(state, self.recap_generator))

        step = current_step(state)
        captured = state.get("capturedData", {}).get(step.id.value)
        if captured and captured.get("confirmed"):
            # Keep the existing answer after an edit
            return self._result(state, commit_current_step(state, self.settings, self.recap_generator))
        return self._result(state, Transition(
            f"Share your {step.label} first, then I'll ask you to confirm it.",
            [templates.input_buttons(step)],
            "noop",
        ))

    def _on_refine(self, state: ConversationState, event: ButtonAction) -> TurnResult:
        if state["phase"] != Phase.AWAITING_CONFIRMATION.value:
            return self._rejected(state, "There's no pending answer to refine right now.")
        return self._result(state, refine_current_step(state))

    def _on_skip(self, state: ConversationState, event: ButtonAction) -> TurnResult:
        step = current_step(state)
        if state["phase"] != Phase.AWAITING_INPUT.value or not step.skippable:
            return self._rejected(state, f"{step.label} can't be skipped. It's needed for the rest of your blueprint.")
        return self._result(state, skip_current_step(state, self.settings, self.recap_generator))

    def _on_edit(self, state: ConversationState, event: ButtonAction) -> TurnResult:
        step = get_step(event.step_id)
        if state["phase"] != Phase.ADVANCING.value:
            return self._rejected(state, "You can edit earlier steps from the stage summary once all steps are done.")
        if step not in steps_for(state["stage"]):
            return self._rejected(state, f"{step.label} belongs to a different stage and can't be edited here.")
        return self._result(state, edit_step(state, step.id.value))

    def _on_help(self, state: ConversationState, event: ButtonAction) -> TurnResult:
        step = current_step(state)
        if state["phase"] == Phase.WELCOME.value:
            reply = f"{templates.welcome_message(state['stage'], state.get('wizardContext'))}\n\n{templates.help_message(step)}"
            return self._result(state, Transition(reply, [templates.buttons("start")], "help"))
        if state["phase"] == Phase.ADVANCING.value:
            reply = templates.revision_hint()
            return self._result(state, Transition(reply, [templates.edit_buttons(state["stage"])], "help"))
        return self._result(state, Transition(templates.help_message(step), [templates.input_buttons(step)], "help"))

    def _on_generation(self, state: ConversationState, event: ButtonAction) -> TurnResult:
        step = current_step(state)
        prompt = templates.generation_prompt(
            event.action,
            step,
            state.get("recaps", {}),
            state.get("wizardContext"),
            state.get("draftText"),
        )
        request = GenerationRequest(kind=event.action, step_id=step.id.value, **prompt)
        reply = templates.generation_pending_message(event.action, step)
        return self._result(state, Transition(reply, [], "generation"), generation_request=request)

    def _noop(self, state: ConversationState) -> TurnResult:
        """Repeat the current prompt without touching the state."""
        phase = state["phase"]
        if phase == Phase.WELCOME.value:
            affordances = [templates.buttons("start", "help")]
        elif phase == Phase.AWAITING_CONFIRMATION.value:
            affordances = [templates.buttons("confirm", "refine")]
        elif phase == Phase.ADVANCING.value:
            affordances = [templates.edit_buttons(state["stage"])]
        else:
            affordances = [templates.input_buttons(current_step(state))]
        return self._result(state, Transition(implied_assistant_message(state), affordances, "noop"))

    def _rejected(self, state: ConversationState, reason: str) -> TurnResult:
        step = current_step(state)
        affordances = [templates.input_buttons(step)] if step and state["phase"] == Phase.AWAITING_INPUT.value else []
        if state["phase"] == Phase.ADVANCING.value:
            affordances = [templates.edit_buttons(state["stage"])]
        return self._result(state, Transition(reason, affordances, "rejected"))

    # ------------------------------------------------------------------
    # Text and cards
    # ------------------------------------------------------------------

    def _handle_answer(self, state: ConversationState, text: str, source: str, is_card: bool,
                       prior_messages: Optional[Sequence[Dict[str, str]]]) -> TurnResult:
        phase = state["phase"]
        prefix = ""

        # Typing in the welcome starts the stage, unless the text is an edge case
        if phase == Phase.WELCOME.value and (
            is_card or not detect_edge_cases(text, current_step(state), self.settings)
        ):
            prefix = start_stage(state).reply_text
            phase = state["phase"]

        if phase == Phase.ADVANCING.value:
            return self._handle_review_text(state, text, is_card)

        turn = TurnState(
            conversation=state,
            text=text,
            source=source,
            is_card=is_card,
            prior_messages=list(prior_messages or []),
        )
        turn = self.run_turn_pipeline(turn)
        reply = turn.get("reply_text", "")
        if prefix and turn.get("outcome") in ("edge_case", "explore", "help", "clarify", "guidance"):
            reply = f"{prefix}\n\n{reply}"
        return TurnResult(
            reply_text=reply,
            ui_affordances=turn.get("ui_affordances", []),
            new_state=turn["conversation"],
            outcome=turn.get("outcome", "noop"),
        )

    def _handle_review_text(self, state: ConversationState, text: str, is_card: bool) -> TurnResult:
        """Free text in the stage review: "looks good" advances, anything else points at the edit buttons."""
        if is_card:
            return self._rejected(state, "Choose a step to edit before picking a new option.")
        state["conversationDepth"] = state.get("conversationDepth", 0) + 1
        step = current_step(state)
        turn = TurnState(conversation=state, text=text, entry_phase=Phase.ADVANCING.value, prior_messages=[])
        turn = classify_turn_intent(turn, self.classifier)
        intent = turn["intent"]
        if intent["intent"] == CONFIRMING and intent["confidence"] >= self.settings.low_confidence_threshold:
            return self._result(state, advance_stage(state, self.recap_generator))
        reply = f"{templates.revision_hint()}\n\n{templates.review_message(state['stage'], state.get('recaps', {}).get(state['stage'], ''))}"
        logger.debug(f"Review text on {step.id.value} did not confirm ({intent['intent']})")
        return self._result(state, Transition(reply, [templates.edit_buttons(state["stage"])], "help"))

    def pipeline_nodes(self) -> List[Node]:
        return [
            initialize_turn,
            lambda t: detect_turn_edge_case(t, self.settings),
            lambda t: classify_turn_intent(t, self.classifier),
            lambda t: route_turn(t, self.settings),
            lambda t: validate_turn_answer(t, self.validators),
            lambda t: apply_turn_answer(t, self.settings, self.recap_generator),
        ]

    def run_turn_pipeline(self, turn: TurnState, nodes: Optional[Sequence[Node]] = None) -> TurnState:
        """Run the answer pipeline until a node halts it or the last node replies."""
        pipeline = nodes or self.pipeline_nodes()
        for node in pipeline:
            turn = node(turn)
            if turn.get("pipeline_halt"):
                break
        return turn


# ============================================================================
# LangGraph view (Studio)
# ============================================================================

def build_turn_graph(engine: Optional[ConversationEngine] = None) -> Any:
    """Compile the answer pipeline as a LangGraph StateGraph over TurnState.

    Input: a TurnState with ``conversation`` (in AWAITING_INPUT or
    AWAITING_CONFIRMATION) and ``text``.
    """
    engine = engine or ConversationEngine()
    workflow = StateGraph(TurnState)

    workflow.add_node("initialize", initialize_turn)
    workflow.add_node("edge_case", lambda s: detect_turn_edge_case(s, engine.settings))
    workflow.add_node("classify_intent", lambda s: classify_turn_intent(s, engine.classifier))
    workflow.add_node("route", lambda s: route_turn(s, engine.settings))
    workflow.add_node("validate", lambda s: validate_turn_answer(s, engine.validators))
    workflow.add_node("apply", lambda s: apply_turn_answer(s, engine.settings, engine.recap_generator))

    workflow.add_edge(START, "initialize")
    workflow.add_edge("initialize", "edge_case")
    workflow.add_conditional_edges(
        "edge_case",
        lambda s: "end" if s.get("pipeline_halt") else "classify_intent",
        {"end": END, "classify_intent": "classify_intent"},
    )
    workflow.add_edge("classify_intent", "route")
    workflow.add_conditional_edges(
        "route",
        lambda s: "validate" if s.get("route") in ("validate", "probe") else "apply",
        {"validate": "validate", "apply": "apply"},
    )
    workflow.add_edge("validate", "apply")
    workflow.add_edge("apply", END)
    return workflow.compile()
