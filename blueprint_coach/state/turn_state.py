"""TurnState TypedDict for the per-turn node pipeline.

One TurnState is built per free-text or card event and threaded through the
answer-handling nodes (and the LangGraph view of them). Nodes read what they
need, write their outputs, and set ``pipeline_halt`` to short-circuit.
"""

from typing import Any, Dict, List, Optional

from typing_extensions import TypedDict

from blueprint_coach.state.conversation_state import ConversationState


class TurnState(TypedDict, total=False):
    """State passed between answer-handling nodes for a single event."""

    conversation: ConversationState
    """Working copy of the conversation state; nodes mutate it in place."""

    text: str
    """User text or selected card text."""

    source: str
    """CaptureSource value for anything captured this turn."""

    is_card: bool
    """Card selections bypass edge-case detection and the classifier."""

    entry_phase: str
    """Phase before the pipeline ran; restored when nothing is captured."""

    prior_messages: List[Dict[str, str]]
    """Recent transcript, newest last, for classifier context."""

    edge_case: Dict[str, Any]
    """Output of detect_edge_cases, empty when the text is ordinary."""

    intent: Optional[Dict[str, Any]]
    """IntentResult as a dict: intent, confidence, alternatives."""

    route: str
    """validate | probe | confirm | help | explore."""

    validation: Any
    """ValidationResult for validate / probe routes."""

    reply_text: str
    ui_affordances: List[Dict[str, Any]]
    outcome: str

    pipeline_halt: bool
    """True once a node produced the final reply."""
