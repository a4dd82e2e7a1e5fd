"""Turn setup and edge case short-circuit.

First two nodes of the answer pipeline:
- initialize_turn: count the turn, remember the entry phase
- detect_turn_edge_case: canned reply for blank / ramble / why / multiple / confusion
"""

import logging

from blueprint_coach.config.settings import EngineSettings
from blueprint_coach.flows.node_logic.util_edge_case_detection import detect_edge_cases
from blueprint_coach.flows.node_logic.util_edge_case_responses import get_edge_case_response
from blueprint_coach.observability import create_custom_span
from blueprint_coach.state.conversation_state import current_step
from blueprint_coach.state.turn_state import TurnState

logger = logging.getLogger(__name__)


def initialize_turn(turn: TurnState) -> TurnState:
    conversation = turn["conversation"]
    conversation["conversationDepth"] = conversation.get("conversationDepth", 0) + 1
    turn.setdefault("entry_phase", conversation["phase"])
    turn.setdefault("prior_messages", [])
    turn.setdefault("ui_affordances", [])
    turn["pipeline_halt"] = False
    return turn


def detect_turn_edge_case(turn: TurnState, settings: EngineSettings) -> TurnState:
    """Reply with a canned message and halt when the text is an edge case.

    Card selections are pre-validated suggestions and skip this check.
    """
    if turn.get("is_card"):
        turn["edge_case"] = {}
        return turn

    step = current_step(turn["conversation"])
    with create_custom_span("detect_edge_case", {"text": turn.get("text", "")[:120]}):
        edge_case = detect_edge_cases(turn.get("text", ""), step, settings)

    turn["edge_case"] = edge_case
    if edge_case:
        edge_case_type = edge_case["edge_case_type"]
        logger.debug(f"Edge case {edge_case_type} on {step.id.value}")
        reply, affordances = get_edge_case_response(edge_case_type, step)
        turn["reply_text"] = reply
        turn["ui_affordances"] = affordances
        turn["outcome"] = "edge_case"
        turn["pipeline_halt"] = True
    return turn
