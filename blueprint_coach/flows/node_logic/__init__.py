"""Node logic package - answer pipeline nodes and the helpers they share.

Modules are stage-prefixed in pipeline order:
- stage0_turn_setup: turn counting and edge case short-circuit
- stage1_intent_classifier: pluggable keyword intent classifier
- stage1_intent_routing: intent node and graduated-response router
- stage2_step_validation: per-step validators and registry
- stage2_answer_capture: capture / confirm / guide
- stage3_recap: deterministic stage recaps
- stage4_progression: commit, review, advance, skip, edit, refine
- util_*: edge case detection, canned responses, message templates
"""

from __future__ import annotations

from blueprint_coach.flows.node_logic.stage0_turn_setup import detect_turn_edge_case, initialize_turn
from blueprint_coach.flows.node_logic.stage1_intent_routing import classify_turn_intent, route_turn
from blueprint_coach.flows.node_logic.stage2_answer_capture import apply_turn_answer, validate_turn_answer

__all__ = [
    "initialize_turn",
    "detect_turn_edge_case",
    "classify_turn_intent",
    "route_turn",
    "validate_turn_answer",
    "apply_turn_answer",
]
