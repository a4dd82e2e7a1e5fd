"""Canned responses for detected edge cases.

Edge case replies never capture or advance, so each one tells the user what
to do next and offers the matching buttons.
"""

import logging
from typing import Any, Dict, List, Tuple

from blueprint_coach.flows.node_logic.util_edge_case_detection import (
    BLANK,
    CONFUSION,
    MULTIPLE,
    RAMBLE,
    WHY,
)
from blueprint_coach.flows.node_logic.util_prompt_templates import buttons, help_message, input_buttons
from blueprint_coach.state.stage_graph import StepDescriptor, stage_context

logger = logging.getLogger(__name__)

_CANNED = {
    BLANK: "Please share your thoughts or click one of the options below for inspiration.",
    RAMBLE: "Let's focus on one key point. What's the most important aspect you'd like to capture?",
    MULTIPLE: "I see multiple ideas here. Let's focus on one at a time. Which would you like to explore first?",
}


def get_edge_case_response(edge_case_type: str, step: StepDescriptor) -> Tuple[str, List[Dict[str, Any]]]:
    """Reply text and affordances for an edge case on the active step.

    Returns:
        (reply_text, ui_affordances)
    """
    if edge_case_type == WHY:
        context = stage_context(step.stage, step.ordinal)
        tips = "\n".join(f"• {tip}" for tip in context["tips"])
        reply = (
            f"Good question. {context['description']} {step.objective}\n\n"
            f"{tips}"
        )
        return reply, [input_buttons(step)]

    if edge_case_type == CONFUSION:
        reply = f"No worries, let's slow down.\n\n{help_message(step)}"
        return reply, [buttons("ideas", "help")]

    if edge_case_type in _CANNED:
        return _CANNED[edge_case_type], [input_buttons(step)]

    logger.warning(f"No canned response for edge case {edge_case_type!r}")
    return _CANNED[BLANK], [input_buttons(step)]
