"""Edge case detection for free-text answers.

Runs before intent classification. All edge cases follow the same pattern:
1. Detect early (first node after turn initialization)
2. Flag in turn state
3. Reply with a canned, actionable message (util_edge_case_responses)
4. Do not capture, validate or advance

Priority order (first match wins):
    blank → ramble → why → multiple → confusion
"""

import logging
import re
from typing import Any, Dict, Optional

from blueprint_coach.config.settings import EngineSettings, get_settings
from blueprint_coach.state.stage_graph import StepDescriptor

logger = logging.getLogger(__name__)

BLANK = "blank"
RAMBLE = "ramble"
WHY = "why"
MULTIPLE = "multiple"
CONFUSION = "confusion"

EDGE_CASE_TYPES = (BLANK, RAMBLE, WHY, MULTIPLE, CONFUSION)

_BLANK_TOKENS = {"ok", "okay", "k"}

_WHY_PATTERNS = [
    r"\bwhy (this|that) step\b",
    r"\bwhy do (we|i) need\b",
    r"\bwhy does (this|that|it) matter\b",
    r"\bwhy are we doing this\b",
    r"\bwhat'?s the point\b",
]

_CONFUSION_PATTERNS = [
    r"\bconfused\b",
    r"\bconfusing\b",
    r"\bdon'?t understand\b",
    r"\bdo not understand\b",
    r"\bnot sure what you mean\b",
    r"\bi'?m lost\b",
    r"\bwhat do you mean\b",
]


def detect_edge_cases(
    text: str,
    step: Optional[StepDescriptor] = None,
    settings: Optional[EngineSettings] = None,
) -> Dict[str, Any]:
    """Detect the first edge case in ``text``.

    Args:
        text: Raw user text
        step: Active step; list-valued steps skip the ``multiple`` rule
        settings: Limits for ``ramble`` and ``multiple``

    Returns:
        Empty dict when the text is ordinary. Otherwise a dict with
        ``edge_case_type`` plus rule-specific metadata.
    """
    settings = settings or get_settings()
    text = text or ""

    if _is_blank(text):
        return {"edge_case_type": BLANK}

    if _is_ramble(text, settings.ramble_max_chars):
        return {"edge_case_type": RAMBLE, "text_length": len(text)}

    if _is_why_question(text):
        return {"edge_case_type": WHY}

    if not (step and step.list_valued):
        clause_count = _count_clauses(text)
        if clause_count > settings.multiple_clause_limit:
            return {"edge_case_type": MULTIPLE, "clause_count": clause_count}

    if _is_confused(text):
        return {"edge_case_type": CONFUSION}

    return {}


def _is_blank(text: str) -> bool:
    stripped = text.strip().lower().rstrip(".!")
    return not stripped or stripped in _BLANK_TOKENS


def _is_ramble(text: str, max_chars: int) -> bool:
    return len(text.strip()) > max_chars


def _is_why_question(text: str) -> bool:
    lowered = text.lower()
    return any(re.search(pattern, lowered) for pattern in _WHY_PATTERNS)


def _count_clauses(text: str) -> int:
    return len([part for part in text.split(",") if part.strip()])


def _is_confused(text: str) -> bool:
    lowered = text.lower()
    return any(re.search(pattern, lowered) for pattern in _CONFUSION_PATTERNS)
