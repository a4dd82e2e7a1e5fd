"""Structural validation for each step's answer.

One validator per StepId. Validators check shape, not meaning: an Essential
Question must be an open question, a Challenge needs an action verb, list
steps need enough items. They may also transform the input (strip
"My big idea is ...", coerce "I am interested in X" into a question,
normalise a list) and the engine captures ``transformed_input`` instead of
the raw text.

Severity:
- None: valid, capture as-is
- "warn": valid, capture but nudge (message + suggestions)
- "error": invalid, do not capture, return guidance

``ValidatorRegistry.validate`` never raises. A validator bug becomes an
error result and an error log.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from blueprint_coach.observability import create_custom_span
from blueprint_coach.state.stage_graph import StepId, assert_covers_all_steps, get_step

logger = logging.getLogger(__name__)

WARN = "warn"
ERROR = "error"


@dataclass
class ValidationResult:
    is_valid: bool
    severity: Optional[str] = None
    transformed_input: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)
    message: Optional[str] = None
    items: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, transformed_input: Optional[str] = None, items: Optional[List[str]] = None) -> "ValidationResult":
        return cls(is_valid=True, transformed_input=transformed_input, items=list(items or []))

    @classmethod
    def warn(cls, message: str, suggestions: List[str], transformed_input: Optional[str] = None,
             items: Optional[List[str]] = None) -> "ValidationResult":
        return cls(is_valid=True, severity=WARN, transformed_input=transformed_input,
                   suggestions=suggestions, message=message, items=list(items or []))

    @classmethod
    def error(cls, message: str, suggestions: List[str]) -> "ValidationResult":
        return cls(is_valid=False, severity=ERROR, suggestions=suggestions, message=message)


Validator = Callable[[str, Dict[str, Any]], ValidationResult]


# ============================================================================
# Text helpers
# ============================================================================

def _clean(text: str) -> str:
    cleaned = (text or "").strip()
    if len(cleaned) >= 2 and cleaned[0] in "\"'“" and cleaned[-1] in "\"'”":
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _strip_lead_in(text: str, lead_ins: List[str]) -> str:
    for lead_in in lead_ins:
        match = re.match(lead_in, text, re.IGNORECASE)
        if match:
            remainder = text[match.end():].strip()
            if remainder:
                return remainder[0].upper() + remainder[1:]
    return text


def _words(text: str) -> List[str]:
    return re.findall(r"[\w'-]+", text)


_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def parse_list_items(text: str) -> List[str]:
    """Split a free-text list into items.

    Newline / bullet lists win; otherwise semicolons; otherwise commas.
    """
    text = (text or "").strip()
    if not text:
        return []
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) > 1:
        parts = lines
    elif ";" in text:
        parts = text.split(";")
    elif "," in text:
        parts = text.split(",")
    else:
        parts = [text]

    items = []
    for part in parts:
        item = _BULLET.sub("", part).strip().rstrip(".").strip()
        item = re.sub(r"^(and|then)\s+", "", item, flags=re.IGNORECASE)
        if item:
            items.append(item)
    return items


def format_list(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


# ============================================================================
# Ideation
# ============================================================================

_BIG_IDEA_LEAD_INS = [
    r"^(i think\s+)?(my|our|the)\s+big\s+idea\s+(is|would be|will be)\s*:?\s*",
    r"^big\s+idea\s*:\s*",
]
_CONCEPTUAL_CONNECTORS = re.compile(r"\b(as|through|by|using|with|transformation|connection|impact)\b", re.IGNORECASE)


def validate_big_idea(raw_text: str, context: Dict[str, Any]) -> ValidationResult:
    text = _strip_lead_in(_clean(raw_text), _BIG_IDEA_LEAD_INS).rstrip(".").strip()
    words = _words(text)
    if len(words) < 3:
        return ValidationResult.error(
            "A Big Idea needs a little more shape than a single topic.",
            [
                "Pair your topic with a conceptual lens: \"[Topic] as [Conceptual Lens]\"",
                "Example: \"Technology as a force for change\"",
            ],
        )
    if len(words) < 10 and not _CONCEPTUAL_CONNECTORS.search(text):
        return ValidationResult.warn(
            "This works as a starting point. Big Ideas land best with a conceptual lens.",
            ["Try the \"[Topic] as [Conceptual Lens]\" pattern, e.g. \"Water as a shared resource\""],
            transformed_input=text,
        )
    return ValidationResult.ok(transformed_input=text)


_EQ_LEAD_INS = [
    r"^(i think\s+)?(my|our|the)\s+(essential\s+)?question\s+(is|would be|will be)\s*:?\s*",
    r"^(essential\s+)?question\s*:\s*",
]
_INTEREST_STATEMENT = re.compile(
    r"^(i am|i'm)\s+interested\s+in\s+(?P<a>.+)$|^i\s+(really\s+)?like\s+(?P<b>.+)$|^i\s+want\s+to\s+explore\s+(?P<c>.+)$",
    re.IGNORECASE,
)
_OPEN_QUESTION_STEM = re.compile(r"^(how|what|why|in what ways|to what extent)\b", re.IGNORECASE)
_CLOSED_STARTERS = {
    "is", "are", "was", "were", "do", "does", "did", "can", "could",
    "will", "would", "should", "has", "have",
}
_EQ_SUGGESTIONS = [
    "Start with \"How might we...\" or \"Why does...\"",
    "Example: \"How might we use technology to make our community more sustainable?\"",
]


def validate_essential_question(raw_text: str, context: Dict[str, Any]) -> ValidationResult:
    text = _strip_lead_in(_clean(raw_text), _EQ_LEAD_INS)

    interest = _INTEREST_STATEMENT.match(text.rstrip(".!"))
    if interest:
        topic = (interest.group("a") or interest.group("b") or interest.group("c")).strip().rstrip("?.! ")
        question = f"How might {topic} shape our community?"
        return ValidationResult.warn(
            "I turned your interest into an open question. Adjust it so it sounds like you.",
            ["Make sure the question has no single right answer"],
            transformed_input=question,
        )

    added_mark = False
    if "?" not in text:
        if not _OPEN_QUESTION_STEM.match(text):
            return ValidationResult.error(
                "An Essential Question needs to be phrased as a question.",
                _EQ_SUGGESTIONS,
            )
        text = text.rstrip(".!; ") + "?"
        added_mark = True

    words = _words(text)
    if words and words[0].lower() in _CLOSED_STARTERS:
        return ValidationResult.error(
            f"Questions starting with \"{words[0]}\" usually have yes/no answers. Essential Questions stay open.",
            _EQ_SUGGESTIONS,
        )

    if len(words) < 4:
        return ValidationResult.error(
            "That question is a bit short to drive a whole unit.",
            _EQ_SUGGESTIONS,
        )

    if added_mark:
        return ValidationResult.warn(
            "I added the question mark so it reads as a question.",
            ["Check the wording still says what you mean"],
            transformed_input=text,
        )
    return ValidationResult.ok(transformed_input=text)


_ACTION_VERB = re.compile(
    r"\b(creat|design|build|built|develop|solv|investigat|explor|document|produc|organi[sz]|"
    r"plan|present|propos|launch|teach|writ|wrote|make|making|made)\w*",
    re.IGNORECASE,
)
_CHALLENGE_LEAD_INS = [
    r"^(i think\s+)?(my|our|the)\s+challenge\s+(is|would be|will be)\s*(to\s+)?:?\s*",
    r"^challenge\s*:\s*",
]


def validate_challenge(raw_text: str, context: Dict[str, Any]) -> ValidationResult:
    text = _strip_lead_in(_clean(raw_text), _CHALLENGE_LEAD_INS).rstrip(".").strip()
    if not _ACTION_VERB.search(text):
        return ValidationResult.error(
            "A Challenge should ask students to do something concrete.",
            [
                "Start with an action verb: create, design, build, develop, solve, investigate",
                "Example: \"Design a campaign that helps local businesses reduce waste\"",
            ],
        )
    if len(_words(text)) < 5:
        return ValidationResult.warn(
            "Good action. Add who it's for or what it should achieve.",
            ["Name a real audience or purpose for the work"],
            transformed_input=text,
        )
    return ValidationResult.ok(transformed_input=text)


# ============================================================================
# Journey / Deliverables (list-valued)
# ============================================================================

def _list_validator(label: str, minimum: int, suggestions: List[str]) -> Validator:
    def validate(raw_text: str, context: Dict[str, Any]) -> ValidationResult:
        items = parse_list_items(_clean(raw_text))
        if len(items) < minimum:
            noun = "item" if minimum == 1 else "items"
            return ValidationResult.error(
                f"Your {label} needs at least {minimum} {noun}.",
                suggestions,
            )
        return ValidationResult.ok(transformed_input=format_list(items), items=items)

    validate.__name__ = f"validate_{label.lower().replace(' ', '_')}"
    return validate


validate_phases = _list_validator(
    "Learning Phases",
    2,
    [
        "List 3-4 phases separated by commas",
        "Example: \"Investigate, Ideate, Prototype, Share\"",
    ],
)
validate_activities = _list_validator(
    "Activities",
    2,
    [
        "Name at least two activities, one per line or separated by semicolons",
        "Mix individual and collaborative work",
    ],
)
validate_resources = _list_validator(
    "Resources",
    1,
    [
        "Name at least one expert, text, or tool",
        "Or choose Skip if you'd rather add resources later",
    ],
)
validate_milestones = _list_validator(
    "Milestones",
    2,
    [
        "List at least two checkpoints",
        "Example: \"Research brief; prototype showcase; final presentation\"",
    ],
)


def validate_rubric(raw_text: str, context: Dict[str, Any]) -> ValidationResult:
    items = parse_list_items(_clean(raw_text))
    if not items:
        return ValidationResult.error(
            "A rubric needs at least one criterion.",
            ["Example: \"Inquiry depth; collaboration; quality of craft; reflection\""],
        )
    if len(items) == 1:
        return ValidationResult.warn(
            "One criterion is a start. Most rubrics balance process and product.",
            ["Add criteria for collaboration or reflection"],
            transformed_input=format_list(items),
            items=items,
        )
    return ValidationResult.ok(transformed_input=format_list(items), items=items)


_AUDIENCE_MARKERS = re.compile(
    r"\b(audience|community|parents|families|local|public|experts?|school|class(mates)?|"
    r"students|stakeholders|council|partners?|share|present|publish|exhibit)\w*",
    re.IGNORECASE,
)


def validate_impact(raw_text: str, context: Dict[str, Any]) -> ValidationResult:
    text = _clean(raw_text).rstrip(".").strip()
    if len(_words(text)) < 3:
        return ValidationResult.error(
            "Tell me a little more about how the work reaches the world.",
            ["Example: \"Students present their campaigns to the city council\""],
        )
    if not _AUDIENCE_MARKERS.search(text):
        return ValidationResult.warn(
            "Consider naming who will see or use the work.",
            ["Think beyond classroom walls: families, local experts, community partners"],
            transformed_input=text,
        )
    return ValidationResult.ok(transformed_input=text)


VALIDATORS: Dict[StepId, Validator] = {
    StepId.BIG_IDEA: validate_big_idea,
    StepId.ESSENTIAL_QUESTION: validate_essential_question,
    StepId.CHALLENGE: validate_challenge,
    StepId.PHASES: validate_phases,
    StepId.ACTIVITIES: validate_activities,
    StepId.RESOURCES: validate_resources,
    StepId.MILESTONES: validate_milestones,
    StepId.RUBRIC: validate_rubric,
    StepId.IMPACT: validate_impact,
}

assert_covers_all_steps(VALIDATORS, "VALIDATORS")


class ValidatorRegistry:
    """Looks up and runs the validator for a step. Never raises."""

    def __init__(self, validators: Optional[Dict[StepId, Validator]] = None):
        self._validators = dict(validators or VALIDATORS)
        assert_covers_all_steps(self._validators, "ValidatorRegistry")

    def validate(self, step_id, raw_text: str, context: Optional[Dict[str, Any]] = None) -> ValidationResult:
        step = get_step(step_id)
        validator = self._validators[step.id]
        with create_custom_span("validate_step", {"step": step.id.value, "text": (raw_text or "")[:120]}):
            try:
                result = validator(raw_text or "", context or {})
            except Exception as e:
                logger.error(f"Validator for {step.id.value} failed: {e}", exc_info=True)
                return ValidationResult.error(
                    f"I couldn't check that {step.label} just now.",
                    ["Try rephrasing it in a single sentence", "Or choose Ideas to see examples"],
                )
        logger.debug(
            f"Validated {step.id.value}: valid={result.is_valid} severity={result.severity}"
        )
        return result
