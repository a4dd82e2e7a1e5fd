"""Intent classification for free-text answers.

Decides whether the user is exploring, asking, submitting, elaborating,
confirming, refining, or unsure, and how confident that call is. The engine
turns confidence into a graduated response (clarify / confirm / auto-advance)
using thresholds from EngineSettings.

The classifier is a strategy: anything implementing ``IntentClassifier`` can
be passed to the engine (tests use a stub). ``KeywordIntentClassifier`` is the
default heuristic.

Scoring:
1. +weight for every matching pattern, per intent
2. Structural adjustments (question mark, filler opening, length, clauses, lists)
3. Declarative-submission bonus for plain statements with no tentative language
4. Context adjustments (stage start, review phase, previous intent, last assistant message)
5. Scores clamped at zero; confidence = dominance x strength

    confidence = 100 * (top / total) * (0.5 + 0.5 * min(1, top / strength_saturation))

6. A short follow-up after an exploring turn stays exploring unless another
   intent scores strongly
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from typing_extensions import Protocol

logger = logging.getLogger(__name__)

EXPLORING = "exploring"
ELABORATING = "elaborating"
QUESTIONING = "questioning"
UNCERTAIN = "uncertain"
SUBMITTING = "submitting"
CONFIRMING = "confirming"
REFINING = "refining"

INTENTS = (EXPLORING, ELABORATING, QUESTIONING, UNCERTAIN, SUBMITTING, CONFIRMING, REFINING)


def _compile(patterns: Sequence[str]) -> Tuple[Pattern, ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


DEFAULT_PATTERNS: Dict[str, Tuple[str, ...]] = {
    EXPLORING: (
        r"\b(maybe|perhaps|possibly|might|could be|thinking about|wondering if)\b",
        r"\b(trying to|figuring out)\b",
        r"\b(exploring|considering|pondering|contemplating)\b",
        r"\b(one idea|an idea|thinking maybe|we could try)\b",
        r"\b(something like|along the lines of|sort of|kind of)\b",
        r"\b(i'?m thinking|i'?ve been thinking|what if we)\b",
        r"\.\.\.",
        r"\band\s+also\b",
        r"\bor\s+maybe\b",
        r"\b(another idea|also thinking|what about|or we could)\b",
    ),
    QUESTIONING: (
        r"\?\s*$",
        r"^(what|when|where|who|why|how|which|can|could|should|would|will|is|are|do|does|did)\s",
        r"\b(wondering|curious|asking|unclear)\b",
        r"^(tell me|explain|help me understand|clarify|what does)\b",
        r"\b(for example|for instance|like what)\b",
        r"\b(show me|can you give|could you provide)\b",
    ),
    SUBMITTING: (
        r"^(my|our|the)\s+(big idea|idea|question|essential question|challenge|answer|phases|activities|resources|milestones|rubric|impact plan)\s+(is|are|will be|would be)\b",
        r"^(here'?s|here is|this is)\s+(my|our|the)\b",
        r"\b(definitely|certainly|absolutely|for sure)\b",
        r"^(done|finished|final answer)\b",
        r"\b(ready to move|let'?s go with|i'?ll go with|decided on)\b",
    ),
    ELABORATING: (
        r"^(also|additionally|furthermore|moreover|plus)\b",
        r"^(to add|building on|expanding on|more specifically)\b",
        r"\b(because|since|due to|the reason)\b",
        r"^(what i mean|to clarify|in other words|specifically)\b",
        r"^(by that|when i say|i meant)\b",
    ),
    CONFIRMING: (
        r"^(yes|yeah|yep|correct|exactly|right|that'?s it|perfect)\b",
        r"^(sounds good|looks good|works for me|let'?s do it)\b",
        r"^(i agree|confirmed|approved|go ahead)\b",
    ),
    REFINING: (
        r"^(actually|wait|hold on|scratch that|no wait)\b",
        r"^(let me rephrase|i meant to say|correction)\b",
        r"\b(change|modify|adjust|revise|edit|tweak)\s+(it|that|this|my|the)\b",
        r"^(instead|rather than|different idea)\b",
    ),
    UNCERTAIN: (
        r"^(i don'?t know|not sure|unsure|no idea)\b",
        r"\b(help|stuck|difficult|struggling)\b",
        r"^(um+|uh+|hmm+)\b",
        r"\b(is this right|am i on track|does this make sense)\b",
    ),
}

_FILLER_START = re.compile(r"^(so|well|um|uh|like|you know)\b", re.IGNORECASE)
_MULTIPLE_CLAUSES = re.compile(r"\b(and|but|or|because|since|although|while)\b", re.IGNORECASE)
_LIST_STRUCTURE = re.compile(r"(^|\n)\s*(\d+[.)]|[-*•])\s+|\b(first|second|third)\b", re.IGNORECASE)


@dataclass
class ClassifierConfig:
    """Weights and patterns for KeywordIntentClassifier."""

    patterns: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_PATTERNS))
    pattern_weight: float = 10.0
    question_mark_bonus: float = 15.0
    declarative_bonus: float = 12.0
    declarative_min_words: int = 3
    short_words: int = 5
    long_words: int = 50
    strength_saturation: float = 25.0
    stage_start_exploring_boost: float = 1.3
    stage_start_questioning_boost: float = 1.2
    review_confirming_boost: float = 1.25
    review_refining_boost: float = 1.2
    follow_up_max_words: int = 8
    follow_up_override_score: float = 20.0
    follow_up_confidence: int = 60
    long_exploration_turns: int = 3


@dataclass
class ClassificationContext:
    """Conversational context the classifier scores against."""

    stage: str
    step_index: int = 0
    phase: str = "AWAITING_INPUT"
    prior_messages: List[Dict[str, str]] = field(default_factory=list)
    last_intent: Optional[str] = None
    turn_count: int = 0
    last_assistant_message: Optional[str] = None


@dataclass
class IntentResult:
    intent: str
    confidence: int
    scores: Dict[str, float] = field(default_factory=dict)
    alternatives: List[str] = field(default_factory=list)
    inherited: bool = False

    def to_record(self) -> Dict[str, object]:
        return {"intent": self.intent, "confidence": self.confidence}


class IntentClassifier(Protocol):
    def classify(self, text: str, context: ClassificationContext) -> IntentResult:
        ...


@dataclass
class _Structure:
    word_count: int
    ends_with_question: bool
    starts_with_filler: bool
    has_multiple_clauses: bool
    has_list_structure: bool


def _analyze_structure(text: str) -> _Structure:
    stripped = text.strip()
    separators = stripped.count(",") + stripped.count(";")
    return _Structure(
        word_count=len(stripped.split()),
        ends_with_question=stripped.endswith("?"),
        starts_with_filler=bool(_FILLER_START.match(stripped)),
        has_multiple_clauses=bool(_MULTIPLE_CLAUSES.search(stripped)),
        has_list_structure=bool(_LIST_STRUCTURE.search(stripped)) or separators >= 2,
    )


class KeywordIntentClassifier:
    """Weighted keyword/pattern intent classifier.

    Example:
        >>> classifier = KeywordIntentClassifier()
        >>> result = classifier.classify(
        ...     "I'm thinking maybe something about ecosystems",
        ...     ClassificationContext(stage="IDEATION"),
        ... )
        >>> result.intent
        'exploring'
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()
        self._patterns = {intent: _compile(self.config.patterns.get(intent, ())) for intent in INTENTS}

    def classify(self, text: str, context: ClassificationContext) -> IntentResult:
        text = (text or "").strip()
        if not text:
            return IntentResult(intent=UNCERTAIN, confidence=0, scores={intent: 0.0 for intent in INTENTS})

        structure = _analyze_structure(text)
        scores = self._pattern_scores(text)
        self._apply_structure(scores, structure)
        self._apply_context(scores, context)
        for intent in scores:
            scores[intent] = max(0.0, scores[intent])

        total = sum(scores.values())
        if total <= 0:
            return IntentResult(intent=UNCERTAIN, confidence=0, scores=scores)

        top_intent = max(INTENTS, key=lambda intent: scores[intent])
        top = scores[top_intent]
        confidence = self._confidence(top, total)
        alternatives = [
            intent for intent in sorted(INTENTS, key=lambda i: -scores[i])
            if intent != top_intent and scores[intent] > 0
        ]

        if self._inherits_exploring(structure, scores, context) and top_intent != EXPLORING:
            logger.debug(f"Short follow-up after exploring turn, keeping exploring over {top_intent}")
            return IntentResult(
                intent=EXPLORING,
                confidence=max(confidence, self.config.follow_up_confidence),
                scores=scores,
                alternatives=[top_intent] + [a for a in alternatives if a not in (top_intent, EXPLORING)],
                inherited=True,
            )

        return IntentResult(intent=top_intent, confidence=confidence, scores=scores, alternatives=alternatives)

    def _pattern_scores(self, text: str) -> Dict[str, float]:
        scores = {intent: 0.0 for intent in INTENTS}
        for intent, patterns in self._patterns.items():
            for pattern in patterns:
                if pattern.search(text):
                    scores[intent] += self.config.pattern_weight
        return scores

    def _apply_structure(self, scores: Dict[str, float], structure: _Structure) -> None:
        cfg = self.config
        if structure.ends_with_question:
            scores[QUESTIONING] += cfg.question_mark_bonus
        if structure.starts_with_filler:
            scores[EXPLORING] += 5
            scores[UNCERTAIN] += 3
        if structure.word_count < cfg.short_words:
            scores[CONFIRMING] += 5
            scores[SUBMITTING] -= 5
        elif structure.word_count > cfg.long_words:
            scores[EXPLORING] += 8
            scores[ELABORATING] += 5
        if structure.has_multiple_clauses:
            scores[EXPLORING] += 5
            scores[ELABORATING] += 3
        if structure.has_list_structure:
            scores[SUBMITTING] += 8
            scores[EXPLORING] -= 3

        # A plain statement with no tentative language reads as an answer
        if (
            not structure.ends_with_question
            and structure.word_count >= cfg.declarative_min_words
            and scores[EXPLORING] <= 0
            and scores[UNCERTAIN] <= 0
        ):
            scores[SUBMITTING] += cfg.declarative_bonus

    def _apply_context(self, scores: Dict[str, float], context: ClassificationContext) -> None:
        cfg = self.config
        if context.phase == "WELCOME" or (context.step_index == 0 and context.turn_count <= 1):
            scores[EXPLORING] *= cfg.stage_start_exploring_boost
            scores[QUESTIONING] *= cfg.stage_start_questioning_boost
        if context.phase == "ADVANCING":
            scores[CONFIRMING] *= cfg.review_confirming_boost
            scores[REFINING] *= cfg.review_refining_boost

        if context.last_intent == QUESTIONING:
            scores[ELABORATING] += 3
            scores[EXPLORING] += 3
        elif context.last_intent == EXPLORING and context.turn_count > cfg.long_exploration_turns:
            scores[SUBMITTING] += 5

        last_ai = (context.last_assistant_message or "").lower()
        if last_ai:
            if "?" in last_ai:
                scores[QUESTIONING] -= 5
                scores[SUBMITTING] += 3
            if "is this" in last_ai or "correct" in last_ai:
                scores[CONFIRMING] += 10
            if "refine" in last_ai or "adjust" in last_ai:
                scores[REFINING] += 5

    def _confidence(self, top: float, total: float) -> int:
        dominance = top / total
        strength = 0.5 + 0.5 * min(1.0, top / self.config.strength_saturation)
        return int(round(100 * dominance * strength))

    def _inherits_exploring(self, structure: _Structure, scores: Dict[str, float],
                            context: ClassificationContext) -> bool:
        if context.last_intent != EXPLORING:
            return False
        if structure.word_count >= self.config.follow_up_max_words:
            return False
        best_other = max(score for intent, score in scores.items() if intent != EXPLORING)
        return best_other < self.config.follow_up_override_score
