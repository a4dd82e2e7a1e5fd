"""Idea and what-if suggestions from the generative model, with template fallback.

The model is a collaborator the coach cannot rely on: any timeout, provider
error, quota failure or empty answer falls back to the deterministic cards in
util_prompt_templates. Users never see a raw model error.

The model may also signal that the educator is ready for the next stage with
an inline marker, e.g. ``{readyForNext: true}`` or
``{"readyForNext": true, "next": "JOURNEY"}``. The marker is stripped from the
text and surfaced on GenerationResult.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, List, Optional, Tuple

from langchain_core.messages import HumanMessage, SystemMessage

from blueprint_coach.config.settings import EngineSettings, get_settings
from blueprint_coach.errors import AIGenerationError
from blueprint_coach.flows.node_logic import util_prompt_templates as templates
from blueprint_coach.observability import trace_generation
from blueprint_coach.state.conversation_state import CaptureSource
from blueprint_coach.state.stage_graph import get_step

logger = logging.getLogger(__name__)

IDEAS = "ideas"
WHATIF = "whatif"

_COMPLETION_MARKER = re.compile(
    r"\{\s*[\"']?readyForNext[\"']?\s*:\s*true\s*"
    r"(?:,\s*[\"']?next[\"']?\s*:\s*[\"']?(?P<next>[A-Za-z_]+)[\"']?\s*)?\}",
    re.IGNORECASE,
)
_CARD_LINE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(?P<text>.+?)\s*$")


@dataclass
class GenerationRequest:
    """Request for the text service, fulfilled asynchronously by the session."""

    kind: str
    step_id: str
    system_context: str
    stage_context: str
    user_prompt: str
    event_seq: int = 0


@dataclass
class GenerationResult:
    text: str
    cards: List[str] = field(default_factory=list)
    used_fallback: bool = False
    ready_for_next: bool = False
    next_stage: Optional[str] = None
    card_source: str = CaptureSource.AI_SUGGESTION.value


def parse_completion_marker(text: str) -> Tuple[str, bool, Optional[str]]:
    """Strip an inline readyForNext marker.

    Returns:
        (clean_text, ready_for_next, next_stage)
    """
    match = _COMPLETION_MARKER.search(text or "")
    if not match:
        return (text or "").strip(), False, None
    clean = _COMPLETION_MARKER.sub("", text).strip()
    next_stage = match.group("next")
    return clean, True, next_stage.upper() if next_stage else None


def parse_cards(text: str, limit: int = 3) -> List[str]:
    """Pull numbered or bulleted options out of model text."""
    cards = []
    for line in (text or "").splitlines():
        match = _CARD_LINE.match(line)
        if not match:
            continue
        card = match.group("text").replace("**", "").strip().strip("\"")
        if card:
            cards.append(card)
        if len(cards) >= limit:
            break
    return cards


def _content_text(content: Any) -> str:
    """Flatten AIMessage.content, which may be a string or a list of blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content or "")


class SuggestionService:
    """Generate suggestion text and cards for a GenerationRequest.

    Example:
        service = SuggestionService(llm)
        result = await service.generate(request)
        if result.used_fallback:
            ...  # template cards, model unavailable
    """

    def __init__(self, llm: Optional[Any] = None, settings: Optional[EngineSettings] = None):
        self.llm = llm
        self.settings = settings or get_settings()

    @property
    def enabled(self) -> bool:
        return self.llm is not None

    def _messages(self, request: GenerationRequest) -> list:
        return [
            SystemMessage(content=f"{request.system_context}\n\n{request.stage_context}"),
            HumanMessage(content=request.user_prompt),
        ]

    def fallback(self, request: GenerationRequest) -> GenerationResult:
        step = get_step(request.step_id)
        kind = WHATIF if request.kind == WHATIF else IDEAS
        return GenerationResult(
            text=templates.fallback_text(kind, step),
            cards=templates.fallback_cards(kind, step),
            used_fallback=True,
            card_source=CaptureSource.CARD_SELECTION.value,
        )

    async def _invoke(self, request: GenerationRequest) -> str:
        response = await asyncio.wait_for(
            self.llm.ainvoke(self._messages(request)),
            timeout=self.settings.ai_timeout_seconds,
        )
        text = _content_text(getattr(response, "content", response)).strip()
        if not text:
            raise AIGenerationError("Model returned an empty response")
        return text

    @trace_generation
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate suggestions, falling back to templates on any model failure."""
        if not self.enabled:
            return self.fallback(request)

        try:
            raw = await self._invoke(request)
        except asyncio.TimeoutError:
            logger.warning(f"Suggestion generation timed out after {self.settings.ai_timeout_seconds}s")
            return self.fallback(request)
        except Exception as e:
            logger.warning(f"Suggestion generation failed, using templates: {e}")
            return self.fallback(request)

        text, ready, next_stage = parse_completion_marker(raw)
        cards = parse_cards(text)
        if request.kind in (IDEAS, WHATIF) and not cards:
            logger.warning("Model response had no parseable options, using template cards")
            cards = templates.fallback_cards(request.kind, get_step(request.step_id))
        return GenerationResult(text=text, cards=cards, ready_for_next=ready, next_stage=next_stage)

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        """Stream suggestion text chunk by chunk.

        Text from the first ``{`` onward is held back until the stream ends so a
        trailing completion marker never reaches the user.
        """
        if not self.enabled:
            yield self.fallback(request).text
            return

        emitted = False
        held = ""
        iterator = self.llm.astream(self._messages(request)).__aiter__()
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(iterator.__anext__(), timeout=self.settings.ai_timeout_seconds)
                except StopAsyncIteration:
                    break
                held += _content_text(getattr(chunk, "content", chunk))
                brace = held.find("{")
                ready_part = held if brace == -1 else held[:brace]
                if ready_part:
                    emitted = True
                    yield ready_part
                    held = held[len(ready_part):]
        except Exception as e:
            logger.warning(f"Suggestion stream failed: {e}")
            if not emitted:
                yield self.fallback(request).text
            return

        if held:
            clean, _, _ = parse_completion_marker(held)
            if clean:
                yield clean
        elif not emitted:
            yield self.fallback(request).text
