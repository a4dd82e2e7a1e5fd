"""Async session loop for one blueprint.

CoachSession owns the mutable bits the pure engine does not: the current
state, a short transcript, the in-flight suggestion task and autosave.

Ordering:
- events are handled one at a time under an asyncio.Lock, in arrival order
- every event gets a sequence number; a newer event cancels any running
  suggestion generation, and a generation result for an older sequence is
  discarded
- committed transitions queue an autosave and do not wait for it
"""

import asyncio
import dataclasses
import logging
from typing import Any, Dict, List, Optional, Union

from blueprint_coach.config.settings import get_settings
from blueprint_coach.config.supabase_config import supabase_settings
from blueprint_coach.core.llm_factory import create_llm
from blueprint_coach.core.suggestion_service import GenerationRequest, SuggestionService
from blueprint_coach.errors import PersistenceError
from blueprint_coach.flows.conversation_flow import (
    ConversationEngine,
    Event,
    TurnResult,
    UserText,
    parse_event,
)
from blueprint_coach.flows.node_logic import util_prompt_templates as templates
from blueprint_coach.state.conversation_state import ConversationState, Phase, current_step, new_conversation_state
from blueprint_coach.storage.persistence import (
    AutosaveCoordinator,
    ConversationStore,
    InMemoryConversationStore,
    SaveResult,
    SupabaseConversationStore,
)

logger = logging.getLogger(__name__)

TRANSCRIPT_LIMIT = 10


class CoachSession:
    """One blueprint's conversation, driven by UI events.

    Example:
        session = CoachSession("bp-1")
        await session.load_or_create()
        result = await session.handle({"type": "text", "payload": "Technology as a force for change"})
        await session.close()
    """

    def __init__(
        self,
        blueprint_id: str,
        engine: Optional[ConversationEngine] = None,
        store: Optional[ConversationStore] = None,
        suggestion_service: Optional[SuggestionService] = None,
        coordinator: Optional[AutosaveCoordinator] = None,
    ):
        settings = get_settings()
        self.blueprint_id = blueprint_id
        self.engine = engine or ConversationEngine(settings)
        self.store = store or InMemoryConversationStore()
        self.suggestion_service = suggestion_service or SuggestionService(None, settings)
        self.coordinator = coordinator or AutosaveCoordinator(
            self.store,
            debounce_seconds=settings.autosave_debounce_seconds,
            max_retries=settings.save_max_retries,
            backoff_base=settings.save_backoff_seconds,
        )
        self.state: Optional[ConversationState] = None
        self.transcript: List[Dict[str, str]] = []
        self.last_save: Optional[asyncio.Future] = None
        self._lock = asyncio.Lock()
        self._seq = 0
        self._generation_task: Optional[asyncio.Task] = None

    async def load_or_create(self, wizard_context: Optional[Dict[str, Any]] = None) -> ConversationState:
        """Resume the stored conversation, or start fresh when there is none."""
        loaded = None
        try:
            loaded = await self.store.load(self.blueprint_id)
        except PersistenceError as e:
            logger.warning(f"Could not load {self.blueprint_id}, starting a new conversation: {e}")
        if loaded:
            logger.info(f"Resumed {self.blueprint_id} at {loaded.get('stage')}/{loaded.get('phase')}")
            self.state = loaded
        else:
            self.state = new_conversation_state(wizard_context)
        return self.state

    async def handle(self, event: Union[Event, Dict[str, Any]]) -> TurnResult:
        """Process one UI event.

        Raises:
            MalformedEventError: for events outside the UI contract
        """
        if isinstance(event, dict):
            event = parse_event(event)

        self._seq += 1
        seq = self._seq
        self._cancel_generation()

        async with self._lock:
            if self.state is None:
                await self.load_or_create()

            result = self.engine.handle_event(self.state, event, prior_messages=self.transcript[-TRANSCRIPT_LIMIT:])
            self.state = result.new_state
            if isinstance(event, UserText):
                self._remember("user", event.text)

            if result.committed:
                self._schedule_save()

            if result.generation_request is not None:
                result.generation_request.event_seq = seq
                result = await self._generate(result, seq)

            self._remember("assistant", result.reply_text)
            return result

    async def close(self) -> None:
        self._cancel_generation()
        await self.coordinator.flush(self.blueprint_id)

    # ------------------------------------------------------------------

    def _remember(self, role: str, content: str) -> None:
        if not content:
            return
        self.transcript.append({"role": role, "content": content})
        del self.transcript[:-TRANSCRIPT_LIMIT]

    def _schedule_save(self) -> None:
        future = self.coordinator.request_save(self.blueprint_id, self.state)
        future.add_done_callback(self._log_save)
        self.last_save = future

    def _log_save(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        result: SaveResult = future.result()
        if not result.ok:
            logger.error(f"Autosave for {self.blueprint_id} failed: {result.error}")

    def _cancel_generation(self) -> None:
        task = self._generation_task
        if task is not None and not task.done():
            logger.debug(f"Cancelling superseded generation for {self.blueprint_id}")
            task.cancel()
        self._generation_task = None

    async def _generate(self, result: TurnResult, seq: int) -> TurnResult:
        request: GenerationRequest = result.generation_request
        task = asyncio.ensure_future(self.suggestion_service.generate(request))
        self._generation_task = task
        await asyncio.wait({task})

        if task.cancelled() or seq != self._seq:
            logger.info(f"Discarding stale {request.kind} generation (seq {seq}, now {self._seq})")
            return result
        self._generation_task = None

        generation = task.result()
        affordances = [templates.cards(generation.cards, generation.card_source)]
        phase = self.state.get("phase")
        if generation.ready_for_next and phase in (Phase.AWAITING_CONFIRMATION.value, Phase.ADVANCING.value):
            affordances.append(templates.buttons("confirm"))
        elif phase == Phase.AWAITING_INPUT.value:
            affordances.append(templates.input_buttons(current_step(self.state)))
        return dataclasses.replace(
            result,
            reply_text=generation.text,
            ui_affordances=affordances,
            outcome="generation",
        )


def create_session(blueprint_id: str) -> CoachSession:
    """Session wired to the configured model and store.

    Uses Supabase when SUPABASE_URL / SUPABASE_SERVICE_KEY are set, otherwise
    an in-memory store.
    """
    settings = get_settings()
    llm, is_degraded = create_llm(settings)
    if is_degraded:
        logger.info("Suggestions running in degraded mode (template cards)")
    store = SupabaseConversationStore() if supabase_settings.is_configured else InMemoryConversationStore()
    return CoachSession(
        blueprint_id,
        engine=ConversationEngine(settings),
        store=store,
        suggestion_service=SuggestionService(llm, settings),
    )
