"""Conversation stores and the autosave coordinator.

Stores:
- InMemoryConversationStore: JSON strings in a dict (tests, local REPL)
- SupabaseConversationStore: one row per blueprint in ``blueprint_conversations``

AutosaveCoordinator sits between the session and a store:
- debounces bursts of commits into one write per blueprint
- serializes writes per blueprint; a request during a write replays once afterwards
- retries failed writes with exponential backoff, except auth / quota failures
- ``close()`` never leaves a caller waiting on a save future
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from typing_extensions import Protocol

from blueprint_coach.config.supabase_config import get_supabase_client, supabase_settings
from blueprint_coach.errors import PersistenceError
from blueprint_coach.state.conversation_state import ConversationState, is_empty_state, upgrade_state, utc_now_iso

logger = logging.getLogger(__name__)

NON_RETRYABLE_MARKERS = ("unauthorized", "api key", "quota", "permission")


@dataclass
class SaveResult:
    ok: bool
    error: Optional[str] = None


def is_retryable_error(message: Optional[str]) -> bool:
    text = (message or "").lower()
    return not any(marker in text for marker in NON_RETRYABLE_MARKERS)


class ConversationStore(Protocol):
    async def save(self, blueprint_id: str, state: ConversationState) -> SaveResult:
        ...

    async def load(self, blueprint_id: str) -> Optional[ConversationState]:
        ...


# ============================================================================
# Stores
# ============================================================================

class InMemoryConversationStore:
    """Dict-backed store that round-trips through JSON like a real backend."""

    def __init__(self):
        self._rows: Dict[str, str] = {}

    async def save(self, blueprint_id: str, state: ConversationState) -> SaveResult:
        try:
            self._rows[blueprint_id] = json.dumps(dict(state))
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize state for {blueprint_id}: {e}")
            return SaveResult(ok=False, error=str(e))
        return SaveResult(ok=True)

    async def load(self, blueprint_id: str) -> Optional[ConversationState]:
        raw = self._rows.get(blueprint_id)
        if raw is None:
            return None
        return upgrade_state(json.loads(raw))

    def put_raw(self, blueprint_id: str, raw: Dict[str, Any]) -> None:
        """Store a pre-built (possibly legacy) state, bypassing the engine."""
        self._rows[blueprint_id] = json.dumps(raw)


class SupabaseConversationStore:
    """Conversation state in Supabase Postgres.

    Table columns: blueprint_id (primary key), state (jsonb), updated_at.
    supabase-py is synchronous, so calls run in a worker thread.
    """

    def __init__(self, client: Optional[Any] = None, table: Optional[str] = None):
        self._client = client
        self.table = table or supabase_settings.conversations_table

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def _upsert(self, blueprint_id: str, state: ConversationState) -> None:
        self.client.table(self.table).upsert({
            'blueprint_id': blueprint_id,
            'state': dict(state),
            'updated_at': utc_now_iso(),
        }).execute()

    def _select(self, blueprint_id: str) -> List[Dict[str, Any]]:
        result = self.client.table(self.table)\
            .select('state')\
            .eq('blueprint_id', blueprint_id)\
            .limit(1)\
            .execute()
        return result.data or []

    async def save(self, blueprint_id: str, state: ConversationState) -> SaveResult:
        try:
            await asyncio.to_thread(self._upsert, blueprint_id, state)
        except Exception as e:
            logger.error(f"Failed to save conversation {blueprint_id}: {e}")
            return SaveResult(ok=False, error=str(e))
        logger.debug(f"Saved conversation {blueprint_id}")
        return SaveResult(ok=True)

    async def load(self, blueprint_id: str) -> Optional[ConversationState]:
        try:
            rows = await asyncio.to_thread(self._select, blueprint_id)
        except Exception as e:
            raise PersistenceError(f"Failed to load conversation {blueprint_id}: {e}",
                                   retryable=is_retryable_error(str(e))) from e
        if not rows:
            return None
        raw = rows[0].get('state')
        if isinstance(raw, str):
            raw = json.loads(raw)
        return upgrade_state(raw or {})


# ============================================================================
# Autosave
# ============================================================================

@dataclass
class _Slot:
    pending: Optional[Dict[str, Any]] = None
    waiters: List[asyncio.Future] = field(default_factory=list)
    timer: Optional[asyncio.TimerHandle] = None
    task: Optional[asyncio.Task] = None
    dirty: bool = False

    @property
    def writing(self) -> bool:
        return self.task is not None and not self.task.done()


class AutosaveCoordinator:
    """Debounced, per-blueprint serialized saves.

    Example:
        coordinator = AutosaveCoordinator(store)
        future = coordinator.request_save("bp-1", state)
        await coordinator.flush("bp-1")
        result = future.result()
    """

    def __init__(self, store: ConversationStore, debounce_seconds: float = 0.6,
                 max_retries: int = 3, backoff_base: float = 0.25):
        self.store = store
        self.debounce_seconds = debounce_seconds
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._slots: Dict[str, _Slot] = {}
        self._closed = False

    def request_save(self, blueprint_id: str, state: ConversationState) -> "asyncio.Future[SaveResult]":
        """Queue a snapshot; resolves once a write containing it has finished."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        if self._closed:
            future.set_result(SaveResult(ok=False, error="autosave closed"))
            return future
        if is_empty_state(state):
            future.set_result(SaveResult(ok=True))
            return future

        slot = self._slots.setdefault(blueprint_id, _Slot())
        slot.pending = {**(slot.pending or {}), **json.loads(json.dumps(dict(state)))}
        slot.waiters.append(future)

        if slot.writing:
            slot.dirty = True
            return future

        if slot.timer is not None:
            slot.timer.cancel()
        slot.timer = loop.call_later(self.debounce_seconds, self._start_write, blueprint_id)
        return future

    def _start_write(self, blueprint_id: str) -> asyncio.Task:
        slot = self._slots[blueprint_id]
        if slot.timer is not None:
            slot.timer.cancel()
            slot.timer = None
        if not slot.writing:
            slot.task = asyncio.ensure_future(self._write_loop(blueprint_id))
        return slot.task

    async def _write_loop(self, blueprint_id: str) -> None:
        slot = self._slots[blueprint_id]
        while slot.pending is not None:
            snapshot, waiters = slot.pending, slot.waiters
            slot.pending, slot.waiters, slot.dirty = None, [], False

            result = await self._save_with_retry(blueprint_id, snapshot)
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(result)

            if not slot.dirty:
                break
            logger.debug(f"Replaying save for {blueprint_id} after concurrent request")

    async def _save_with_retry(self, blueprint_id: str, snapshot: Dict[str, Any]) -> SaveResult:
        attempt = 0
        while True:
            retryable = True
            try:
                result = await self.store.save(blueprint_id, snapshot)
            except PersistenceError as e:
                result, retryable = SaveResult(ok=False, error=str(e)), e.retryable
            except Exception as e:
                result = SaveResult(ok=False, error=str(e))

            if result.ok:
                return result

            retryable = retryable and is_retryable_error(result.error)
            if not retryable or attempt >= self.max_retries:
                logger.error(f"Autosave failed for {blueprint_id} after {attempt + 1} attempt(s): {result.error}")
                return result

            delay = self.backoff_base * (2 ** attempt)
            logger.warning(f"Autosave for {blueprint_id} failed ({result.error}), retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
            attempt += 1

    async def flush(self, blueprint_id: Optional[str] = None) -> None:
        """Write pending snapshots now instead of waiting for the debounce."""
        ids = [blueprint_id] if blueprint_id is not None else list(self._slots)
        for key in ids:
            slot = self._slots.get(key)
            if slot is None:
                continue
            if slot.pending is None and not slot.writing:
                if slot.timer is not None:
                    slot.timer.cancel()
                    slot.timer = None
                continue
            await self._start_write(key)

    async def close(self) -> None:
        """Flush everything, then resolve any waiter that is still open."""
        self._closed = True
        try:
            await self.flush()
        finally:
            for key, slot in self._slots.items():
                if slot.timer is not None:
                    slot.timer.cancel()
                for waiter in slot.waiters:
                    if not waiter.done():
                        waiter.set_result(SaveResult(ok=False, error="autosave closed before write"))
                slot.waiters = []
                slot.pending = None
            logger.debug("Autosave coordinator closed")
