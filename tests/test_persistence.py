"""Tests for conversation stores and the autosave coordinator."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from blueprint_coach.errors import PersistenceError
from blueprint_coach.state.conversation_state import (
    Phase,
    make_captured_value,
    new_conversation_state,
)
from blueprint_coach.state.stage_graph import get_step
from blueprint_coach.storage.persistence import (
    AutosaveCoordinator,
    InMemoryConversationStore,
    SaveResult,
    SupabaseConversationStore,
    is_retryable_error,
)


def answered_state(step_index=1, phase=Phase.AWAITING_INPUT.value):
    state = new_conversation_state({"subject": "Science"})
    state["stepIndex"] = step_index
    state["phase"] = phase
    state["capturedData"]["BigIdea"] = make_captured_value(
        get_step("BigIdea"),
        "Technology as a force for change",
        "Technology as a force for change",
        confirmed=True,
    )
    return state


class GatedStore:
    """Store whose first save blocks until the test opens the gate."""

    def __init__(self):
        self.gate = asyncio.Event()
        self.snapshots = []

    async def save(self, blueprint_id, state):
        self.snapshots.append(state)
        if len(self.snapshots) == 1:
            await self.gate.wait()
        return SaveResult(ok=True)

    async def load(self, blueprint_id):
        return None


class TestInMemoryStore:
    """Test the JSON-backed dict store."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        store = InMemoryConversationStore()
        state = answered_state()
        assert (await store.save("bp-1", state)).ok is True

        loaded = await store.load("bp-1")
        assert loaded["stage"] == "IDEATION"
        assert loaded["stepIndex"] == 1
        assert loaded["phase"] == "AWAITING_INPUT"
        assert loaded["capturedData"] == state["capturedData"]

    @pytest.mark.asyncio
    async def test_missing_blueprint(self):
        assert await InMemoryConversationStore().load("nope") is None

    @pytest.mark.asyncio
    async def test_legacy_row_upgraded_on_load(self):
        store = InMemoryConversationStore()
        store.put_raw("bp-legacy", {
            "currentState": "IDEATION_EQ",
            "phase": "entry",
            "capturedData": {"ideation.bigIdea": "Identity shaped through story"},
        })
        loaded = await store.load("bp-legacy")
        assert loaded["stepIndex"] == 1
        assert loaded["capturedData"]["BigIdea"]["processedText"] == "Identity shaped through story"

    @pytest.mark.asyncio
    async def test_unserializable_state_reported(self):
        state = answered_state()
        state["wizardContext"] = {"when": object()}
        result = await InMemoryConversationStore().save("bp-1", state)
        assert result.ok is False


class TestRetryClassification:
    """Test which failures are worth retrying."""

    @pytest.mark.parametrize("message", ["Unauthorized", "Invalid API key", "Quota exceeded", "permission denied"])
    def test_non_retryable(self, message):
        assert is_retryable_error(message) is False

    @pytest.mark.parametrize("message", ["timeout", "connection reset", None])
    def test_retryable(self, message):
        assert is_retryable_error(message) is True


class TestAutosaveCoordinator:
    """Test debouncing, serialization and retries."""

    @pytest.mark.asyncio
    async def test_burst_coalesced_into_one_write(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=True))
        coordinator = AutosaveCoordinator(store, debounce_seconds=10)

        first = coordinator.request_save("bp-1", answered_state(step_index=1))
        second = coordinator.request_save("bp-1", answered_state(step_index=2))
        await coordinator.flush("bp-1")

        assert store.save.await_count == 1
        saved = store.save.await_args[0][1]
        assert saved["stepIndex"] == 2
        assert (await first).ok is True
        assert (await second).ok is True

    @pytest.mark.asyncio
    async def test_debounce_fires_on_its_own(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=True))
        coordinator = AutosaveCoordinator(store, debounce_seconds=0.01)

        result = await asyncio.wait_for(coordinator.request_save("bp-1", answered_state()), timeout=2)
        assert result.ok is True
        store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_request_during_write_replays_once(self):
        store = GatedStore()
        coordinator = AutosaveCoordinator(store, debounce_seconds=0)

        first = coordinator.request_save("bp-1", answered_state(step_index=1))
        await asyncio.sleep(0.05)
        assert len(store.snapshots) == 1

        second = coordinator.request_save("bp-1", answered_state(step_index=2))
        third = coordinator.request_save("bp-1", answered_state(step_index=0))
        store.gate.set()
        await coordinator.flush("bp-1")

        assert len(store.snapshots) == 2
        assert store.snapshots[1]["stepIndex"] == 0
        for future in (first, second, third):
            assert (await future).ok is True

    @pytest.mark.asyncio
    async def test_blueprints_saved_independently(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=True))
        coordinator = AutosaveCoordinator(store, debounce_seconds=10)

        coordinator.request_save("bp-1", answered_state())
        coordinator.request_save("bp-2", answered_state())
        await coordinator.flush()

        saved_ids = sorted(call.args[0] for call in store.save.await_args_list)
        assert saved_ids == ["bp-1", "bp-2"]

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self):
        store = MagicMock()
        store.save = AsyncMock(side_effect=[PersistenceError("timeout"), SaveResult(ok=True)])
        coordinator = AutosaveCoordinator(store, debounce_seconds=10, backoff_base=0)

        future = coordinator.request_save("bp-1", answered_state())
        await coordinator.flush("bp-1")

        assert (await future).ok is True
        assert store.save.await_count == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=False, error="timeout"))
        coordinator = AutosaveCoordinator(store, debounce_seconds=10, max_retries=2, backoff_base=0)

        future = coordinator.request_save("bp-1", answered_state())
        await coordinator.flush("bp-1")

        result = await future
        assert result.ok is False
        assert result.error == "timeout"
        assert store.save.await_count == 3

    @pytest.mark.asyncio
    async def test_auth_failure_not_retried(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=False, error="Unauthorized: invalid api key"))
        coordinator = AutosaveCoordinator(store, debounce_seconds=10, backoff_base=0)

        future = coordinator.request_save("bp-1", answered_state())
        await coordinator.flush("bp-1")

        assert (await future).ok is False
        assert store.save.await_count == 1

    @pytest.mark.asyncio
    async def test_non_retryable_persistence_error(self):
        store = MagicMock()
        store.save = AsyncMock(side_effect=PersistenceError("disk full", retryable=False))
        coordinator = AutosaveCoordinator(store, debounce_seconds=10, backoff_base=0)

        future = coordinator.request_save("bp-1", answered_state())
        await coordinator.flush("bp-1")

        assert (await future).error == "disk full"
        assert store.save.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_state_not_written(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=True))
        coordinator = AutosaveCoordinator(store, debounce_seconds=0)

        result = await coordinator.request_save("bp-1", new_conversation_state())
        assert result.ok is True
        store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_flushes_pending_writes(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=True))
        coordinator = AutosaveCoordinator(store, debounce_seconds=10)

        future = coordinator.request_save("bp-1", answered_state())
        await coordinator.close()

        assert future.done()
        assert future.result().ok is True
        store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_requests_after_close_rejected(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=True))
        coordinator = AutosaveCoordinator(store)
        await coordinator.close()

        result = await coordinator.request_save("bp-1", answered_state())
        assert result.ok is False
        store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_snapshot_isolated_from_later_mutation(self):
        store = MagicMock()
        store.save = AsyncMock(return_value=SaveResult(ok=True))
        coordinator = AutosaveCoordinator(store, debounce_seconds=10)

        state = answered_state()
        coordinator.request_save("bp-1", state)
        state["stepIndex"] = 2
        await coordinator.flush("bp-1")

        assert store.save.await_args[0][1]["stepIndex"] == 1


def supabase_client(rows=None, error=None):
    client = MagicMock()
    query = client.table.return_value
    if error is not None:
        query.upsert.return_value.execute.side_effect = error
        query.select.return_value.eq.return_value.limit.return_value.execute.side_effect = error
    else:
        query.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=rows)
    return client


class TestSupabaseStore:
    """Test the Supabase store against a mocked client."""

    @pytest.mark.asyncio
    async def test_save_upserts_row(self):
        client = supabase_client()
        store = SupabaseConversationStore(client=client, table="blueprint_conversations")

        result = await store.save("bp-1", answered_state())

        assert result.ok is True
        client.table.assert_called_with("blueprint_conversations")
        payload = client.table.return_value.upsert.call_args[0][0]
        assert payload["blueprint_id"] == "bp-1"
        assert payload["state"]["stepIndex"] == 1
        assert "updated_at" in payload

    @pytest.mark.asyncio
    async def test_save_failure_returned(self):
        client = supabase_client(error=Exception("connection reset"))
        result = await SupabaseConversationStore(client=client, table="t").save("bp-1", answered_state())
        assert result.ok is False
        assert "connection reset" in result.error

    @pytest.mark.asyncio
    async def test_load_parses_json_column(self):
        stored = json.dumps(dict(answered_state()))
        client = supabase_client(rows=[{"state": stored}])
        loaded = await SupabaseConversationStore(client=client, table="t").load("bp-1")
        assert loaded["stepIndex"] == 1
        assert loaded["capturedData"]["BigIdea"]["confirmed"] is True

    @pytest.mark.asyncio
    async def test_load_missing_row(self):
        client = supabase_client(rows=[])
        assert await SupabaseConversationStore(client=client, table="t").load("bp-1") is None

    @pytest.mark.asyncio
    async def test_load_failure_raises(self):
        client = supabase_client(error=Exception("permission denied for table"))
        with pytest.raises(PersistenceError) as exc_info:
            await SupabaseConversationStore(client=client, table="t").load("bp-1")
        assert exc_info.value.retryable is False
