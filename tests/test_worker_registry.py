"""Tests for ConversationWorkerRegistry lookup, recovery and kill semantics."""

from __future__ import annotations

import asyncio
import sqlite3

import pytest

from conduit.engine.errors import (
    ConversationNotFoundError,
    UnsupportedConversationTypeError,
)
from conduit.engine.models import ConversationMetadata, TaskState
from conduit.engine.tasks import CodexWorkerTask, build_task
from conduit.engine.worker_registry import ConversationWorkerRegistry
from conduit.shared.services.chat_history import ChatHistoryStore
from conduit.shared.services.conversation_db import ConversationDatabase
from conduit.shared.services.persistence import PersistenceFallbackLoader


class _StubLoader:
    """Loader double that records calls and yields to the loop on every read."""

    def __init__(self, primary=None, secondary=None) -> None:
        self.primary = dict(primary or {})
        self.secondary = dict(secondary or {})
        self.primary_calls: list[str] = []
        self.secondary_calls: list[str] = []

    async def load_primary(self, conversation_id: str):
        self.primary_calls.append(conversation_id)
        await asyncio.sleep(0)
        return self.primary.get(conversation_id)

    async def load_secondary(self, conversation_id: str):
        self.secondary_calls.append(conversation_id)
        await asyncio.sleep(0)
        return self.secondary.get(conversation_id)


class _CountingFactory:
    def __init__(self) -> None:
        self.built: list[str] = []

    def __call__(self, metadata: ConversationMetadata):
        self.built.append(metadata.id)
        return build_task(metadata)


class _ExplodingTask:
    type = "codex"
    conversation_id = "boom"

    def __init__(self) -> None:
        self.kill_calls = 0

    def kill(self) -> None:
        self.kill_calls += 1
        raise RuntimeError("signal failed")


def _meta(conversation_id: str, conversation_type: str = "codex") -> ConversationMetadata:
    return ConversationMetadata(id=conversation_id, type=conversation_type)


def test_get_or_create_returns_same_instance() -> None:
    registry = ConversationWorkerRegistry()
    first = registry.get_or_create(_meta("c1"))
    second = registry.get_or_create(_meta("c1"))

    assert isinstance(first, CodexWorkerTask)
    assert first is second
    assert registry.get_by_id("c1") is first
    assert len(registry) == 1


def test_get_or_create_returns_none_for_unsupported_type() -> None:
    registry = ConversationWorkerRegistry()

    assert registry.get_or_create(_meta("g1", "gemini")) is None
    assert "g1" not in registry


def test_get_by_id_has_no_side_effects() -> None:
    loader = _StubLoader(primary={"c1": _meta("c1")})
    registry = ConversationWorkerRegistry(loader)

    assert registry.get_by_id("c1") is None
    assert loader.primary_calls == []
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_recover_prefers_memory_over_stores() -> None:
    loader = _StubLoader(primary={"c1": _meta("c1")})
    registry = ConversationWorkerRegistry(loader)
    task = registry.get_or_create(_meta("c1"))

    recovered = await registry.recover_by_id("c1")

    assert recovered is task
    assert loader.primary_calls == []


@pytest.mark.asyncio
async def test_recover_from_primary_skips_secondary() -> None:
    loader = _StubLoader(
        primary={"c1": _meta("c1", "acp")},
        secondary={"c1": _meta("c1", "codex")},
    )
    registry = ConversationWorkerRegistry(loader)

    task = await registry.recover_by_id("c1")

    assert task.type == "acp"
    assert loader.secondary_calls == []
    assert registry.get_by_id("c1") is task


@pytest.mark.asyncio
async def test_recover_falls_back_to_secondary() -> None:
    loader = _StubLoader(secondary={"c2": _meta("c2", "acp")})
    registry = ConversationWorkerRegistry(loader)

    task = await registry.recover_by_id("c2")

    assert task.type == "acp"
    assert loader.primary_calls == ["c2"]
    assert loader.secondary_calls == ["c2"]


@pytest.mark.asyncio
async def test_recover_raises_not_found_when_both_tiers_miss() -> None:
    registry = ConversationWorkerRegistry(_StubLoader())

    with pytest.raises(ConversationNotFoundError) as exc_info:
        await registry.recover_by_id("c3")

    assert exc_info.value.conversation_id == "c3"
    assert "c3" not in registry


@pytest.mark.asyncio
async def test_recover_unsupported_stored_type_raises() -> None:
    registry = ConversationWorkerRegistry(
        _StubLoader(primary={"g1": _meta("g1", "gemini")})
    )

    with pytest.raises(UnsupportedConversationTypeError) as exc_info:
        await registry.recover_by_id("g1")

    assert exc_info.value.conversation_type == "gemini"
    assert set(exc_info.value.supported) == {"acp", "codex"}
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_concurrent_recovery_builds_one_task() -> None:
    factory = _CountingFactory()
    loader = _StubLoader(primary={"c1": _meta("c1")})
    registry = ConversationWorkerRegistry(loader, task_factory=factory)

    first, second = await asyncio.gather(
        registry.recover_by_id("c1"),
        registry.recover_by_id("c1"),
    )

    assert first is second
    assert factory.built == ["c1"]
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_recover_treats_primary_error_as_miss(tmp_path) -> None:
    class _BrokenDatabase:
        def get_conversation(self, conversation_id):
            raise sqlite3.OperationalError("database is locked")

    history = ChatHistoryStore(tmp_path / "chat.history.json")
    history.upsert(_meta("c4", "acp"))
    registry = ConversationWorkerRegistry(
        PersistenceFallbackLoader(primary=_BrokenDatabase(), secondary=history)
    )

    task = await registry.recover_by_id("c4")

    assert task.type == "acp"


@pytest.mark.asyncio
async def test_recover_with_real_stores(tmp_path) -> None:
    db = ConversationDatabase(tmp_path / "conversations.sqlite3")
    db.save_conversation(ConversationMetadata(
        id="c5", type="codex", extra={"model": "o3"},
    ))
    registry = ConversationWorkerRegistry(
        PersistenceFallbackLoader(
            primary=db,
            secondary=ChatHistoryStore(tmp_path / "chat.history.json"),
        )
    )

    task = await registry.recover_by_id("c5")

    assert isinstance(task, CodexWorkerTask)
    assert task.build_command() == ["codex", "-c", 'model="o3"', "proto"]


def test_kill_removes_task_and_is_idempotent() -> None:
    registry = ConversationWorkerRegistry()
    task = registry.get_or_create(_meta("c1"))

    registry.kill("c1")
    registry.kill("c1")
    registry.kill("never-registered")

    assert task.state is TaskState.KILLED
    assert registry.get_by_id("c1") is None


def test_kill_swallows_task_errors_and_still_removes() -> None:
    registry = ConversationWorkerRegistry()
    task = _ExplodingTask()
    registry.add_task("boom", task)

    registry.kill("boom")

    assert task.kill_calls == 1
    assert "boom" not in registry


def test_add_task_replaces_and_kills_previous() -> None:
    registry = ConversationWorkerRegistry()
    old = registry.get_or_create(_meta("c1"))
    new = build_task(_meta("c1"))

    registry.add_task("c1", new)
    registry.add_task("c1", new)

    assert registry.get_by_id("c1") is new
    assert old.state is TaskState.KILLED
    assert new.state is TaskState.IDLE


def test_list_tasks_reports_id_and_type() -> None:
    registry = ConversationWorkerRegistry()
    registry.get_or_create(_meta("a", "acp"))
    registry.get_or_create(_meta("b", "codex"))

    assert sorted(registry.list_tasks(), key=lambda t: t["id"]) == [
        {"id": "a", "type": "acp"},
        {"id": "b", "type": "codex"},
    ]


def test_clear_kills_everything() -> None:
    registry = ConversationWorkerRegistry()
    tasks = [registry.get_or_create(_meta(cid)) for cid in ("a", "b", "c")]

    registry.clear()

    assert len(registry) == 0
    assert all(task.state is TaskState.KILLED for task in tasks)


@pytest.mark.asyncio
async def test_shutdown_clears_tasks_that_never_started() -> None:
    registry = ConversationWorkerRegistry()
    task = registry.get_or_create(_meta("c1"))

    await registry.shutdown(grace_seconds=0.1)

    assert len(registry) == 0
    assert task.state is TaskState.KILLED
