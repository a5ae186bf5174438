"""Conversation worker registry — one live WorkerTask per conversation.

The registry is the only owner of tasks. It hands out the cached
task for a conversation, builds one from metadata on first use, and
recovers one from the persistence tiers after a restart.

All mutation happens on one event loop. The only suspension point is
store I/O inside recover_by_id, so the map is re-checked after every
await before a task is constructed.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from conduit.engine.config import HostConfig
from conduit.engine.errors import (
    ConversationNotFoundError,
    UnsupportedConversationTypeError,
)
from conduit.engine.models import ConversationMetadata
from conduit.engine.tasks import WorkerTask, build_task, supported_types
from conduit.shared.services.persistence import PersistenceFallbackLoader

logger = logging.getLogger(__name__)

TaskFactory = Callable[[ConversationMetadata], WorkerTask]


class ConversationWorkerRegistry:
    """Maps conversation ids to their WorkerTask."""

    def __init__(
        self,
        loader: PersistenceFallbackLoader | None = None,
        *,
        config: HostConfig | None = None,
        task_factory: TaskFactory | None = None,
    ) -> None:
        self._config = config or HostConfig()
        self._loader = loader or PersistenceFallbackLoader()
        self._task_factory = task_factory or (
            lambda metadata: build_task(metadata, self._config)
        )
        self._tasks: dict[str, WorkerTask] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._tasks

    def get_by_id(self, conversation_id: str) -> WorkerTask | None:
        """Return the registered task, if any. No side effects."""
        return self._tasks.get(conversation_id)

    def get_or_create(self, metadata: ConversationMetadata) -> WorkerTask | None:
        """Return the cached task, or build and register a new one.

        Returns None when the conversation type has no task variant.
        """
        task = self._tasks.get(metadata.id)
        if task is not None:
            return task
        try:
            task = self._task_factory(metadata)
        except UnsupportedConversationTypeError as exc:
            logger.warning("Cannot build task for %s: %s", metadata.id, exc)
            return None
        self._tasks[metadata.id] = task
        return task

    async def recover_by_id(self, conversation_id: str) -> WorkerTask:
        """Return a live task for the conversation, recovering it if needed.

        Lookup order: in-memory map, primary store, secondary store.
        Raises ConversationNotFoundError when every tier misses and
        UnsupportedConversationTypeError when the stored record's type
        has no task variant.
        """
        task = self._tasks.get(conversation_id)
        if task is not None:
            return task

        metadata = await self._loader.load_primary(conversation_id)
        source = "primary"
        if metadata is None:
            metadata = await self._loader.load_secondary(conversation_id)
            source = "secondary"

        if metadata is None:
            logger.error(
                "Conversation not found in primary or secondary store: %s",
                conversation_id,
            )
            raise ConversationNotFoundError(conversation_id)

        # Another recovery may have registered the task while we awaited.
        existing = self._tasks.get(conversation_id)
        if existing is not None:
            logger.debug(
                "Conversation %s recovered concurrently; reusing task",
                conversation_id,
            )
            return existing

        logger.info(
            "Recovering conversation %s from %s store", conversation_id, source
        )
        task = self.get_or_create(metadata)
        if task is None:
            raise UnsupportedConversationTypeError(
                metadata.type, supported_types()
            )
        return task

    def add_task(self, conversation_id: str, task: WorkerTask) -> None:
        """Register an externally built task, replacing any previous one.

        A replaced task is killed so it cannot keep running unowned.
        """
        previous = self._tasks.get(conversation_id)
        self._tasks[conversation_id] = task
        if previous is not None and previous is not task:
            logger.info("Replacing task for conversation %s", conversation_id)
            self._kill_task(conversation_id, previous)

    def list_tasks(self) -> list[dict[str, Any]]:
        """Snapshot of registered tasks as ``{"id", "type"}`` dicts."""
        return [
            {"id": conversation_id, "type": task.type}
            for conversation_id, task in self._tasks.items()
        ]

    @staticmethod
    def _kill_task(conversation_id: str, task: WorkerTask) -> None:
        try:
            task.kill()
        except Exception as exc:
            logger.error(
                "Error killing task for conversation %s: %s",
                conversation_id, exc,
            )

    def kill(self, conversation_id: str) -> None:
        """Signal the task to stop and drop it. Never raises."""
        task = self._tasks.pop(conversation_id, None)
        if task is None:
            return
        self._kill_task(conversation_id, task)

    def clear(self) -> None:
        """Kill and drop every task."""
        tasks = list(self._tasks.items())
        self._tasks.clear()
        for conversation_id, task in tasks:
            self._kill_task(conversation_id, task)
        if tasks:
            logger.info("Cleared %d worker task(s)", len(tasks))

    async def shutdown(self, grace_seconds: float | None = None) -> None:
        """Clear the registry and wait for backends to exit.

        Processes still alive after the grace period are force-killed.
        """
        tasks = list(self._tasks.values())
        self.clear()
        if not tasks:
            return
        grace = (
            self._config.kill_grace_seconds
            if grace_seconds is None else grace_seconds
        )
        results = await asyncio.gather(
            *(task.wait(timeout=grace) for task in tasks),
            return_exceptions=True,
        )
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error(
                    "Error waiting for %s task %s to exit: %s",
                    task.type, task.conversation_id, result,
                )
