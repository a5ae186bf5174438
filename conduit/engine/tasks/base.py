"""Abstract base for conversation worker tasks.

Each variant wraps a different agent backend (Codex CLI, an ACP
agent, ...). A task owns one backend subprocess, translates its
stdout stream into AgentEvents on the task's EventBus, and writes
user input to its stdin. The registry is the only owner of a task.
"""
from __future__ import annotations

import abc
import asyncio
import json
import logging
import os
from typing import Any, AsyncIterator

from conduit.adapters.event_bus import EventBus
from conduit.adapters.events import AgentEvent, AgentEventType
from conduit.engine.errors import TaskNotRunningError
from conduit.engine.lifecycle import validate_transition
from conduit.engine.models import TERMINAL_STATES, TaskState

logger = logging.getLogger(__name__)


class WorkerTask(abc.ABC):
    """One backend session bound to one conversation.

    Lifecycle: IDLE -> STARTING -> RUNNING -> EXITED | KILLED.
    ``kill()`` is synchronous and idempotent; it signals the backend
    and returns without waiting for the process to exit.
    """

    def __init__(
        self,
        conversation_id: str,
        *,
        command: str,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        event_queue_size: int = 5000,
    ) -> None:
        self._conversation_id = conversation_id
        self._command = command
        self._args = list(args or [])
        self._cwd = cwd
        self._env = dict(env or {})
        self._state = TaskState.IDLE
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self.events = EventBus(maxsize=event_queue_size)

    @property
    @abc.abstractmethod
    def type(self) -> str:
        """Backend variant tag (e.g. 'acp', 'codex')."""

    @abc.abstractmethod
    def build_command(self) -> list[str]:
        """Return the argv used to spawn the backend."""

    @abc.abstractmethod
    async def _handle_message(self, data: dict[str, Any]) -> None:
        """Translate one decoded stdout line into events."""

    @abc.abstractmethod
    async def _submit(self, text: str) -> None:
        """Write one user turn to the running backend."""

    async def _on_started(self) -> None:
        """Run the backend's session handshake. Default: none."""
        return None

    def _on_reader_closed(self) -> None:
        """Called once the backend's stdout reaches EOF."""
        return None

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def is_alive(self) -> bool:
        return self._state not in TERMINAL_STATES

    def subscribe(self) -> AsyncIterator[AgentEvent]:
        """Iterate this conversation's events in emission order."""
        return self.events.subscribe()

    def _transition(self, target: TaskState) -> None:
        validate_transition(self._state, target)
        logger.debug(
            "Task %s (%s): %s -> %s",
            self._conversation_id, self.type, self._state.value, target.value,
        )
        self._state = target

    def _build_env(self) -> dict[str, str] | None:
        """Subprocess environment with configured overrides, or inherit."""
        if not self._env:
            return None
        env = os.environ.copy()
        env.update(self._env)
        return env

    async def _emit(
        self,
        event_type: AgentEventType | str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        await self.events.emit(AgentEvent(
            event_type=event_type,
            payload=payload or {},
            conversation_id=self._conversation_id,
        ))

    async def start(self) -> None:
        """Spawn the backend and run its handshake.

        No-op unless the task is IDLE. A missing CLI moves the task to
        EXITED and emits an error event instead of raising.
        """
        if self._state is not TaskState.IDLE:
            logger.debug(
                "Task %s already %s; start ignored",
                self._conversation_id, self._state.value,
            )
            return
        self._transition(TaskState.STARTING)
        cmd = self.build_command()

        try:
            # create_subprocess_exec passes args as an array, no shell
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._build_env(),
                cwd=self._cwd,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as exc:
            logger.error(
                "Cannot start %s backend for %s (%s): %s",
                self.type, self._conversation_id, cmd[0], exc,
            )
            await self._emit(AgentEventType.ERROR, {
                "message": f"'{cmd[0]}' could not be started: {exc}",
            })
            if self._state is TaskState.STARTING:
                self._transition(TaskState.EXITED)
            self.events.close()
            return

        if self._state is TaskState.KILLED:
            # Killed while the process was spawning.
            self._process = proc
            self._signal_terminate()
            return

        self._process = proc
        logger.info(
            "Started %s backend for %s (pid=%d)",
            self.type, self._conversation_id, proc.pid,
        )
        self._reader_task = asyncio.create_task(self._read_loop())
        self._stderr_task = asyncio.create_task(self._drain_stderr())

        try:
            await self._on_started()
        except Exception:
            self.kill()
            raise

        if self._state is TaskState.STARTING:
            self._transition(TaskState.RUNNING)

    async def send_message(self, text: str) -> None:
        """Send one user turn, starting the backend first if idle."""
        if self._state is TaskState.IDLE:
            await self.start()
        if self._state is not TaskState.RUNNING:
            raise TaskNotRunningError(self._conversation_id, self._state.value)
        await self._submit(text)

    async def _write_json(self, data: dict[str, Any]) -> None:
        proc = self._process
        if proc is None or proc.stdin is None or proc.stdin.is_closing():
            raise TaskNotRunningError(self._conversation_id, self._state.value)
        try:
            proc.stdin.write(json.dumps(data).encode("utf-8") + b"\n")
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.warning(
                "Backend stdin closed for %s: %s", self._conversation_id, exc
            )
            raise TaskNotRunningError(
                self._conversation_id, self._state.value
            ) from exc

    async def _read_loop(self) -> None:
        proc = self._process
        assert proc is not None and proc.stdout is not None
        while True:
            line = await proc.stdout.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                logger.debug(
                    "Skipping non-JSON line from %s backend: %.200s",
                    self.type, text,
                )
                continue
            if not isinstance(data, dict):
                continue
            try:
                await self._handle_message(data)
            except Exception:
                logger.exception(
                    "Failed to handle %s backend message for %s",
                    self.type, self._conversation_id,
                )

        returncode = await proc.wait()
        self._on_reader_closed()
        if self._state in (TaskState.STARTING, TaskState.RUNNING):
            logger.info(
                "%s backend for %s exited (rc=%s)",
                self.type, self._conversation_id, returncode,
            )
            await self._emit(AgentEventType.TASK_COMPLETE, {
                "exit_code": returncode,
            })
            self._transition(TaskState.EXITED)
        self.events.close()

    async def _drain_stderr(self) -> None:
        proc = self._process
        assert proc is not None and proc.stderr is not None
        while True:
            line = await proc.stderr.readline()
            if not line:
                return
            logger.debug(
                "[%s stderr %s] %s",
                self.type, self._conversation_id,
                line.decode("utf-8", errors="replace").rstrip(),
            )

    def _signal_terminate(self) -> None:
        proc = self._process
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        """Signal the backend to stop. Idempotent and non-blocking."""
        if self._state in TERMINAL_STATES:
            return
        self._transition(TaskState.KILLED)
        self.events.close()
        self._signal_terminate()
        logger.info(
            "Killed %s task for %s (pid=%s)",
            self.type, self._conversation_id, self.pid,
        )

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for the backend process to exit.

        Force-kills the process when ``timeout`` elapses. Returns True
        when the process exited within the timeout (or never started).
        """
        proc = self._process
        if proc is None:
            return True
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "%s backend for %s did not exit within %ss; force killing",
                self.type, self._conversation_id, timeout,
            )
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            return False
