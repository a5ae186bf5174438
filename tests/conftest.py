import asyncio
import json
from typing import Any, Callable

import pytest


class _QueueReader:
    """Stand-in for a subprocess StreamReader fed line by line by the test."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, line: str | dict) -> None:
        if isinstance(line, dict):
            line = json.dumps(line)
        self._queue.put_nowait(line.encode("utf-8") + b"\n")

    def feed_eof(self) -> None:
        self._queue.put_nowait(b"")

    async def readline(self) -> bytes:
        data = await self._queue.get()
        if not data:
            # EOF stays EOF for every later read.
            self._queue.put_nowait(b"")
        return data


class _FakeStdin:
    def __init__(self, on_message: Callable[[dict[str, Any]], None] | None) -> None:
        self.writes: list[bytes] = []
        self._on_message = on_message
        self.closed = False

    def write(self, data: bytes) -> None:
        self.writes.append(data)
        if self._on_message is None:
            return
        for line in data.decode("utf-8").splitlines():
            if line.strip():
                self._on_message(json.loads(line))

    async def drain(self) -> None:
        return None

    def is_closing(self) -> bool:
        return self.closed

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(chunk) for chunk in self.writes]


class FakeProcess:
    def __init__(self, responder: Callable[[dict[str, Any], "FakeProcess"], None] | None = None) -> None:
        self.pid = 4242
        self.returncode: int | None = None
        self.terminated = False
        self.stdout = _QueueReader()
        self.stderr = _QueueReader()
        self.stdin = _FakeStdin(
            (lambda msg: responder(msg, self)) if responder else None
        )
        self._exited = asyncio.Event()

    def exit(self, code: int = 0) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdin.closed = True
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    def kill(self) -> None:
        self.exit(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class SpawnRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple[list[str], dict[str, Any]]] = []
        self.processes: list[FakeProcess] = []
        self.error: BaseException | None = None
        self.responder: Callable[[dict[str, Any], FakeProcess], None] | None = None

    @property
    def process(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def fake_spawn(monkeypatch) -> SpawnRecorder:
    """Replace asyncio.create_subprocess_exec with an in-memory process."""
    recorder = SpawnRecorder()

    async def _spawn(*cmd: str, **kwargs: Any) -> FakeProcess:
        recorder.calls.append((list(cmd), kwargs))
        if recorder.error is not None:
            raise recorder.error
        proc = FakeProcess(recorder.responder)
        recorder.processes.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _spawn)
    return recorder


@pytest.fixture
def collect_events():
    """Read a task's events until ``until`` is seen or the bus closes."""

    async def _collect(task, *, until: str | None = None, timeout: float = 3.0):
        async def _run():
            received = []
            async for event in task.subscribe():
                received.append(event)
                if until is not None and event.event_type == until:
                    break
            return received

        return await asyncio.wait_for(_run(), timeout=timeout)

    return _collect
