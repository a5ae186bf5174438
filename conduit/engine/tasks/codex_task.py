"""Worker task backed by the OpenAI Codex CLI protocol stream.

Runs ``codex proto``: submissions go to stdin as JSON lines
``{"id", "op": {...}}`` and events come back on stdout as
``{"id", "msg": {"type", ...}}``. The ``msg`` body is re-emitted
as-is, so Codex event types are the canonical AgentEventType values.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from conduit.adapters.events import MCP_EVENT_TYPES
from conduit.engine.models import ConversationType, TaskState

from .base import WorkerTask

logger = logging.getLogger(__name__)

# extra keys forwarded to codex as `-c key=value` overrides
_CONFIG_OVERRIDE_KEYS = (
    "model",
    "model_reasoning_effort",
    "approval_policy",
    "sandbox_mode",
)


class CodexWorkerTask(WorkerTask):
    """Conversation session driven through ``codex proto``."""

    def __init__(
        self,
        conversation_id: str,
        *,
        extra: dict[str, Any] | None = None,
        command: str = "codex",
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        event_queue_size: int = 5000,
    ) -> None:
        self._extra = dict(extra or {})
        super().__init__(
            conversation_id,
            command=self._extra.get("cli_path") or command,
            args=args,
            cwd=self._extra.get("workspace") or None,
            env=env,
            event_queue_size=event_queue_size,
        )

    @property
    def type(self) -> str:
        return ConversationType.CODEX.value

    def build_command(self) -> list[str]:
        cmd = [self._command]
        for key in _CONFIG_OVERRIDE_KEYS:
            value = self._extra.get(key)
            if value:
                cmd.extend(["-c", f'{key}="{value}"'])
        cmd.append("proto")
        cmd.extend(self._args)
        return cmd

    async def _handle_message(self, data: dict[str, Any]) -> None:
        msg = data.get("msg")
        if not isinstance(msg, dict):
            return
        event_type = str(msg.get("type") or "")
        if not event_type:
            return
        payload = {k: v for k, v in msg.items() if k != "type"}
        if event_type in MCP_EVENT_TYPES:
            invocation = payload.get("invocation")
            if (
                isinstance(invocation, dict)
                and "name" not in invocation
                and isinstance(invocation.get("tool"), str)
            ):
                payload["invocation"] = {**invocation, "name": invocation["tool"]}
        await self._emit(event_type, payload)

    async def _send_op(self, op: dict[str, Any]) -> str:
        submission_id = uuid.uuid4().hex
        await self._write_json({"id": submission_id, "op": op})
        return submission_id

    async def _submit(self, text: str) -> None:
        submission_id = await self._send_op({
            "type": "user_input",
            "items": [{"type": "text", "text": text}],
        })
        logger.debug(
            "Codex submission %s sent for %s", submission_id, self.conversation_id
        )

    async def interrupt(self) -> None:
        """Ask Codex to abort the current turn without ending the session."""
        if self.state is not TaskState.RUNNING:
            return
        await self._send_op({"type": "interrupt"})
