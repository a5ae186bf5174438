"""Worker task backed by an Agent Client Protocol (ACP) agent.

ACP agents speak JSON-RPC 2.0 over stdio. The task performs
``initialize`` + ``session/new`` on start, sends each user turn as
``session/prompt``, and translates ``session/update`` notifications
into the same event kinds the Codex stream uses, so tool resolution
is backend-agnostic.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from conduit.adapters.events import AgentEventType
from conduit.engine.errors import TaskStartError
from conduit.engine.models import ConversationType

from .base import WorkerTask

logger = logging.getLogger(__name__)

ACP_PROTOCOL_VERSION = 1

# Launch commands for known ACP backends, keyed by extra["backend"].
ACP_BACKEND_COMMANDS: dict[str, list[str]] = {
    "claude": ["claude-code-acp"],
    "gemini": ["gemini", "--experimental-acp"],
    "qwen": ["qwen", "--experimental-acp"],
}
DEFAULT_ACP_BACKEND = "claude"

# ACP tool kind -> (begin event, end event)
_KIND_EVENTS: dict[str, tuple[AgentEventType, AgentEventType]] = {
    "execute": (
        AgentEventType.EXEC_COMMAND_BEGIN,
        AgentEventType.EXEC_COMMAND_END,
    ),
    "edit": (AgentEventType.PATCH_APPLY_BEGIN, AgentEventType.PATCH_APPLY_END),
    "delete": (AgentEventType.PATCH_APPLY_BEGIN, AgentEventType.PATCH_APPLY_END),
    "move": (AgentEventType.PATCH_APPLY_BEGIN, AgentEventType.PATCH_APPLY_END),
    "fetch": (AgentEventType.WEB_SEARCH_BEGIN, AgentEventType.WEB_SEARCH_END),
}
_MCP_EVENTS = (
    AgentEventType.MCP_TOOL_CALL_BEGIN,
    AgentEventType.MCP_TOOL_CALL_END,
)
_TERMINAL_TOOL_STATUSES = {"completed", "failed"}

_METHOD_NOT_FOUND = -32601


def _content_text(content: Any) -> str:
    """Flatten ACP content blocks (or a single block) to plain text."""
    if isinstance(content, dict):
        if content.get("type") == "text":
            return str(content.get("text", ""))
        if content.get("type") == "content":
            return _content_text(content.get("content"))
        return ""
    if isinstance(content, list):
        return "".join(_content_text(item) for item in content)
    return ""


class AcpWorkerTask(WorkerTask):
    """Conversation session with an ACP-speaking agent CLI."""

    def __init__(
        self,
        conversation_id: str,
        *,
        extra: dict[str, Any] | None = None,
        command: str | None = None,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        handshake_timeout: float = 60.0,
        event_queue_size: int = 5000,
    ) -> None:
        self._extra = dict(extra or {})
        self._backend = str(self._extra.get("backend") or DEFAULT_ACP_BACKEND)
        default_cmd = ACP_BACKEND_COMMANDS.get(
            self._backend, ACP_BACKEND_COMMANDS[DEFAULT_ACP_BACKEND]
        )
        resolved = self._extra.get("cli_path") or command
        if resolved:
            cmd_args = list(args or [])
        else:
            resolved, cmd_args = default_cmd[0], default_cmd[1:] + list(args or [])
        super().__init__(
            conversation_id,
            command=resolved,
            args=cmd_args,
            cwd=self._extra.get("workspace") or None,
            env=env,
            event_queue_size=event_queue_size,
        )
        self._handshake_timeout = handshake_timeout
        self._request_id = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._prompt_ids: set[int] = set()
        self._tool_calls: dict[str, tuple[tuple[AgentEventType, AgentEventType], str]] = {}
        self._session_id: str | None = None
        self._agent_info: dict[str, Any] = {}

    @property
    def type(self) -> str:
        return ConversationType.ACP.value

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def build_command(self) -> list[str]:
        return [self._command, *self._args]

    # ── JSON-RPC plumbing ──

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _request(
        self,
        method: str,
        params: dict[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        request_id = self._next_id()
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._write_json({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
                "params": params,
            })
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(request_id, None)

    async def _respond(
        self,
        request_id: Any,
        result: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
        if error is not None:
            message["error"] = error
        else:
            message["result"] = result or {}
        await self._write_json(message)

    async def _on_started(self) -> None:
        try:
            init = await self._request(
                "initialize",
                {
                    "protocolVersion": ACP_PROTOCOL_VERSION,
                    "clientCapabilities": {
                        "fs": {"readTextFile": False, "writeTextFile": False},
                    },
                },
                timeout=self._handshake_timeout,
            )
            session = await self._request(
                "session/new",
                {
                    "cwd": self._cwd or ".",
                    "mcpServers": list(self._extra.get("mcp_servers") or []),
                },
                timeout=self._handshake_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TaskStartError(
                self.conversation_id,
                f"ACP handshake timed out after {self._handshake_timeout}s",
            ) from exc
        except RuntimeError as exc:
            raise TaskStartError(self.conversation_id, str(exc)) from exc

        self._agent_info = init.get("agentInfo") or {}
        self._session_id = session.get("sessionId")
        if not self._session_id:
            raise TaskStartError(
                self.conversation_id, "session/new returned no sessionId"
            )
        logger.info(
            "ACP session %s opened for %s (backend=%s)",
            self._session_id, self.conversation_id, self._backend,
        )
        await self._emit(AgentEventType.SESSION_CONFIGURED, {
            "session_id": self._session_id,
            "backend": self._backend,
            "agent_info": self._agent_info,
        })

    def _on_reader_closed(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(
                    RuntimeError("ACP agent closed its output stream")
                )

    async def _submit(self, text: str) -> None:
        request_id = self._next_id()
        self._prompt_ids.add(request_id)
        await self._emit(AgentEventType.TASK_STARTED, {"request_id": request_id})
        await self._write_json({
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "session/prompt",
            "params": {
                "sessionId": self._session_id,
                "prompt": [{"type": "text", "text": text}],
            },
        })

    # ── Inbound messages ──

    async def _handle_message(self, data: dict[str, Any]) -> None:
        method = data.get("method")
        if method is None and "id" in data:
            await self._handle_response(data)
        elif method is not None and "id" in data:
            await self._handle_agent_request(data["id"], method, data.get("params") or {})
        elif method == "session/update":
            params = data.get("params") or {}
            update = params.get("update")
            if isinstance(update, dict):
                await self._handle_update(update)
        else:
            logger.debug("Ignoring ACP notification %s", method)

    async def _handle_response(self, data: dict[str, Any]) -> None:
        request_id = data.get("id")
        if request_id in self._prompt_ids:
            self._prompt_ids.discard(request_id)
            if "error" in data:
                await self._emit(AgentEventType.ERROR, {"message": data["error"]})
            else:
                result = data.get("result") or {}
                await self._emit(AgentEventType.TASK_COMPLETE, {
                    "stop_reason": result.get("stopReason"),
                })
            return

        future = self._pending.get(request_id)
        if future is None or future.done():
            logger.debug("Unmatched ACP response id=%s", request_id)
            return
        if "error" in data:
            future.set_exception(RuntimeError(f"ACP error: {data['error']}"))
        else:
            future.set_result(data.get("result") or {})

    async def _handle_agent_request(
        self, request_id: Any, method: str, params: dict[str, Any]
    ) -> None:
        if method != "session/request_permission":
            await self._respond(request_id, error={
                "code": _METHOD_NOT_FOUND,
                "message": f"Method not supported: {method}",
            })
            return

        tool_call = params.get("toolCall") or {}
        options = params.get("options") or []
        event_type = (
            AgentEventType.APPLY_PATCH_APPROVAL_REQUEST
            if tool_call.get("kind") in ("edit", "delete", "move")
            else "exec_approval_request"
        )
        await self._emit(event_type, {
            "call_id": tool_call.get("toolCallId"),
            "title": tool_call.get("title"),
            "options": options,
        })

        outcome: dict[str, Any] = {"outcome": "cancelled"}
        if self._extra.get("yolo"):
            allow = next(
                (o for o in options if str(o.get("kind", "")).startswith("allow")),
                None,
            )
            if allow is not None:
                outcome = {"outcome": "selected", "optionId": allow.get("optionId")}
        await self._respond(request_id, result={"outcome": outcome})

    async def _handle_update(self, update: dict[str, Any]) -> None:
        kind = update.get("sessionUpdate")
        if kind == "agent_message_chunk":
            await self._emit(AgentEventType.AGENT_MESSAGE_DELTA, {
                "delta": _content_text(update.get("content")),
            })
        elif kind == "tool_call":
            await self._handle_tool_call(update)
        elif kind == "tool_call_update":
            await self._handle_tool_call_update(update)
        elif kind:
            payload = {k: v for k, v in update.items() if k != "sessionUpdate"}
            await self._emit(str(kind), payload)

    async def _handle_tool_call(self, update: dict[str, Any]) -> None:
        call_id = str(update.get("toolCallId") or "")
        title = str(update.get("title") or "")
        raw_input = update.get("rawInput") or {}
        events = _KIND_EVENTS.get(str(update.get("kind") or ""), _MCP_EVENTS)
        self._tool_calls[call_id] = (events, title)
        begin = events[0]

        payload: dict[str, Any] = {"call_id": call_id, "title": title}
        if begin is AgentEventType.EXEC_COMMAND_BEGIN:
            payload["command"] = raw_input.get("command") or title
        elif begin is AgentEventType.PATCH_APPLY_BEGIN:
            payload["changes"] = update.get("locations") or []
        elif begin is AgentEventType.WEB_SEARCH_BEGIN:
            payload["query"] = raw_input.get("url") or raw_input.get("query") or title
        else:
            payload["invocation"] = {"name": title, "arguments": raw_input}
        await self._emit(begin, payload)

    async def _handle_tool_call_update(self, update: dict[str, Any]) -> None:
        call_id = str(update.get("toolCallId") or "")
        status = update.get("status")
        events, title = self._tool_calls.get(call_id, (_MCP_EVENTS, ""))
        output = _content_text(update.get("content"))

        if status in _TERMINAL_TOOL_STATUSES:
            self._tool_calls.pop(call_id, None)
            payload: dict[str, Any] = {
                "call_id": call_id,
                "success": status == "completed",
                "output": output,
            }
            if events is _MCP_EVENTS:
                payload["invocation"] = {"name": str(update.get("title") or title)}
            await self._emit(events[1], payload)
        elif output and events[0] is AgentEventType.EXEC_COMMAND_BEGIN:
            await self._emit(AgentEventType.EXEC_COMMAND_OUTPUT_DELTA, {
                "call_id": call_id,
                "chunk": output,
            })
