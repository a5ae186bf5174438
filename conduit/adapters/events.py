"""Event types emitted by worker tasks.

Every backend variant translates its native stream into AgentEvent
instances so consumers (tool resolution, rendering) see one shape
regardless of which backend produced the event.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AgentEventType(str, Enum):
    """Known event kinds. Backends may emit others; they pass through as strings."""
    SESSION_CONFIGURED = "session_configured"
    TASK_STARTED = "task_started"
    TASK_COMPLETE = "task_complete"
    AGENT_MESSAGE_DELTA = "agent_message_delta"
    AGENT_MESSAGE = "agent_message"
    EXEC_COMMAND_BEGIN = "exec_command_begin"
    EXEC_COMMAND_OUTPUT_DELTA = "exec_command_output_delta"
    EXEC_COMMAND_END = "exec_command_end"
    APPLY_PATCH_APPROVAL_REQUEST = "apply_patch_approval_request"
    PATCH_APPLY_BEGIN = "patch_apply_begin"
    PATCH_APPLY_END = "patch_apply_end"
    WEB_SEARCH_BEGIN = "web_search_begin"
    WEB_SEARCH_END = "web_search_end"
    MCP_TOOL_CALL_BEGIN = "mcp_tool_call_begin"
    MCP_TOOL_CALL_END = "mcp_tool_call_end"
    ERROR = "error"


MCP_EVENT_TYPES = frozenset({
    AgentEventType.MCP_TOOL_CALL_BEGIN.value,
    AgentEventType.MCP_TOOL_CALL_END.value,
})


def event_type_value(event_type: AgentEventType | str) -> str:
    if isinstance(event_type, AgentEventType):
        return event_type.value
    return str(event_type)


@dataclass
class AgentEvent:
    """One event from a conversation's worker task."""
    event_type: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    conversation_id: str = ""
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        self.event_type = event_type_value(self.event_type)

    @property
    def is_mcp_tool_call(self) -> bool:
        return self.event_type in MCP_EVENT_TYPES


def dict_to_event(data: dict[str, Any], conversation_id: str = "") -> AgentEvent:
    """Convert a raw backend event dict to an AgentEvent.

    Accepts ``{"eventType", "payload"}`` as well as the snake_case
    spelling. Any other top-level keys are folded into the payload.
    """
    event_type = (
        data.get("eventType")
        or data.get("event_type")
        or data.get("type")
        or ""
    )
    payload = data.get("payload")
    if not isinstance(payload, dict):
        payload = {
            k: v for k, v in data.items()
            if k not in {"eventType", "event_type", "type", "payload"}
        }
    return AgentEvent(
        event_type=str(event_type),
        payload=dict(payload),
        conversation_id=str(data.get("conversation_id") or conversation_id),
    )
