"""Core data models for the conversation host.

Dataclasses and enums shared by the registry, the worker tasks and
the persistence tiers. Kept free of imports from sibling modules to
avoid circular imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ConversationType(str, Enum):
    """Backend variants a conversation can be bound to."""
    ACP = "acp"
    CODEX = "codex"


class TaskState(str, Enum):
    """Worker task lifecycle states. See lifecycle.py for transition rules."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"


TERMINAL_STATES = frozenset({TaskState.EXITED, TaskState.KILLED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        # Flat history files store epoch milliseconds.
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


@dataclass
class ConversationMetadata:
    """Persisted description of a conversation, enough to rebuild its task.

    ``extra`` carries backend-specific settings (command overrides,
    workspace directory, model, ...) and is handed to the task variant
    unchanged.
    """
    id: str
    type: str
    name: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = field(default_factory=_utcnow)
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationMetadata:
        """Build from a store record, tolerating camelCase keys."""
        extra = data.get("extra") or {}
        if not isinstance(extra, dict):
            extra = {}
        return cls(
            id=str(data["id"]),
            type=str(data.get("type", "")),
            name=str(data.get("name") or ""),
            extra=dict(extra),
            created_at=_parse_timestamp(
                data.get("created_at", data.get("createTime"))
            ),
            updated_at=_parse_timestamp(
                data.get("updated_at", data.get("modifyTime"))
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "extra": self.extra,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
