"""Exception hierarchy for the conversation host.

Only failures the caller must act on are raised. Tool resolution and
localization misses degrade to fallback values instead.
"""
from __future__ import annotations


class ConduitError(Exception):
    """Base exception for all host errors."""


class ConversationNotFoundError(ConduitError):
    """No live task and no persisted record for a conversation id."""
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class UnsupportedConversationTypeError(ConduitError):
    """No worker task variant exists for the conversation type."""
    def __init__(self, conversation_type: str, supported: list[str]):
        self.conversation_type = conversation_type
        self.supported = supported
        supported_str = ", ".join(supported) if supported else "none"
        super().__init__(
            f"Unsupported conversation type '{conversation_type}'. "
            f"Supported types: {supported_str}"
        )


class TaskStartError(ConduitError):
    """The backend process started but its session handshake failed."""
    def __init__(self, conversation_id: str, reason: str):
        self.conversation_id = conversation_id
        self.reason = reason
        super().__init__(
            f"Failed to start worker for conversation {conversation_id}: {reason}"
        )


class PersistenceError(ConduitError):
    """A conversation store could not be written."""


class TaskNotRunningError(ConduitError):
    """Input was sent to a task that is not running."""
    def __init__(self, conversation_id: str, state: str):
        self.conversation_id = conversation_id
        self.state = state
        super().__init__(
            f"Worker for conversation {conversation_id} is not running "
            f"(state: {state})"
        )
