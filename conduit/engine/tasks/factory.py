"""Maps a conversation's type to a WorkerTask variant."""
from __future__ import annotations

import logging

from conduit.engine.config import HostConfig
from conduit.engine.errors import UnsupportedConversationTypeError
from conduit.engine.models import ConversationMetadata, ConversationType

from .acp_task import AcpWorkerTask
from .base import WorkerTask
from .codex_task import CodexWorkerTask

logger = logging.getLogger(__name__)


def supported_types() -> list[str]:
    """Conversation types that have a task variant."""
    return [t.value for t in ConversationType]


def build_task(
    metadata: ConversationMetadata,
    config: HostConfig | None = None,
) -> WorkerTask:
    """Construct the worker task for a conversation.

    One branch per ConversationType member; adding a backend adds a
    member and a branch. Raises UnsupportedConversationTypeError for
    any other type.
    """
    try:
        conversation_type = ConversationType(metadata.type)
    except ValueError:
        raise UnsupportedConversationTypeError(
            metadata.type, supported_types()
        ) from None

    config = config or HostConfig()
    backend = config.backend(conversation_type.value)

    if conversation_type is ConversationType.ACP:
        task: WorkerTask = AcpWorkerTask(
            metadata.id,
            extra=metadata.extra,
            command=backend.command,
            args=backend.args,
            env=backend.env,
            handshake_timeout=config.handshake_timeout_seconds,
            event_queue_size=config.event_queue_size,
        )
    elif conversation_type is ConversationType.CODEX:
        task = CodexWorkerTask(
            metadata.id,
            extra=metadata.extra,
            command=backend.command or "codex",
            args=backend.args,
            env=backend.env,
            event_queue_size=config.event_queue_size,
        )
    else:
        raise UnsupportedConversationTypeError(metadata.type, supported_types())

    logger.info(
        "Built %s task for conversation %s", conversation_type.value, metadata.id
    )
    return task
