"""Conversation host engine: worker tasks, their registry and configuration."""
from .models import (
    ConversationMetadata,
    ConversationType,
    TaskState,
)
from .config import BackendConfig, HostConfig
from .errors import (
    ConduitError,
    ConversationNotFoundError,
    PersistenceError,
    TaskNotRunningError,
    TaskStartError,
    UnsupportedConversationTypeError,
)

__all__ = [
    # Registry and host (lazy import to avoid circular deps)
    "ConversationWorkerRegistry",
    "WorkerHost",
    "build_host",
    # Tasks (lazy import)
    "WorkerTask",
    "AcpWorkerTask",
    "CodexWorkerTask",
    "build_task",
    # YAML config (lazy import)
    "HostSettings",
    "load_yaml_config",
    # Models
    "ConversationMetadata",
    "ConversationType",
    "TaskState",
    # Config
    "BackendConfig",
    "HostConfig",
    # Errors
    "ConduitError",
    "ConversationNotFoundError",
    "PersistenceError",
    "TaskNotRunningError",
    "TaskStartError",
    "UnsupportedConversationTypeError",
]


def __getattr__(name: str):
    if name == "ConversationWorkerRegistry":
        from .worker_registry import ConversationWorkerRegistry
        return ConversationWorkerRegistry
    if name == "WorkerHost":
        from .host import WorkerHost
        return WorkerHost
    if name == "build_host":
        from .host import build_host
        return build_host
    if name in ("WorkerTask", "AcpWorkerTask", "CodexWorkerTask", "build_task"):
        from . import tasks
        return getattr(tasks, name)
    if name == "HostSettings":
        from .yaml_config import HostSettings
        return HostSettings
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
