"""Worker task variants, one per supported agent backend."""
from .base import WorkerTask
from .acp_task import AcpWorkerTask
from .codex_task import CodexWorkerTask
from .factory import build_task, supported_types

__all__ = [
    "WorkerTask",
    "AcpWorkerTask",
    "CodexWorkerTask",
    "build_task",
    "supported_types",
]
