"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CONDUIT_* env vars,
or through a YAML file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _default_data_dir() -> str:
    return str(Path.home() / ".conduit")


@dataclass
class BackendConfig:
    """How to launch one backend variant's CLI."""
    command: str | None = None
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class HostConfig:
    """Conversation host configuration."""

    # Storage. Relative store paths resolve against data_dir.
    data_dir: str = field(default_factory=_default_data_dir)
    db_path: str = "conversations.sqlite3"
    history_path: str = "chat.history.json"

    # Backend CLIs
    codex_command: str = "codex"
    acp_command: str | None = None
    backends: dict[str, BackendConfig] = field(default_factory=dict)

    # Seconds to wait for a backend's session handshake.
    handshake_timeout_seconds: float = 60.0
    # Seconds shutdown waits for killed backends before force-killing.
    kill_grace_seconds: float = 5.0
    event_queue_size: int = 5000

    # Platform used for tool availability filtering.
    platform: str = sys.platform
    locale: str = "en"

    log_level: str = "INFO"

    def resolve_path(self, value: str) -> Path:
        path = Path(value).expanduser()
        if path.is_absolute():
            return path
        return Path(self.data_dir).expanduser() / path

    @property
    def database_file(self) -> Path:
        return self.resolve_path(self.db_path)

    @property
    def history_file(self) -> Path:
        return self.resolve_path(self.history_path)

    def backend(self, conversation_type: str) -> BackendConfig:
        """Backend launch settings, with the per-type command defaults applied."""
        configured = self.backends.get(conversation_type)
        backend = BackendConfig(
            command=configured.command if configured else None,
            args=list(configured.args) if configured else [],
            env=dict(configured.env) if configured else {},
        )
        if backend.command is None:
            if conversation_type == "codex":
                backend.command = self.codex_command
            elif conversation_type == "acp":
                backend.command = self.acp_command
        return backend

    @classmethod
    def from_env(cls) -> HostConfig:
        """Load configuration from CONDUIT_* environment variables."""
        conduit_vars = {
            k: v for k, v in os.environ.items() if k.startswith("CONDUIT_")
        }
        if conduit_vars:
            logger.info(
                "HostConfig.from_env: CONDUIT_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(conduit_vars.items())),
            )
        else:
            logger.debug("HostConfig.from_env: no CONDUIT_* env vars set, using defaults")

        config = cls(
            data_dir=os.getenv("CONDUIT_DATA_DIR") or _default_data_dir(),
            db_path=os.getenv("CONDUIT_DB_PATH", cls.db_path),
            history_path=os.getenv("CONDUIT_HISTORY_PATH", cls.history_path),
            codex_command=os.getenv("CONDUIT_CODEX_COMMAND", cls.codex_command),
            acp_command=os.getenv("CONDUIT_ACP_COMMAND") or None,
            handshake_timeout_seconds=float(os.getenv(
                "CONDUIT_HANDSHAKE_TIMEOUT", str(cls.handshake_timeout_seconds)
            )),
            kill_grace_seconds=float(os.getenv(
                "CONDUIT_KILL_GRACE_SECONDS", str(cls.kill_grace_seconds)
            )),
            event_queue_size=int(os.getenv(
                "CONDUIT_EVENT_QUEUE_SIZE", str(cls.event_queue_size)
            )),
            platform=os.getenv("CONDUIT_PLATFORM") or sys.platform,
            locale=os.getenv("CONDUIT_LOCALE", cls.locale),
            log_level=os.getenv("CONDUIT_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "HostConfig.from_env: data_dir=%s platform=%s locale=%s log_level=%s",
            config.data_dir, config.platform, config.locale, config.log_level,
        )
        return config
