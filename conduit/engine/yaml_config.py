"""YAML configuration loader.

Example YAML:
    host:
      data_dir: ~/.conduit
      db_path: conversations.sqlite3
      history_path: chat.history.json
      locale: en
      handshake_timeout_seconds: 60
      kill_grace_seconds: 5

    backends:
      codex:
        command: codex
      acp:
        command: claude-code-acp
        env:
          ANTHROPIC_API_KEY: "${ANTHROPIC_API_KEY}"

    mcp_servers:
      docs:
        tools:
          - name: search_docs
            description: Search the product documentation
            inputSchema:
              type: object
              properties:
                query: {type: string}
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from conduit.shared.tools.descriptors import McpToolInfo

from .config import BackendConfig, HostConfig

logger = logging.getLogger(__name__)

_HOST_FIELD_TYPES: dict[str, type] = {
    "data_dir": str,
    "db_path": str,
    "history_path": str,
    "codex_command": str,
    "acp_command": str,
    "handshake_timeout_seconds": float,
    "kill_grace_seconds": float,
    "event_queue_size": int,
    "platform": str,
    "locale": str,
    "log_level": str,
}


@dataclass
class HostSettings:
    """Complete parsed YAML configuration."""
    config: HostConfig
    mcp_servers: dict[str, list[McpToolInfo]] = field(default_factory=dict)


def _expand_env(value: str) -> str:
    """Expand ``${VAR}`` references against the process environment."""
    return os.path.expandvars(value)


def _parse_backend(name: str, raw: Any) -> BackendConfig:
    if not isinstance(raw, dict):
        logger.warning("Backend '%s' config is not a mapping; ignoring", name)
        return BackendConfig()
    args = raw.get("args") or []
    env = raw.get("env") or {}
    return BackendConfig(
        command=raw.get("command"),
        args=[str(a) for a in args] if isinstance(args, list) else [],
        env={
            str(k): _expand_env(str(v)) for k, v in env.items()
        } if isinstance(env, dict) else {},
    )


def _parse_mcp_servers(raw: Any) -> dict[str, list[McpToolInfo]]:
    servers: dict[str, list[McpToolInfo]] = {}
    if not isinstance(raw, dict):
        return servers
    for server_name, server_raw in raw.items():
        tools_raw = (server_raw or {}).get("tools") if isinstance(server_raw, dict) else None
        tools: list[McpToolInfo] = []
        for tool_raw in tools_raw or []:
            if not isinstance(tool_raw, dict) or not tool_raw.get("name"):
                logger.warning(
                    "Skipping MCP tool without a name on server '%s'", server_name
                )
                continue
            tools.append(McpToolInfo.from_dict(tool_raw, server_name=str(server_name)))
        servers[str(server_name)] = tools
    return servers


def load_yaml_config(
    path: str | Path,
    base: HostConfig | None = None,
) -> HostSettings:
    """Load and parse a YAML config file.

    Values from the ``host:`` section override ``base`` (defaults to
    a fresh HostConfig). Unknown host keys are logged and ignored.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path)
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a mapping at top level")

    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(sorted(raw)) or "(empty)",
    )

    config = base or HostConfig()
    known = {f.name for f in fields(HostConfig)}
    for key, value in (raw.get("host") or {}).items():
        if key not in known or key not in _HOST_FIELD_TYPES:
            logger.warning("Unknown host config key '%s' in %s", key, path)
            continue
        if value is None:
            continue
        caster = _HOST_FIELD_TYPES[key]
        value = caster(value)
        if caster is str:
            value = _expand_env(value)
        setattr(config, key, value)

    for name, backend_raw in (raw.get("backends") or {}).items():
        config.backends[str(name)] = _parse_backend(str(name), backend_raw)

    return HostSettings(
        config=config,
        mcp_servers=_parse_mcp_servers(raw.get("mcp_servers")),
    )
