"""Host context — the explicit owner of the registry and the resolver.

One WorkerHost is created by the hosting process and passed to request
handlers; nothing in the package keeps process-global task state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from conduit.adapters.events import AgentEvent
from conduit.engine.config import HostConfig
from conduit.engine.worker_registry import ConversationWorkerRegistry
from conduit.engine.yaml_config import load_yaml_config
from conduit.shared.services.chat_history import ChatHistoryStore
from conduit.shared.services.conversation_db import ConversationDatabase
from conduit.shared.services.persistence import PersistenceFallbackLoader
from conduit.shared.tools.descriptors import McpToolInfo, ToolDescriptor
from conduit.shared.tools.i18n import Translator
from conduit.shared.tools.resolver import ToolEventResolver

logger = logging.getLogger(__name__)


@dataclass
class WorkerHost:
    """Everything a request handler needs to reach workers and tools."""
    config: HostConfig
    loader: PersistenceFallbackLoader
    registry: ConversationWorkerRegistry
    resolver: ToolEventResolver

    def describe_event(self, event: AgentEvent) -> ToolDescriptor:
        return self.resolver.resolve_event(event)

    async def shutdown(self) -> None:
        logger.info("Shutting down worker host (%d task(s))", len(self.registry))
        await self.registry.shutdown(self.config.kill_grace_seconds)


def build_host(
    config: HostConfig | None = None,
    config_path: str | Path | None = None,
    *,
    mcp_servers: dict[str, list[McpToolInfo]] | None = None,
) -> WorkerHost:
    """Wire stores, registry and resolver from configuration.

    When ``config_path`` is given, its YAML settings are applied on top
    of ``config`` and its ``mcp_servers`` are registered with the resolver,
    together with any passed in ``mcp_servers``.
    """
    config = config or HostConfig.from_env()
    mcp_servers = dict(mcp_servers or {})
    if config_path is not None:
        settings = load_yaml_config(config_path, base=config)
        config = settings.config
        mcp_servers.update(settings.mcp_servers)

    loader = PersistenceFallbackLoader(
        primary=ConversationDatabase(config.database_file),
        secondary=ChatHistoryStore(config.history_file),
    )
    registry = ConversationWorkerRegistry(loader, config=config)
    resolver = ToolEventResolver(
        platform=config.platform,
        translator=Translator(config.locale),
    )
    for server_name, tools in mcp_servers.items():
        resolver.register_mcp_server(server_name, list(tools))

    logger.info(
        "Worker host ready (db=%s, history=%s, platform=%s)",
        config.database_file, config.history_file, config.platform,
    )
    return WorkerHost(
        config=config,
        loader=loader,
        registry=registry,
        resolver=resolver,
    )
