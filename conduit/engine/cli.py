"""CLI entry point for inspecting the conversation host.

Usage:
    conduit tools [--category search]
    conduit resolve exec_command_begin
    conduit resolve mcp_tool_call_begin --method search_docs
    conduit conversations
"""
from __future__ import annotations

import argparse
import json
import logging
import sys

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from conduit.shared.tools.descriptors import ToolCategory, ToolDescriptor
from conduit.shared.tools.resolver import ToolEventResolver

from .config import HostConfig
from .host import WorkerHost, build_host
from .yaml_config import load_yaml_config

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conduit",
        description="Inspect agent conversations and tool descriptors",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file (host, backends, mcp_servers sections)",
    )
    parser.add_argument(
        "--platform",
        default=None,
        help="Platform used for tool availability (default: this machine)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    tools = sub.add_parser("tools", help="List registered tool descriptors")
    tools.add_argument(
        "--category",
        choices=[c.value for c in ToolCategory],
        default=None,
        help="Only show tools in this category",
    )

    resolve = sub.add_parser("resolve", help="Resolve an event type to a tool")
    resolve.add_argument("event_type", help="Backend event type, e.g. exec_command_begin")
    resolve.add_argument(
        "--method",
        default=None,
        help="MCP invocation method/name for mcp_tool_call_* events",
    )

    sub.add_parser("conversations", help="List persisted conversations")
    return parser


def _tools_table(resolver: ToolEventResolver, tools: list[ToolDescriptor]) -> Table:
    table = Table(title=f"Tools ({resolver.platform})")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Priority", justify="right")
    table.add_column("Renderer")
    table.add_column("Available")
    for tool in sorted(tools, key=lambda t: (t.priority, t.id)):
        available = resolver.is_tool_available(tool)
        table.add_row(
            tool.id,
            escape(f"{tool.icon} {resolver.get_tool_display_name(tool)}"),
            tool.category.value,
            str(tool.priority),
            tool.renderer.type.value,
            ("yes" if available else "no")
            + (" (experimental)" if tool.availability.experimental else ""),
        )
    return table


def _conversations_table(host: WorkerHost) -> Table:
    table = Table(title="Conversations")
    table.add_column("Id", style="cyan")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Store")
    table.add_column("Updated")
    for tier, meta in host.loader.list_all():
        table.add_row(
            meta.id,
            meta.type,
            escape(meta.name),
            tier,
            meta.updated_at.isoformat(timespec="seconds") if meta.updated_at else "",
        )
    return table


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    config = HostConfig.from_env()
    mcp_servers = {}
    if args.config:
        try:
            settings = load_yaml_config(args.config, base=config)
        except FileNotFoundError as exc:
            print(f"Config file not found: {exc.filename}", file=sys.stderr)
            return 2
        config = settings.config
        mcp_servers = settings.mcp_servers
    if args.platform:
        config.platform = args.platform

    level = (
        logging.DEBUG if args.verbose
        else getattr(logging, config.log_level.upper(), logging.WARNING)
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    # basicConfig is a no-op when the root logger already has handlers.
    logging.getLogger().setLevel(level)

    host = build_host(config, mcp_servers=mcp_servers)

    logger.debug("Running %s command", args.command)
    console = Console()
    resolver = host.resolver

    if args.command == "tools":
        tools = (
            resolver.get_tools_by_category(ToolCategory(args.category))
            if args.category else resolver.get_all_tools()
        )
        console.print(_tools_table(resolver, tools))
    elif args.command == "resolve":
        event_data = (
            {"invocation": {"method": args.method}} if args.method else None
        )
        descriptor = resolver.resolve_tool_for_event(args.event_type, event_data)
        payload = descriptor.to_dict()
        payload["displayName"] = resolver.get_tool_display_name(descriptor)
        payload["description"] = resolver.get_tool_description(descriptor)
        console.print_json(json.dumps(payload))
    elif args.command == "conversations":
        console.print(_conversations_table(host))
    return 0


if __name__ == "__main__":
    sys.exit(main())
