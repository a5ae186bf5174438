"""Tool event resolution — maps backend events to ToolDescriptors.

Two tables feed resolution: builtin descriptors authored in
builtin.py and descriptors adapted at runtime from MCP servers. MCP
tool-call events are matched by invocation method/name; every other
event type goes through a static event-type -> candidate-id table,
filtered by platform and ranked by priority.

Resolution never fails. Unseen MCP tools get a generic descriptor and
unmapped event types get the "unknown" descriptor.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from conduit.adapters.events import AgentEvent, AgentEventType, event_type_value
from conduit.shared.tools.builtin import (
    CATEGORY_ICONS,
    DEFAULT_ICON,
    EVENT_TYPE_MAPPING,
    builtin_tools,
)
from conduit.shared.tools.descriptors import (
    McpToolInfo,
    OutputFormat,
    RendererType,
    ToolAvailability,
    ToolCapabilities,
    ToolCategory,
    ToolDescriptor,
    ToolRenderer,
)
from conduit.shared.tools.i18n import Translator

logger = logging.getLogger(__name__)

MCP_TOOL_PRIORITY = 100
GENERIC_MCP_PRIORITY = 200
UNKNOWN_TOOL_PRIORITY = 999
GENERIC_MCP_PREFIX = "generic_mcp_"
GENERIC_MCP_NAME = "McpTool"

_MCP_EVENTS = frozenset({
    AgentEventType.MCP_TOOL_CALL_BEGIN.value,
    AgentEventType.MCP_TOOL_CALL_END.value,
})

# Checked in order; first matching category wins.
_CATEGORY_KEYWORDS: list[tuple[ToolCategory, tuple[str, ...]]] = [
    (ToolCategory.SEARCH, ("search", "find", "query")),
    (ToolCategory.FILE_OPS, ("file", "read", "write", "edit")),
    (ToolCategory.EXECUTION, ("exec", "run", "command", "shell")),
    (ToolCategory.ANALYSIS, ("chart", "plot", "analyze", "graph")),
    (ToolCategory.COMMUNICATION, ("http", "api", "request", "fetch")),
]


def infer_category(tool: McpToolInfo) -> ToolCategory:
    """Guess a category from the tool's name (and description, for search)."""
    name = tool.name.lower()
    description = (tool.description or "").lower()
    if "search" in description:
        return ToolCategory.SEARCH
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return category
    return ToolCategory.CUSTOM


def infer_capabilities(input_schema: dict[str, Any] | None) -> ToolCapabilities:
    """Guess capabilities from the input schema's property names."""
    properties = (input_schema or {}).get("properties")
    if not isinstance(properties, dict):
        properties = {}
    return ToolCapabilities(
        supports_streaming="stream" in properties,
        supports_images="image" in properties or "img" in properties,
        supports_charts=False,
        supports_markdown=True,
        supports_interaction=True,
        output_formats=[OutputFormat.TEXT, OutputFormat.MARKDOWN],
    )


def select_renderer(category: ToolCategory) -> ToolRenderer:
    if category is ToolCategory.FILE_OPS:
        return ToolRenderer(type=RendererType.CODE)
    if category is ToolCategory.ANALYSIS:
        return ToolRenderer(type=RendererType.CHART)
    if category is ToolCategory.SEARCH:
        return ToolRenderer(type=RendererType.MARKDOWN)
    return ToolRenderer(type=RendererType.STANDARD)


def extract_invocation_method(invocation: Any) -> str:
    """Pull the tool name from an MCP invocation (``method`` first, then ``name``)."""
    if not isinstance(invocation, dict):
        return ""
    method = invocation.get("method")
    if isinstance(method, str) and method:
        return method
    name = invocation.get("name")
    if isinstance(name, str) and name:
        return name
    return ""


class ToolEventResolver:
    """Registry of tool descriptors and the event -> descriptor resolver."""

    def __init__(
        self,
        *,
        platform: str | None = None,
        translator: Translator | None = None,
        register_builtins: bool = True,
    ) -> None:
        self._platform = platform or sys.platform
        self._translator = translator or Translator()
        self._tools: dict[str, ToolDescriptor] = {}
        self._mcp_tools: dict[str, ToolDescriptor] = {}
        self._event_type_mapping: dict[str, list[str]] = {}
        if register_builtins:
            for descriptor in builtin_tools():
                self.register_builtin_tool(descriptor)
            for event_type, tool_ids in EVENT_TYPE_MAPPING.items():
                self._event_type_mapping[event_type] = list(tool_ids)

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def translator(self) -> Translator:
        return self._translator

    # ── Registration ──

    def register_builtin_tool(self, descriptor: ToolDescriptor) -> None:
        """Add (or replace) a builtin descriptor. Ids must not clash with MCP tools."""
        if descriptor.id in self._mcp_tools:
            raise ValueError(
                f"Tool id '{descriptor.id}' is already registered as an MCP tool"
            )
        self._tools[descriptor.id] = descriptor
        logger.debug("Builtin tool registered: %s", descriptor.id)

    def register_mcp_tool(self, info: McpToolInfo | dict[str, Any]) -> ToolDescriptor:
        """Adapt an MCP server's tool into a descriptor keyed ``{server}/{name}``."""
        if isinstance(info, dict):
            info = McpToolInfo.from_dict(info)
        descriptor = self._adapt_mcp_tool(info)
        if descriptor.id in self._tools:
            raise ValueError(
                f"Tool id '{descriptor.id}' is already registered as a builtin tool"
            )
        self._mcp_tools[descriptor.id] = descriptor
        logger.debug(
            "MCP tool registered: %s (category=%s)",
            descriptor.id, descriptor.category.value,
        )
        return descriptor

    def register_mcp_server(
        self,
        server_name: str,
        tools: list[McpToolInfo | dict[str, Any]],
    ) -> list[ToolDescriptor]:
        """Register every tool a newly connected MCP server advertises."""
        registered: list[ToolDescriptor] = []
        for tool in tools:
            if isinstance(tool, dict):
                tool = McpToolInfo.from_dict(tool, server_name=server_name)
            elif not tool.server_name:
                tool.server_name = server_name
            registered.append(self.register_mcp_tool(tool))
        logger.info(
            "MCP server %s connected with %d tool(s)", server_name, len(registered)
        )
        return registered

    def map_event_type(self, event_type: AgentEventType | str, tool_id: str) -> None:
        """Append a candidate tool id for an event type."""
        candidates = self._event_type_mapping.setdefault(
            event_type_value(event_type), []
        )
        if tool_id not in candidates:
            candidates.append(tool_id)

    def _adapt_mcp_tool(self, info: McpToolInfo) -> ToolDescriptor:
        category = infer_category(info)
        return ToolDescriptor(
            id=f"{info.server_name}/{info.name}",
            name=info.name,
            display_name_key=f"tools.mcp.{info.server_name}.{info.name}.displayName",
            category=category,
            priority=MCP_TOOL_PRIORITY,
            availability=ToolAvailability(experimental=True),
            capabilities=infer_capabilities(info.input_schema),
            renderer=select_renderer(category),
            icon=CATEGORY_ICONS.get(category, DEFAULT_ICON),
            description_key=f"tools.mcp.{info.server_name}.{info.name}.description",
            schema=info.input_schema,
        )

    # ── Resolution ──

    def resolve_tool_for_event(
        self,
        event_type: AgentEventType | str,
        event_data: dict[str, Any] | None = None,
    ) -> ToolDescriptor:
        """Return the descriptor that should render this event."""
        event_type = event_type_value(event_type)

        if event_type in _MCP_EVENTS:
            invocation = (event_data or {}).get("invocation")
            method = extract_invocation_method(invocation)
            if method:
                descriptor = self._find_mcp_tool(method)
                if descriptor is not None:
                    return descriptor
            return self._generic_mcp_tool(method)

        candidates = [
            tool
            for tool in (
                self._tools.get(tool_id) or self._mcp_tools.get(tool_id)
                for tool_id in self._event_type_mapping.get(event_type, [])
            )
            if tool is not None and self.is_tool_available(tool)
        ]
        candidates.sort(key=lambda tool: tool.priority)
        if candidates:
            return candidates[0]
        return self._unknown_tool()

    def resolve_event(self, event: AgentEvent) -> ToolDescriptor:
        return self.resolve_tool_for_event(event.event_type, event.payload)

    def _find_mcp_tool(self, method: str) -> ToolDescriptor | None:
        suffix = f"/{method}"
        for tool_id, tool in self._mcp_tools.items():
            if tool_id.endswith(suffix) or tool.name == method:
                return tool
        return None

    def is_tool_available(self, tool: ToolDescriptor) -> bool:
        return tool.availability.supports(self._platform)

    def is_mcp_tool(self, tool: ToolDescriptor) -> bool:
        """True when the descriptor was adapted from an MCP server."""
        return self._mcp_tools.get(tool.id) is tool

    @staticmethod
    def _generic_mcp_tool(method: str) -> ToolDescriptor:
        name = method or GENERIC_MCP_NAME
        return ToolDescriptor(
            id=f"{GENERIC_MCP_PREFIX}{name}",
            name=name,
            display_name_key="tools.mcp.generic.displayName",
            category=ToolCategory.CUSTOM,
            priority=GENERIC_MCP_PRIORITY,
            availability=ToolAvailability(experimental=True),
            capabilities=ToolCapabilities(
                supports_images=True,
                supports_charts=True,
                supports_markdown=True,
                output_formats=[
                    OutputFormat.TEXT, OutputFormat.MARKDOWN, OutputFormat.JSON,
                ],
            ),
            renderer=ToolRenderer(type=RendererType.STANDARD),
            icon=CATEGORY_ICONS[ToolCategory.CUSTOM],
            description_key="tools.mcp.generic.description",
        )

    @staticmethod
    def _unknown_tool() -> ToolDescriptor:
        return ToolDescriptor(
            id="unknown",
            name="Unknown",
            display_name_key="tools.unknown.displayName",
            category=ToolCategory.CUSTOM,
            priority=UNKNOWN_TOOL_PRIORITY,
            icon=DEFAULT_ICON,
            description_key="tools.unknown.description",
        )

    # ── Introspection ──

    def get_all_tools(self) -> list[ToolDescriptor]:
        return [*self._tools.values(), *self._mcp_tools.values()]

    def get_tools_by_category(self, category: ToolCategory) -> list[ToolDescriptor]:
        return [tool for tool in self.get_all_tools() if tool.category is category]

    def get_tool(self, tool_id: str) -> ToolDescriptor | None:
        return self._tools.get(tool_id) or self._mcp_tools.get(tool_id)

    def get_event_candidates(self, event_type: AgentEventType | str) -> list[str]:
        return list(self._event_type_mapping.get(event_type_value(event_type), []))

    # ── Localization ──

    def get_tool_display_name(
        self,
        tool: ToolDescriptor,
        params: dict[str, str] | None = None,
    ) -> str:
        """Localized label, or the tool's technical name when unavailable."""
        params = params or self.get_mcp_tool_i18n_params(tool)
        try:
            return self._translator.t(tool.display_name_key, params)
        except (KeyError, ValueError, IndexError, AttributeError):
            return tool.name

    def get_tool_description(
        self,
        tool: ToolDescriptor,
        params: dict[str, str] | None = None,
    ) -> str:
        """Localized description, or ``Tool: {name}`` when unavailable."""
        params = params or self.get_mcp_tool_i18n_params(tool)
        try:
            return self._translator.t(tool.description_key, params)
        except (KeyError, ValueError, IndexError, AttributeError):
            return f"Tool: {tool.name}"

    def get_mcp_tool_i18n_params(self, tool: ToolDescriptor) -> dict[str, str]:
        if self.is_mcp_tool(tool):
            server_name, tool_name = tool.id.split("/", 1)
            return {"toolName": tool_name, "serverName": server_name}
        return {"toolName": tool.name}
