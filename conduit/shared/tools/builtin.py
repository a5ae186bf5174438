"""Statically authored tool descriptors and the event-type mapping.

Adding a builtin tool means adding a descriptor to builtin_tools() and,
if backend events should resolve to it, an entry in EVENT_TYPE_MAPPING.
"""

from __future__ import annotations

from conduit.adapters.events import AgentEventType
from conduit.shared.tools.descriptors import (
    OutputFormat,
    RendererType,
    ToolCapabilities,
    ToolCategory,
    ToolDescriptor,
    ToolRenderer,
)

CATEGORY_ICONS: dict[ToolCategory, str] = {
    ToolCategory.EXECUTION: "[x]",
    ToolCategory.FILE_OPS: "[~]",
    ToolCategory.SEARCH: "[?]",
    ToolCategory.ANALYSIS: "[#]",
    ToolCategory.COMMUNICATION: "[*]",
    ToolCategory.CUSTOM: "[+]",
}
DEFAULT_ICON = "[.]"


def builtin_tools() -> list[ToolDescriptor]:
    """Fresh descriptor instances for every builtin tool."""
    return [
        ToolDescriptor(
            id="shell_exec",
            name="Shell",
            display_name_key="tools.shell.displayName",
            category=ToolCategory.EXECUTION,
            priority=10,
            capabilities=ToolCapabilities(
                supports_streaming=True,
                supports_markdown=True,
                supports_interaction=True,
                output_formats=[OutputFormat.TEXT, OutputFormat.MARKDOWN],
            ),
            renderer=ToolRenderer(
                type=RendererType.STANDARD, config={"showTimestamp": True}
            ),
            icon="[x]",
            description_key="tools.shell.description",
        ),
        ToolDescriptor(
            id="agent_browser",
            name="AgentBrowser",
            display_name_key="tools.agentBrowser.displayName",
            category=ToolCategory.EXECUTION,
            priority=15,
            capabilities=ToolCapabilities(
                supports_markdown=True,
                output_formats=[OutputFormat.TEXT, OutputFormat.MARKDOWN],
            ),
            renderer=ToolRenderer(
                type=RendererType.STANDARD, config={"showTimestamp": True}
            ),
            icon="[*]",
            description_key="tools.agentBrowser.description",
        ),
        ToolDescriptor(
            id="file_operations",
            name="FileOps",
            display_name_key="tools.fileOps.displayName",
            category=ToolCategory.FILE_OPS,
            priority=20,
            capabilities=ToolCapabilities(
                supports_markdown=True,
                supports_interaction=True,
                output_formats=[OutputFormat.TEXT, OutputFormat.MARKDOWN],
            ),
            renderer=ToolRenderer(
                type=RendererType.CODE, config={"language": "diff"}
            ),
            icon="[~]",
            description_key="tools.fileOps.description",
        ),
        ToolDescriptor(
            id="web_search",
            name="WebSearch",
            display_name_key="tools.webSearch.displayName",
            category=ToolCategory.SEARCH,
            priority=30,
            capabilities=ToolCapabilities(
                supports_images=True,
                supports_markdown=True,
                output_formats=[OutputFormat.TEXT, OutputFormat.MARKDOWN],
            ),
            renderer=ToolRenderer(
                type=RendererType.MARKDOWN, config={"showSources": True}
            ),
            icon="[?]",
            description_key="tools.webSearch.description",
        ),
    ]


EVENT_TYPE_MAPPING: dict[str, list[str]] = {
    AgentEventType.EXEC_COMMAND_BEGIN.value: ["shell_exec"],
    AgentEventType.EXEC_COMMAND_OUTPUT_DELTA.value: ["shell_exec"],
    AgentEventType.EXEC_COMMAND_END.value: ["shell_exec"],
    AgentEventType.APPLY_PATCH_APPROVAL_REQUEST.value: ["file_operations"],
    AgentEventType.PATCH_APPLY_BEGIN.value: ["file_operations"],
    AgentEventType.PATCH_APPLY_END.value: ["file_operations"],
    AgentEventType.WEB_SEARCH_BEGIN.value: ["web_search"],
    AgentEventType.WEB_SEARCH_END.value: ["web_search"],
}
