"""Tool descriptor model shared by builtin and MCP-derived tools.

A ToolDescriptor tells the presentation layer how to display a tool
invocation (renderer, icon, capabilities) without it having to know
which backend event produced it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

ALL_PLATFORMS: tuple[str, ...] = ("darwin", "linux", "win32")


class ToolCategory(str, Enum):
    EXECUTION = "execution"
    FILE_OPS = "file_ops"
    SEARCH = "search"
    ANALYSIS = "analysis"
    COMMUNICATION = "communication"
    CUSTOM = "custom"


class OutputFormat(str, Enum):
    TEXT = "text"
    MARKDOWN = "markdown"
    JSON = "json"


class RendererType(str, Enum):
    STANDARD = "standard"
    MARKDOWN = "markdown"
    CODE = "code"
    CHART = "chart"


@dataclass
class ToolAvailability:
    platforms: tuple[str, ...] = ALL_PLATFORMS
    experimental: bool = False

    def supports(self, platform: str) -> bool:
        return platform in self.platforms


@dataclass
class ToolCapabilities:
    supports_streaming: bool = False
    supports_images: bool = False
    supports_charts: bool = False
    supports_markdown: bool = False
    supports_interaction: bool = False
    output_formats: list[OutputFormat] = field(
        default_factory=lambda: [OutputFormat.TEXT]
    )


@dataclass
class ToolRenderer:
    type: RendererType = RendererType.STANDARD
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolDescriptor:
    """Renderable metadata for one tool. Lower priority wins."""

    id: str
    name: str
    display_name_key: str
    category: ToolCategory
    priority: int
    availability: ToolAvailability = field(default_factory=ToolAvailability)
    capabilities: ToolCapabilities = field(default_factory=ToolCapabilities)
    renderer: ToolRenderer = field(default_factory=ToolRenderer)
    icon: str = "[.]"
    description_key: str = ""
    schema: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form for frontends."""
        return {
            "id": self.id,
            "name": self.name,
            "displayNameKey": self.display_name_key,
            "category": self.category.value,
            "priority": self.priority,
            "availability": {
                "platforms": list(self.availability.platforms),
                "experimental": self.availability.experimental,
            },
            "capabilities": {
                "supportsStreaming": self.capabilities.supports_streaming,
                "supportsImages": self.capabilities.supports_images,
                "supportsCharts": self.capabilities.supports_charts,
                "supportsMarkdown": self.capabilities.supports_markdown,
                "supportsInteraction": self.capabilities.supports_interaction,
                "outputFormats": [f.value for f in self.capabilities.output_formats],
            },
            "renderer": {
                "type": self.renderer.type.value,
                "config": dict(self.renderer.config),
            },
            "icon": self.icon,
            "descriptionKey": self.description_key,
            "schema": self.schema,
        }


@dataclass
class McpToolInfo:
    """A tool advertised by a connected MCP server."""

    server_name: str
    name: str
    description: str | None = None
    input_schema: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], server_name: str | None = None) -> McpToolInfo:
        """Accepts camelCase (``serverName``, ``inputSchema``) or snake_case keys."""
        return cls(
            server_name=str(
                server_name
                or data.get("serverName")
                or data.get("server_name")
                or ""
            ),
            name=str(data["name"]),
            description=data.get("description"),
            input_schema=data.get("inputSchema", data.get("input_schema")),
        )
