"""Tests for tool descriptor registration and event resolution."""

from __future__ import annotations

import pytest

from conduit.adapters.events import AgentEvent, AgentEventType, dict_to_event
from conduit.shared.tools.descriptors import (
    McpToolInfo,
    RendererType,
    ToolAvailability,
    ToolCategory,
    ToolDescriptor,
)
from conduit.shared.tools import i18n
from conduit.shared.tools.i18n import Translator
from conduit.shared.tools.resolver import (
    ToolEventResolver,
    extract_invocation_method,
    infer_capabilities,
    infer_category,
    select_renderer,
)


def _resolver(**kwargs) -> ToolEventResolver:
    kwargs.setdefault("platform", "linux")
    return ToolEventResolver(**kwargs)


def _docs_server(resolver: ToolEventResolver) -> ToolDescriptor:
    [descriptor] = resolver.register_mcp_server("docs", [{
        "name": "search_docs",
        "description": "Search the product documentation",
        "inputSchema": {
            "type": "object",
            "properties": {"query": {"type": "string"}, "stream": {"type": "boolean"}},
        },
    }])
    return descriptor


@pytest.mark.parametrize(
    ("event_type", "tool_id"),
    [
        ("exec_command_begin", "shell_exec"),
        ("exec_command_output_delta", "shell_exec"),
        ("exec_command_end", "shell_exec"),
        ("apply_patch_approval_request", "file_operations"),
        ("patch_apply_begin", "file_operations"),
        ("patch_apply_end", "file_operations"),
        ("web_search_begin", "web_search"),
        ("web_search_end", "web_search"),
    ],
)
def test_builtin_event_mapping(event_type, tool_id) -> None:
    assert _resolver().resolve_tool_for_event(event_type).id == tool_id


def test_resolution_prefers_lowest_priority() -> None:
    resolver = _resolver()
    resolver.map_event_type(AgentEventType.EXEC_COMMAND_BEGIN, "agent_browser")

    assert resolver.get_event_candidates("exec_command_begin") == [
        "shell_exec", "agent_browser",
    ]
    assert resolver.resolve_tool_for_event("exec_command_begin").id == "shell_exec"


def test_resolution_skips_tools_unavailable_on_platform() -> None:
    mac_only = ToolDescriptor(
        id="mac_terminal",
        name="Terminal",
        display_name_key="tools.macTerminal.displayName",
        category=ToolCategory.EXECUTION,
        priority=5,
        availability=ToolAvailability(platforms=("darwin",)),
    )
    for platform, expected in (("linux", "shell_exec"), ("darwin", "mac_terminal")):
        resolver = _resolver(platform=platform)
        resolver.register_builtin_tool(mac_only)
        resolver.map_event_type("exec_command_begin", "mac_terminal")

        assert resolver.resolve_tool_for_event("exec_command_begin").id == expected


def test_unmapped_event_resolves_to_unknown() -> None:
    descriptor = _resolver().resolve_tool_for_event("agent_reasoning")

    assert descriptor.id == "unknown"
    assert descriptor.priority == 999
    assert descriptor.category is ToolCategory.CUSTOM


def test_mapped_event_with_no_platform_candidates_resolves_to_unknown() -> None:
    resolver = _resolver(platform="freebsd13")

    assert resolver.get_event_candidates("exec_command_begin") == ["shell_exec"]
    assert resolver.resolve_tool_for_event("exec_command_begin").id == "unknown"
    assert resolver.resolve_tool_for_event("web_search_end").id == "unknown"


def test_mcp_registration_infers_metadata() -> None:
    resolver = _resolver()
    descriptor = _docs_server(resolver)

    assert descriptor.id == "docs/search_docs"
    assert resolver.is_mcp_tool(descriptor)
    assert descriptor.category is ToolCategory.SEARCH
    assert descriptor.renderer.type is RendererType.MARKDOWN
    assert descriptor.priority == 100
    assert descriptor.availability.experimental
    assert descriptor.capabilities.supports_streaming
    assert not descriptor.capabilities.supports_images
    assert descriptor.display_name_key == "tools.mcp.docs.search_docs.displayName"
    assert descriptor.schema["properties"]["query"] == {"type": "string"}


def test_mcp_event_resolves_registered_tool_by_method_or_name() -> None:
    resolver = _resolver()
    descriptor = _docs_server(resolver)

    by_method = resolver.resolve_tool_for_event(
        "mcp_tool_call_begin", {"invocation": {"method": "search_docs"}}
    )
    by_name = resolver.resolve_tool_for_event(
        AgentEventType.MCP_TOOL_CALL_END, {"invocation": {"name": "search_docs"}}
    )

    assert by_method is descriptor
    assert by_name is descriptor


def test_unregistered_mcp_method_gets_generic_descriptor() -> None:
    resolver = _resolver()

    descriptor = resolver.resolve_tool_for_event(
        "mcp_tool_call_begin", {"invocation": {"method": "frobnicate"}}
    )

    assert descriptor.id == "generic_mcp_frobnicate"
    assert descriptor.name == "frobnicate"
    assert descriptor.priority == 200
    assert resolver.get_tool_display_name(descriptor) == "MCP Tool: frobnicate"


def test_mcp_event_without_invocation_uses_generic_name() -> None:
    descriptor = _resolver().resolve_tool_for_event("mcp_tool_call_end", {})

    assert descriptor.id == "generic_mcp_McpTool"
    assert descriptor.name == "McpTool"


def test_resolve_event_reads_event_payload() -> None:
    resolver = _resolver()
    _docs_server(resolver)
    event = dict_to_event({
        "eventType": "mcp_tool_call_begin",
        "payload": {"invocation": {"method": "search_docs"}},
    }, conversation_id="c1")

    assert resolver.resolve_event(event).id == "docs/search_docs"
    assert resolver.resolve_event(AgentEvent("patch_apply_end")).id == "file_operations"


def test_id_collisions_between_tables_are_rejected() -> None:
    resolver = _resolver()
    descriptor = _docs_server(resolver)

    with pytest.raises(ValueError, match="MCP tool"):
        resolver.register_builtin_tool(ToolDescriptor(
            id=descriptor.id,
            name="shadow",
            display_name_key="x",
            category=ToolCategory.CUSTOM,
            priority=1,
        ))

    resolver.register_builtin_tool(ToolDescriptor(
        id="local/run_tests",
        name="run_tests",
        display_name_key="x",
        category=ToolCategory.EXECUTION,
        priority=1,
    ))
    with pytest.raises(ValueError, match="builtin tool"):
        resolver.register_mcp_tool(McpToolInfo(server_name="local", name="run_tests"))

    assert resolver.is_mcp_tool(resolver.get_tool("docs/search_docs"))
    assert not resolver.is_mcp_tool(resolver.get_tool("local/run_tests"))
    assert not resolver.is_mcp_tool(resolver.get_tool("shell_exec"))


def test_introspection() -> None:
    resolver = _resolver()
    _docs_server(resolver)

    assert {t.id for t in resolver.get_all_tools()} == {
        "shell_exec", "agent_browser", "file_operations", "web_search",
        "docs/search_docs",
    }
    assert {t.id for t in resolver.get_tools_by_category(ToolCategory.SEARCH)} == {
        "web_search", "docs/search_docs",
    }
    assert resolver.get_tool("docs/search_docs") is not None
    assert resolver.get_tool("missing") is None


@pytest.mark.parametrize(
    ("name", "description", "category"),
    [
        ("lookup", "Search customer records", ToolCategory.SEARCH),
        ("find_symbol", None, ToolCategory.SEARCH),
        ("read_file", "Return file contents", ToolCategory.FILE_OPS),
        ("run_tests", None, ToolCategory.EXECUTION),
        ("plot_metrics", None, ToolCategory.ANALYSIS),
        ("http_get", None, ToolCategory.COMMUNICATION),
        ("frobnicate", "Does things", ToolCategory.CUSTOM),
    ],
)
def test_infer_category(name, description, category) -> None:
    info = McpToolInfo(server_name="s", name=name, description=description)

    assert infer_category(info) is category


def test_infer_capabilities_from_schema() -> None:
    caps = infer_capabilities({"properties": {"img": {}, "prompt": {}}})

    assert caps.supports_images
    assert not caps.supports_streaming
    assert not infer_capabilities(None).supports_images


def test_select_renderer() -> None:
    assert select_renderer(ToolCategory.FILE_OPS).type is RendererType.CODE
    assert select_renderer(ToolCategory.ANALYSIS).type is RendererType.CHART
    assert select_renderer(ToolCategory.SEARCH).type is RendererType.MARKDOWN
    assert select_renderer(ToolCategory.EXECUTION).type is RendererType.STANDARD


def test_extract_invocation_method_prefers_method() -> None:
    assert extract_invocation_method({"method": "a", "name": "b"}) == "a"
    assert extract_invocation_method({"method": "", "name": "b"}) == "b"
    assert extract_invocation_method("search_docs") == ""


def test_display_names_are_localized() -> None:
    resolver = _resolver(translator=Translator("zh-CN"))
    shell = resolver.get_tool("shell_exec")

    assert resolver.get_tool_display_name(shell) == "终端"


def test_missing_locale_falls_back_to_english() -> None:
    resolver = _resolver(translator=Translator("fr", catalogs={"fr": {}}))
    shell = resolver.get_tool("shell_exec")

    assert resolver.get_tool_display_name(shell) == "Shell"


def test_missing_translation_falls_back_to_tool_name() -> None:
    resolver = _resolver()
    descriptor = _docs_server(resolver)

    assert resolver.get_tool_display_name(descriptor) == "search_docs"
    assert resolver.get_tool_description(descriptor) == "Tool: search_docs"
    assert resolver.get_mcp_tool_i18n_params(descriptor) == {
        "toolName": "search_docs",
        "serverName": "docs",
    }


def test_missing_placeholder_falls_back_to_tool_name() -> None:
    translator = Translator(catalogs={"en": {"tools": {"x": "Run {command}"}}})
    resolver = _resolver(translator=translator)
    descriptor = ToolDescriptor(
        id="x", name="X", display_name_key="tools.x",
        category=ToolCategory.CUSTOM, priority=50,
    )

    assert resolver.get_tool_display_name(descriptor) == "X"


def test_unreadable_catalog_falls_back_to_tool_name(monkeypatch) -> None:
    def _fail(*args, **kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(i18n, "open", _fail, raising=False)
    resolver = _resolver(translator=Translator("en"))
    shell = resolver.get_tool("shell_exec")

    assert resolver.get_tool_display_name(shell) == shell.name
    assert resolver.get_tool_description(shell) == f"Tool: {shell.name}"


def test_undecodable_catalog_is_empty(tmp_path) -> None:
    (tmp_path / "en.yaml").write_bytes(b"tools:\n  shellExec:\n    displayName: \xff\xfe\n")

    assert i18n.load_catalog("en", tmp_path) == {}
    with pytest.raises(KeyError):
        Translator("en", locales_dir=tmp_path).t("tools.shellExec.displayName")


def test_builtin_id_with_slash_gets_plain_i18n_params() -> None:
    resolver = _resolver()
    descriptor = ToolDescriptor(
        id="local/run_tests", name="run_tests", display_name_key="x",
        category=ToolCategory.EXECUTION, priority=1,
    )
    resolver.register_builtin_tool(descriptor)

    assert resolver.get_mcp_tool_i18n_params(descriptor) == {"toolName": "run_tests"}
