"""
chatbridge - Tool Declaration Tests

Verifies:
- Catalog normalization (nameless and duplicate tools dropped)
- Schema resolution never fails
- Per-provider declaration shapes
- Strict schema coercion for the responses API
"""

import copy
import json

from chatbridge.core.models import ToolDefinition, ToolMeta
from chatbridge.tools import (
    MAX_STRICT_SCHEMA_DEPTH,
    build_tool_meta,
    coerce_strict_json_schema,
    normalize_tool_definitions,
    resolve_tool_schema,
    to_anthropic_tools,
    to_gemini_tools,
    to_openai_tools,
    to_responses_tools,
)


WEATHER_SCHEMA = {
    "type": "object",
    "properties": {
        "city": {"type": "string"},
        "units": {"type": "string", "enum": ["c", "f"]},
    },
    "required": ["city"],
}

WEATHER_TOOL = {
    "name": "get_weather",
    "description": "Current weather for a city",
    "input_schema": WEATHER_SCHEMA,
}


# ============================================================
# Catalog Normalization
# ============================================================

class TestNormalizeToolDefinitions:
    """Test catalog parsing."""

    def test_drops_nameless_and_duplicates(self):
        """Nameless entries vanish; the first of two same-named tools wins."""
        tools = normalize_tool_definitions([
            {"name": "  ", "description": "nameless"},
            {"description": "no name at all"},
            {"name": "a", "description": "first"},
            {"name": "a", "description": "second"},
            "not a tool",
        ])

        assert [t.name for t in tools] == ["a"]
        assert tools[0].description == "first"

    def test_camel_case_fields(self):
        tools = normalize_tool_definitions([{
            "name": "read",
            "inputSchemaJson": '{"type": "object"}',
            "mcpServerName": "fs",
            "mcpToolName": "read_file",
        }])

        assert tools[0].input_schema_json == '{"type": "object"}'
        assert tools[0].mcp_server_name == "fs"
        assert tools[0].mcp_tool_name == "read_file"

    def test_accepts_tool_definitions(self):
        tools = normalize_tool_definitions([ToolDefinition(name="x"), ToolDefinition(name="")])

        assert [t.name for t in tools] == ["x"]

    def test_none_catalog(self):
        assert normalize_tool_definitions(None) == []


class TestResolveToolSchema:
    """Test schema resolution fallbacks."""

    def test_structured_schema_preferred(self):
        tool = ToolDefinition(name="t", input_schema={"type": "object"}, input_schema_json='{"x": 1}')

        assert resolve_tool_schema(tool) == {"type": "object"}

    def test_json_string_used(self):
        tool = ToolDefinition(name="t", input_schema_json=json.dumps(WEATHER_SCHEMA))

        assert resolve_tool_schema(tool) == WEATHER_SCHEMA

    def test_unparseable_json_falls_back(self):
        """Broken schema text should never raise."""
        tool = ToolDefinition(name="t", input_schema_json="{broken")

        assert resolve_tool_schema(tool) == {"type": "object", "properties": {}}

    def test_non_object_json_falls_back(self):
        tool = ToolDefinition(name="t", input_schema_json="[1, 2]")

        assert resolve_tool_schema(tool) == {"type": "object", "properties": {}}


# ============================================================
# Provider Formats
# ============================================================

class TestProviderFormats:
    """Test per-provider tool declarations."""

    def test_openai_format(self):
        result = to_openai_tools([WEATHER_TOOL])

        assert result == [{
            "type": "function",
            "function": {
                "name": "get_weather",
                "description": "Current weather for a city",
                "parameters": WEATHER_SCHEMA,
            },
        }]

    def test_blank_description_omitted(self):
        result = to_openai_tools([{"name": "ping", "description": "  "}])

        assert "description" not in result[0]["function"]
        assert result[0]["function"]["parameters"] == {"type": "object", "properties": {}}

    def test_anthropic_format(self):
        result = to_anthropic_tools([WEATHER_TOOL])

        assert result == [{
            "name": "get_weather",
            "description": "Current weather for a city",
            "input_schema": WEATHER_SCHEMA,
        }]

    def test_gemini_format(self):
        result = to_gemini_tools([WEATHER_TOOL])

        assert len(result) == 1
        declarations = result[0]["functionDeclarations"]
        assert declarations[0]["name"] == "get_weather"
        assert declarations[0]["parameters"] == WEATHER_SCHEMA

    def test_gemini_empty_catalog(self):
        """No tools means no functionDeclarations group at all."""
        assert to_gemini_tools([]) == []
        assert to_gemini_tools([{"name": ""}]) == []

    def test_responses_format_is_strict(self):
        result = to_responses_tools([WEATHER_TOOL])

        entry = result[0]
        assert entry["type"] == "function"
        assert entry["name"] == "get_weather"
        assert entry["strict"] is True
        assert entry["parameters"]["additionalProperties"] is False
        assert entry["parameters"]["required"] == ["city", "units"]


# ============================================================
# Strict Schema Coercion
# ============================================================

class TestCoerceStrictJsonSchema:
    """Test strict-dialect coercion."""

    def test_nested_objects_coerced(self):
        schema = {
            "type": "object",
            "properties": {
                "a": {"type": "string"},
                "b": {"type": "object", "properties": {"c": {"type": "integer"}}},
                "list": {"type": "array", "items": {"properties": {"d": {"type": "string"}}}},
            },
        }
        result = coerce_strict_json_schema(schema)

        assert result["required"] == ["a", "b", "list"]
        assert result["properties"]["b"]["additionalProperties"] is False
        assert result["properties"]["b"]["required"] == ["c"]
        item = result["properties"]["list"]["items"]
        assert item["type"] == "object"
        assert item["required"] == ["d"]

    def test_input_not_mutated(self):
        schema = {"type": "object", "properties": {"x": {"type": "object"}}}
        original = copy.deepcopy(schema)

        coerce_strict_json_schema(schema)

        assert schema == original

    def test_object_without_properties_gets_empty_map(self):
        result = coerce_strict_json_schema({"type": ["object", "null"]})

        assert result["properties"] == {}
        assert result["required"] == []
        assert result["additionalProperties"] is False

    def test_any_of_and_defs(self):
        schema = {
            "anyOf": [{"type": "object", "properties": {"x": {"type": "string"}}}, {"type": "null"}],
            "$defs": {"Item": {"type": "object", "properties": {"y": {"type": "number"}}}},
        }
        result = coerce_strict_json_schema(schema)

        assert result["anyOf"][0]["required"] == ["x"]
        assert result["anyOf"][1] == {"type": "null"}
        assert result["$defs"]["Item"]["additionalProperties"] is False

    def test_depth_cap(self):
        """Subtrees below the recursion ceiling pass through unchanged."""
        schema = {"type": "object"}
        for _ in range(MAX_STRICT_SCHEMA_DEPTH + 10):
            schema = {"type": "object", "properties": {"n": schema}}

        result = coerce_strict_json_schema(schema)

        node = result
        for _ in range(MAX_STRICT_SCHEMA_DEPTH):
            node = node["properties"]["n"]
        assert node["additionalProperties"] is False
        assert "additionalProperties" not in node["properties"]["n"]


# ============================================================
# MCP Metadata
# ============================================================

class TestBuildToolMeta:
    """Test tool name -> MCP origin map."""

    def test_only_mcp_tools_included(self):
        meta = build_tool_meta([
            {"name": "local"},
            {"name": "remote", "mcp_server_name": " srv ", "mcp_tool_name": "do_it"},
            {"name": "half", "mcpToolName": "only_tool"},
        ])

        assert set(meta) == {"remote", "half"}
        assert meta["remote"] == ToolMeta(mcp_server_name="srv", mcp_tool_name="do_it")
        assert meta["half"].mcp_server_name is None
