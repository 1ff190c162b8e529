"""
chatbridge - Tool Normalizer

Converts a canonical tool catalog into each provider's declaration format.

Supported formats:
- OpenAI chat: {"type": "function", "function": {...}}
- OpenAI responses: flat function entries with strict schemas
- Anthropic: input_schema instead of parameters
- Google Gemini: wrapped in functionDeclarations
"""

from typing import Any, Dict, Iterable, List

from ..core.models import ToolDefinition, ToolMeta
from .schema import coerce_strict_json_schema, normalize_tool_definitions, resolve_tool_schema


class ToolNormalizer:
    """
    Normalizes tool declarations for every supported wire protocol.

    Each method accepts raw catalog entries (dicts or ToolDefinitions);
    nameless and duplicate entries are dropped first.
    """

    def _declaration(self, tool: ToolDefinition, schema_key: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": tool.name}
        if tool.description.strip():
            result["description"] = tool.description
        result[schema_key] = resolve_tool_schema(tool)
        return result

    def normalize_tools_for_openai(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        return [
            {"type": "function", "function": self._declaration(tool, "parameters")}
            for tool in normalize_tool_definitions(tools)
        ]

    def normalize_tools_for_anthropic(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        """
        Convert tools to Anthropic format.

        Anthropic uses input_schema instead of parameters and no wrapper type.
        """
        return [self._declaration(tool, "input_schema") for tool in normalize_tool_definitions(tools)]

    def normalize_tools_for_google(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        """
        Convert tools to Google Gemini format.

        Gemini wraps function declarations in a tools array:
        [{"functionDeclarations": [...]}]. No tools means no group at all.
        """
        declarations = [
            self._declaration(tool, "parameters") for tool in normalize_tool_definitions(tools)
        ]
        if not declarations:
            return []
        return [{"functionDeclarations": declarations}]

    def normalize_tools_for_responses(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        """Convert tools to OpenAI responses format with strict schemas."""
        result = []
        for tool in normalize_tool_definitions(tools):
            entry: Dict[str, Any] = {
                "type": "function",
                "name": tool.name,
                "parameters": coerce_strict_json_schema(resolve_tool_schema(tool)),
                "strict": True,
            }
            if tool.description.strip():
                entry["description"] = tool.description
            result.append(entry)
        return result


_normalizer = ToolNormalizer()


def to_openai_tools(tools: Iterable[Any]) -> List[Dict[str, Any]]:
    return _normalizer.normalize_tools_for_openai(tools)


def to_anthropic_tools(tools: Iterable[Any]) -> List[Dict[str, Any]]:
    return _normalizer.normalize_tools_for_anthropic(tools)


def to_gemini_tools(tools: Iterable[Any]) -> List[Dict[str, Any]]:
    return _normalizer.normalize_tools_for_google(tools)


def to_responses_tools(tools: Iterable[Any]) -> List[Dict[str, Any]]:
    return _normalizer.normalize_tools_for_responses(tools)


def build_tool_meta(tools: Iterable[Any]) -> Dict[str, ToolMeta]:
    """
    Map tool name to its MCP origin.

    Tools without any MCP fields are omitted. The map is built per call
    and passed explicitly to a decoder.
    """
    result: Dict[str, ToolMeta] = {}
    for tool in normalize_tool_definitions(tools):
        server = (tool.mcp_server_name or "").strip()
        mcp_tool = (tool.mcp_tool_name or "").strip()
        if not server and not mcp_tool:
            continue
        result[tool.name] = ToolMeta(
            mcp_server_name=server or None,
            mcp_tool_name=mcp_tool or None,
        )
    return result
