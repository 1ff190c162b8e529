"""
chatbridge - Tool Declaration Module

Canonical tool catalog handling for all providers:
- Schema: catalog parsing, schema resolution, strict-schema coercion
- Normalizer: per-provider declaration formats and MCP tool metadata
"""

from .schema import (
    MAX_STRICT_SCHEMA_DEPTH,
    coerce_strict_json_schema,
    normalize_tool_definitions,
    resolve_tool_schema,
    tool_definition_from_dict,
)
from .normalizer import (
    ToolNormalizer,
    build_tool_meta,
    to_anthropic_tools,
    to_gemini_tools,
    to_openai_tools,
    to_responses_tools,
)

__all__ = [
    # Schema
    "MAX_STRICT_SCHEMA_DEPTH",
    "coerce_strict_json_schema",
    "normalize_tool_definitions",
    "resolve_tool_schema",
    "tool_definition_from_dict",
    # Normalizer
    "ToolNormalizer",
    "build_tool_meta",
    "to_anthropic_tools",
    "to_gemini_tools",
    "to_openai_tools",
    "to_responses_tools",
]
