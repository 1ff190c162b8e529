"""
chatbridge - Tool Schema Handling

Parses loosely-shaped tool catalogs into ToolDefinitions, resolves each
tool's JSON schema and coerces schemas into the strict dialect required
by the OpenAI responses API.
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from ..core.models import ToolDefinition


# Recursion ceiling for strict coercion; deeper subtrees pass through unchanged
MAX_STRICT_SCHEMA_DEPTH = 50

# Nested schema maps whose values are themselves schemas
_SCHEMA_MAP_KEYS = ("properties", "$defs", "definitions")
_SCHEMA_LIST_KEYS = ("anyOf", "oneOf", "allOf")
_SCHEMA_SINGLE_KEYS = ("items", "prefixItems", "not")


def empty_object_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def tool_definition_from_dict(data: Dict[str, Any]) -> Optional[ToolDefinition]:
    """
    Build a ToolDefinition from a snake_case or camelCase dict.

    Returns None when no usable name is present.
    """
    name = _as_str(data.get("name")).strip()
    if not name:
        return None

    schema = _pick(data, "input_schema", "inputSchema")
    return ToolDefinition(
        name=name,
        description=_as_str(data.get("description")),
        input_schema=schema if isinstance(schema, dict) else None,
        input_schema_json=_as_str(_pick(data, "input_schema_json", "inputSchemaJson")) or None,
        mcp_server_name=_as_str(_pick(data, "mcp_server_name", "mcpServerName")) or None,
        mcp_tool_name=_as_str(_pick(data, "mcp_tool_name", "mcpToolName")) or None,
    )


def normalize_tool_definitions(raw: Optional[Iterable[Any]]) -> List[ToolDefinition]:
    """
    Normalize a tool catalog.

    Entries without a name are dropped; duplicate names keep the first
    occurrence.
    """
    result: List[ToolDefinition] = []
    seen = set()
    for item in raw or ():
        if isinstance(item, ToolDefinition):
            tool = item if item.name.strip() else None
        elif isinstance(item, dict):
            tool = tool_definition_from_dict(item)
        else:
            tool = None
        if tool is None or tool.name in seen:
            continue
        seen.add(tool.name)
        result.append(tool)
    return result


def resolve_tool_schema(tool: ToolDefinition) -> Dict[str, Any]:
    """
    The tool's parameter schema.

    Prefers the structured schema, then a parseable JSON object string,
    then an empty object schema. Never raises.
    """
    if isinstance(tool.input_schema, dict):
        return tool.input_schema

    raw = (tool.input_schema_json or "").strip()
    if raw:
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed

    return empty_object_schema()


def _has_object_type(schema_type: Any) -> bool:
    if schema_type == "object":
        return True
    if isinstance(schema_type, list):
        return any(str(t).strip().lower() == "object" for t in schema_type)
    return False


def coerce_strict_json_schema(schema: Any, depth: int = 0) -> Any:
    """
    Coerce a JSON schema into the strict dialect.

    Every object-typed or property-bearing node gets
    additionalProperties=false and required set to exactly its own
    property keys. Returns a new structure; the input is not mutated.
    Past MAX_STRICT_SCHEMA_DEPTH the subtree is returned as-is.
    """
    if depth > MAX_STRICT_SCHEMA_DEPTH:
        return schema
    if isinstance(schema, list):
        return [coerce_strict_json_schema(item, depth + 1) for item in schema]
    if not isinstance(schema, dict):
        return schema

    out = dict(schema)

    has_object_type = _has_object_type(out.get("type"))
    has_props = isinstance(out.get("properties"), dict)
    if has_object_type or has_props:
        if not has_object_type:
            out["type"] = "object"
        if not has_props:
            out["properties"] = {}
        out["additionalProperties"] = False
        out["required"] = list(out["properties"].keys())

    for key in _SCHEMA_MAP_KEYS:
        value = out.get(key)
        if isinstance(value, dict):
            out[key] = {k: coerce_strict_json_schema(v, depth + 1) for k, v in value.items()}

    for key in _SCHEMA_SINGLE_KEYS:
        if out.get(key) is not None:
            out[key] = coerce_strict_json_schema(out[key], depth + 1)

    for key in _SCHEMA_LIST_KEYS:
        if isinstance(out.get(key), list):
            out[key] = [coerce_strict_json_schema(item, depth + 1) for item in out[key]]

    if out.get("additionalProperties") not in (None, False):
        out["additionalProperties"] = False

    return out
