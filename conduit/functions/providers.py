"""Tool declarations in the shapes each LLM vendor's tool-calling API expects."""

from __future__ import annotations

from enum import Enum
from functools import singledispatch
from typing import TYPE_CHECKING, Any, Iterable

from conduit.functions.schema import (
    ArrayNode,
    BooleanNode,
    EnumNode,
    NullableNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    StringNode,
    UnsupportedSchemaNode,
    to_json_schema,
)

if TYPE_CHECKING:
    from conduit.functions.registry import FunctionDefinition


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


def _openai_declaration(definition: "FunctionDefinition") -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": definition.name,
            "description": definition.description,
            "parameters": to_json_schema(definition.parameters),
        },
    }


def _anthropic_declaration(definition: "FunctionDefinition") -> dict[str, Any]:
    return {
        "name": definition.name,
        "description": definition.description,
        "input_schema": to_json_schema(definition.parameters),
    }


# Gemini function declarations take an OpenAPI 3.0 schema subset: uppercase
# type names, `nullable` instead of a null union, no additionalProperties.


def _described(schema: dict[str, Any], description: str | None) -> dict[str, Any]:
    if description:
        schema["description"] = description
    return schema


@singledispatch
def to_gemini_schema(node: Any) -> dict[str, Any]:
    raise UnsupportedSchemaNode(node, target="gemini")


@to_gemini_schema.register
def _(node: StringNode) -> dict[str, Any]:
    return _described({"type": "STRING"}, node.description)


@to_gemini_schema.register
def _(node: NumberNode) -> dict[str, Any]:
    return _described({"type": "INTEGER" if node.integer else "NUMBER"}, node.description)


@to_gemini_schema.register
def _(node: BooleanNode) -> dict[str, Any]:
    return _described({"type": "BOOLEAN"}, node.description)


@to_gemini_schema.register
def _(node: EnumNode) -> dict[str, Any]:
    return _described(
        {"type": "STRING", "format": "enum", "enum": list(node.values)},
        node.description,
    )


@to_gemini_schema.register
def _(node: ArrayNode) -> dict[str, Any]:
    return _described({"type": "ARRAY", "items": to_gemini_schema(node.items)}, node.description)


@to_gemini_schema.register
def _(node: ObjectNode) -> dict[str, Any]:
    if not isinstance(node.additional, bool):
        # Typed map values have no Gemini equivalent.
        raise UnsupportedSchemaNode(node, target="gemini")
    schema: dict[str, Any] = {
        "type": "OBJECT",
        "properties": {name: to_gemini_schema(child) for name, child in node.properties.items()},
    }
    required = [name for name, child in node.properties.items() if not isinstance(child, OptionalNode)]
    if required:
        schema["required"] = required
    return _described(schema, node.description)


@to_gemini_schema.register
def _(node: OptionalNode) -> dict[str, Any]:
    schema = to_gemini_schema(node.inner)
    if node.has_default:
        schema["default"] = node.default
    return schema


@to_gemini_schema.register
def _(node: NullableNode) -> dict[str, Any]:
    schema = to_gemini_schema(node.inner)
    schema["nullable"] = True
    return schema


def _gemini_declaration(definition: "FunctionDefinition") -> dict[str, Any]:
    return {
        "name": definition.name,
        "description": definition.description,
        "parameters": to_gemini_schema(definition.parameters),
    }


_DECLARATION_BUILDERS = {
    ProviderKind.OPENAI: _openai_declaration,
    ProviderKind.ANTHROPIC: _anthropic_declaration,
    ProviderKind.GEMINI: _gemini_declaration,
}


def to_provider_schema(
    definitions: Iterable["FunctionDefinition"],
    provider: ProviderKind | str,
) -> list[dict[str, Any]]:
    """Render function definitions as a provider's tool declaration list."""
    build = _DECLARATION_BUILDERS[ProviderKind(provider)]
    return [build(definition) for definition in definitions]
