"""Parameter schemas for callable functions.

A schema is a tree built from a closed set of node types. Everything else is a
pure transform over that tree: JSON Schema output (and the inverse parser),
provider-specific tool declarations (see `conduit.functions.providers`) and
argument validation through a generated pydantic model.

`OptionalNode` is only meaningful as an object property: it marks the property
as not required and may carry a default that validation fills in.
"""

from __future__ import annotations

import types
from dataclasses import dataclass, field
from functools import singledispatch
from typing import Any, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, create_model

from conduit.kernel.errors import ConduitError


class _NoDefault:
    def __repr__(self) -> str:
        return "NO_DEFAULT"


NO_DEFAULT: Any = _NoDefault()


@dataclass(frozen=True)
class StringNode:
    description: str | None = None


@dataclass(frozen=True)
class NumberNode:
    integer: bool = False
    description: str | None = None


@dataclass(frozen=True)
class BooleanNode:
    description: str | None = None


@dataclass(frozen=True)
class EnumNode:
    values: tuple[str, ...]
    description: str | None = None


@dataclass(frozen=True)
class ArrayNode:
    items: "SchemaNode"
    description: str | None = None


@dataclass(frozen=True)
class ObjectNode:
    """An object with named properties.

    `additional` controls keys outside `properties`: False rejects them, True
    accepts anything, a node declares the type of every extra value (a map when
    `properties` is empty).
    """

    properties: dict[str, "SchemaNode"] = field(default_factory=dict)
    additional: "SchemaNode | bool" = False
    description: str | None = None


@dataclass(frozen=True)
class OptionalNode:
    inner: "SchemaNode"
    default: Any = NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT


@dataclass(frozen=True)
class NullableNode:
    inner: "SchemaNode"


SchemaNode = Union[
    StringNode,
    NumberNode,
    BooleanNode,
    EnumNode,
    ArrayNode,
    ObjectNode,
    OptionalNode,
    NullableNode,
]


class UnsupportedSchemaNode(ConduitError):
    def __init__(self, node: Any, *, target: str = "json_schema"):
        super().__init__(
            code="functions.unsupported_schema_node",
            message=f"Unsupported schema node for {target}: {node!r}",
            status_code=500,
            meta={"target": target},
        )


# =============================================================================
# JSON Schema
# =============================================================================


def _with_description(schema: dict[str, Any], description: str | None) -> dict[str, Any]:
    if description:
        schema["description"] = description
    return schema


@singledispatch
def to_json_schema(node: Any) -> dict[str, Any]:
    """Render a schema tree as JSON Schema. Unknown nodes raise."""
    raise UnsupportedSchemaNode(node)


@to_json_schema.register
def _(node: StringNode) -> dict[str, Any]:
    return _with_description({"type": "string"}, node.description)


@to_json_schema.register
def _(node: NumberNode) -> dict[str, Any]:
    return _with_description({"type": "integer" if node.integer else "number"}, node.description)


@to_json_schema.register
def _(node: BooleanNode) -> dict[str, Any]:
    return _with_description({"type": "boolean"}, node.description)


@to_json_schema.register
def _(node: EnumNode) -> dict[str, Any]:
    return _with_description({"type": "string", "enum": list(node.values)}, node.description)


@to_json_schema.register
def _(node: ArrayNode) -> dict[str, Any]:
    return _with_description(
        {"type": "array", "items": to_json_schema(node.items)},
        node.description,
    )


@to_json_schema.register
def _(node: ObjectNode) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "type": "object",
        "properties": {name: to_json_schema(child) for name, child in node.properties.items()},
        "required": [
            name for name, child in node.properties.items() if not isinstance(child, OptionalNode)
        ],
    }
    if isinstance(node.additional, bool):
        schema["additionalProperties"] = node.additional
    else:
        schema["additionalProperties"] = to_json_schema(node.additional)
    return _with_description(schema, node.description)


@to_json_schema.register
def _(node: OptionalNode) -> dict[str, Any]:
    schema = to_json_schema(node.inner)
    if node.has_default:
        schema["default"] = node.default
    return schema


@to_json_schema.register
def _(node: NullableNode) -> dict[str, Any]:
    return {"anyOf": [to_json_schema(node.inner), {"type": "null"}]}


# Keys that carry no structure and may be dropped when parsing.
_METADATA_KEYS = {"$schema", "title"}
_KNOWN_KEYS = {
    "type",
    "description",
    "properties",
    "required",
    "additionalProperties",
    "items",
    "enum",
    "anyOf",
    "default",
} | _METADATA_KEYS


def from_json_schema(schema: dict[str, Any]) -> SchemaNode:
    """Parse JSON Schema produced by `to_json_schema` (or an equivalent subset)."""
    if not isinstance(schema, dict):
        raise UnsupportedSchemaNode(schema, target="schema_tree")
    unknown = set(schema) - _KNOWN_KEYS
    if unknown:
        raise UnsupportedSchemaNode(sorted(unknown), target="schema_tree")

    description = schema.get("description")

    any_of = schema.get("anyOf")
    if any_of is not None:
        non_null = [s for s in any_of if s != {"type": "null"}]
        if len(any_of) != 2 or len(non_null) != 1:
            raise UnsupportedSchemaNode(schema, target="schema_tree")
        return NullableNode(from_json_schema(non_null[0]))

    if "enum" in schema:
        values = schema["enum"]
        if not all(isinstance(v, str) for v in values):
            raise UnsupportedSchemaNode(schema, target="schema_tree")
        return EnumNode(values=tuple(values), description=description)

    schema_type = schema.get("type")
    if schema_type == "string":
        return StringNode(description=description)
    if schema_type in ("number", "integer"):
        return NumberNode(integer=schema_type == "integer", description=description)
    if schema_type == "boolean":
        return BooleanNode(description=description)
    if schema_type == "array":
        return ArrayNode(items=from_json_schema(schema.get("items") or {}), description=description)
    if schema_type == "object":
        required = set(schema.get("required") or [])
        properties: dict[str, SchemaNode] = {}
        for name, child_schema in (schema.get("properties") or {}).items():
            child = from_json_schema({k: v for k, v in child_schema.items() if k != "default"})
            if name in required:
                properties[name] = child
            else:
                properties[name] = OptionalNode(child, default=child_schema.get("default", NO_DEFAULT))
        additional_raw = schema.get("additionalProperties", False)
        additional: SchemaNode | bool = (
            additional_raw if isinstance(additional_raw, bool) else from_json_schema(additional_raw)
        )
        return ObjectNode(properties=properties, additional=additional, description=description)

    raise UnsupportedSchemaNode(schema, target="schema_tree")


# =============================================================================
# Validation
# =============================================================================


@dataclass(frozen=True)
class ArgumentError:
    path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


class ArgumentValidationError(ConduitError):
    def __init__(self, errors: list[ArgumentError]):
        self.errors = errors
        summary = "; ".join(f"{e.path or '<root>'}: {e.message}" for e in errors)
        super().__init__(
            code="functions.invalid_arguments",
            message=f"Invalid arguments: {summary}",
            status_code=422,
            meta={"errors": [e.to_dict() for e in errors]},
        )

    @classmethod
    def from_message(cls, message: str, path: str = "") -> "ArgumentValidationError":
        return cls([ArgumentError(path=path, message=message)])


def _field_name(index: int) -> str:
    # Property names are carried as aliases so any JSON key is accepted.
    return f"field_{index}"


def _python_type(node: Any, model_name: str) -> Any:
    if isinstance(node, StringNode):
        return str
    if isinstance(node, NumberNode):
        return int if node.integer else float
    if isinstance(node, BooleanNode):
        return bool
    if isinstance(node, EnumNode):
        return Literal[tuple(node.values)]
    if isinstance(node, ArrayNode):
        return list[_python_type(node.items, f"{model_name}Item")]
    if isinstance(node, OptionalNode):
        return _python_type(node.inner, model_name)
    if isinstance(node, NullableNode):
        return Optional[_python_type(node.inner, model_name)]
    if isinstance(node, ObjectNode):
        if not node.properties and not isinstance(node.additional, bool):
            return dict[str, _python_type(node.additional, f"{model_name}Value")]
        return build_model(node, model_name)
    raise UnsupportedSchemaNode(node, target="validation")


def build_model(node: ObjectNode, model_name: str = "Arguments") -> type[BaseModel]:
    """Compile an object schema into a pydantic model."""
    if not isinstance(node, ObjectNode):
        raise UnsupportedSchemaNode(node, target="validation")

    fields: dict[str, Any] = {}
    for index, (name, child) in enumerate(node.properties.items()):
        child_model_name = f"{model_name}_{index}"
        if isinstance(child, OptionalNode):
            # May be omitted; null only passes when the inner node is nullable.
            default = child.default if child.has_default else None
            annotation = _python_type(child.inner, child_model_name)
            fields[_field_name(index)] = (annotation, Field(default=default, alias=name))
        else:
            fields[_field_name(index)] = (_python_type(child, child_model_name), Field(alias=name))

    if isinstance(node.additional, bool):
        extra = "forbid" if node.additional is False else "allow"
        return create_model(model_name, __config__=ConfigDict(extra=extra), **fields)

    base = _typed_extras_base(_python_type(node.additional, f"{model_name}Extra"), model_name)
    return create_model(model_name, __base__=base, **fields)


def _typed_extras_base(extra_type: Any, model_name: str) -> type[BaseModel]:
    """A base model whose undeclared keys are validated as `extra_type`."""
    namespace = {
        "__annotations__": {"__pydantic_extra__": dict[str, extra_type]},
        "model_config": ConfigDict(extra="allow"),
    }
    return types.new_class(
        f"{model_name}Extras",
        (BaseModel,),
        exec_body=lambda ns: ns.update(namespace),
    )


def _dump(value: Any, node: Any) -> Any:
    if value is None:
        return None
    if isinstance(node, (OptionalNode, NullableNode)):
        return _dump(value, node.inner)
    if isinstance(node, ArrayNode):
        return [_dump(item, node.items) for item in value]
    if isinstance(node, ObjectNode):
        if isinstance(value, BaseModel):
            out: dict[str, Any] = {}
            for index, (name, child) in enumerate(node.properties.items()):
                field_name = _field_name(index)
                if (
                    isinstance(child, OptionalNode)
                    and not child.has_default
                    and field_name not in value.model_fields_set
                ):
                    continue
                out[name] = _dump(getattr(value, field_name), child)
            extras = value.model_extra or {}
            if isinstance(node.additional, bool):
                out.update(extras)
            else:
                out.update({key: _dump(item, node.additional) for key, item in extras.items()})
            return out
        additional = node.additional
        if isinstance(additional, bool):
            return dict(value)
        return {key: _dump(item, additional) for key, item in value.items()}
    return value


def validate_arguments(node: ObjectNode, arguments: Any) -> dict[str, Any]:
    """
    Validate call arguments against a schema.

    Returns the validated arguments with declared defaults filled in.
    Raises ArgumentValidationError listing every problem found.
    """
    if not isinstance(arguments, dict):
        raise ArgumentValidationError.from_message("Arguments must be an object")

    model = build_model(node)
    try:
        instance = model.model_validate(arguments)
    except pydantic.ValidationError as exc:
        raise ArgumentValidationError(
            [
                ArgumentError(
                    path=".".join(str(part) for part in err["loc"]),
                    message=err["msg"],
                )
                for err in exc.errors()
            ]
        ) from exc
    return _dump(instance, node)
