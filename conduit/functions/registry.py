"""Function registry: named capabilities an LLM may call."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable

from conduit.functions.providers import ProviderKind, to_provider_schema
from conduit.functions.schema import ObjectNode
from conduit.kernel.errors import ConflictError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from conduit.functions.dispatcher import CallerContext


# Tool names accepted by every supported provider.
_FUNCTION_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]{0,63}$")


class ExecutionMode(str, Enum):
    SYNC = "sync"
    ASYNC = "async"


FunctionHandler = Callable[[dict[str, Any], "CallerContext"], Awaitable[Any]]


@dataclass(frozen=True)
class FunctionDefinition:
    name: str
    description: str
    parameters: ObjectNode
    execution_mode: ExecutionMode
    handler: FunctionHandler | None = None
    owner_id: str | None = None
    job_kind: str | None = None

    def __post_init__(self) -> None:
        if not _FUNCTION_NAME_RE.fullmatch(self.name):
            raise ValidationError(
                code="functions.invalid_name",
                message=f"Invalid function name: {self.name!r}",
            )
        if not isinstance(self.parameters, ObjectNode):
            raise ValidationError(
                code="functions.invalid_parameters",
                message=f"Parameters of {self.name} must be an object schema",
            )
        if self.execution_mode is ExecutionMode.SYNC and self.handler is None:
            raise ValidationError(
                code="functions.missing_handler",
                message=f"Sync function {self.name} requires a handler",
            )

    @property
    def target_kind(self) -> str:
        """Job kind used when the function is deferred to the queue."""
        return self.job_kind or f"job:{self.name}"

    @property
    def is_global(self) -> bool:
        return self.owner_id is None


class FunctionRegistry:
    """
    Definitions keyed by (owner scope, name).

    Global definitions have `owner_id=None`. When an owner has a definition
    with the same name as a global one, the owner's definition wins.
    """

    def __init__(self, definitions: Iterable[FunctionDefinition] = ()) -> None:
        self._definitions: dict[tuple[str | None, str], FunctionDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: FunctionDefinition) -> None:
        key = (definition.owner_id, definition.name)
        if key in self._definitions:
            raise ConflictError(
                code="functions.already_registered",
                message=f"Function '{definition.name}' is already registered",
                meta={"owner_id": definition.owner_id},
            )
        self._definitions[key] = definition

    def resolve(self, name: str, owner_id: str | None = None) -> FunctionDefinition:
        if owner_id is not None:
            scoped = self._definitions.get((owner_id, name))
            if scoped is not None:
                return scoped
        definition = self._definitions.get((None, name))
        if definition is None:
            raise NotFoundError(
                code="functions.not_found",
                message=f"Function '{name}' not found",
            )
        return definition

    def available(self, owner_id: str | None = None) -> list[FunctionDefinition]:
        """Definitions visible to an owner, sorted by name."""
        visible = {name: d for (scope, name), d in self._definitions.items() if scope is None}
        if owner_id is not None:
            visible.update(
                {name: d for (scope, name), d in self._definitions.items() if scope == owner_id}
            )
        return [visible[name] for name in sorted(visible)]

    def snapshot(self, extra: Iterable[FunctionDefinition] = ()) -> "FunctionRegistry":
        """Copy of this registry with extra definitions registered on top."""
        copy = FunctionRegistry()
        copy._definitions = dict(self._definitions)
        for definition in extra:
            copy.register(definition)
        return copy

    def tool_declarations(
        self, provider: ProviderKind | str, owner_id: str | None = None
    ) -> list[dict[str, Any]]:
        return to_provider_schema(self.available(owner_id), provider)

    def __len__(self) -> int:
        return len(self._definitions)
