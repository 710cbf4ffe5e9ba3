"""
Function Dispatch API Routes

Internal entry point used by the LLM orchestration layer:
- dispatch a named function call (sync result or scheduled job id)
- list tool declarations in a provider's format
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from conduit.api.dependencies import get_dispatcher
from conduit.auth.middleware import InternalCaller, require_internal_caller
from conduit.functions.dispatcher import CallerContext, Dispatcher, DispatchResult
from conduit.functions.providers import ProviderKind

router = APIRouter(prefix="/functions", tags=["Functions"])


class DispatchRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Registered function name")
    arguments: dict[str, Any] | str | None = Field(
        default=None,
        description="Call arguments as an object or a JSON-encoded string",
    )
    priority: int | None = Field(default=None, description="Job priority for async functions")
    llm_call_log_id: str | None = None


class ToolDeclarationsResponse(BaseModel):
    provider: ProviderKind
    tools: list[dict[str, Any]]


@router.post("/dispatch", response_model=DispatchResult)
async def dispatch_function(
    request: DispatchRequest,
    caller: InternalCaller = Depends(require_internal_caller),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> DispatchResult:
    """
    Dispatch a function call.

    Failures (unknown function, invalid arguments, handler errors) are
    reported in the body with `success: false`, not as HTTP errors.
    """
    return await dispatcher.dispatch(
        request.name,
        request.arguments,
        CallerContext(
            owner_id=caller.owner_id,
            llm_call_log_id=request.llm_call_log_id,
            priority=request.priority,
        ),
    )


@router.get("/tools", response_model=ToolDeclarationsResponse)
async def list_tool_declarations(
    provider: ProviderKind = Query(ProviderKind.OPENAI),
    caller: InternalCaller = Depends(require_internal_caller),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> ToolDeclarationsResponse:
    registry = await dispatcher.registry_for(caller.owner_id)
    return ToolDeclarationsResponse(
        provider=provider,
        tools=registry.tool_declarations(provider, caller.owner_id),
    )
