"""
Callable functions for LLM tool use.

Schemas, the registry, provider tool declarations and the dispatcher that
runs sync functions in-process and defers async ones to the job queue.
"""

from conduit.functions.dispatcher import CallerContext, DispatchResult, Dispatcher
from conduit.functions.providers import ProviderKind, to_provider_schema
from conduit.functions.registry import ExecutionMode, FunctionDefinition, FunctionRegistry

__all__ = [
    "CallerContext",
    "DispatchResult",
    "Dispatcher",
    "ProviderKind",
    "to_provider_schema",
    "ExecutionMode",
    "FunctionDefinition",
    "FunctionRegistry",
]
