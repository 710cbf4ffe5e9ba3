"""Global functions available to every caller."""

from __future__ import annotations

from typing import Any

from conduit.functions.dispatcher import CallerContext
from conduit.functions.registry import ExecutionMode, FunctionDefinition, FunctionRegistry
from conduit.functions.schema import (
    ArrayNode,
    EnumNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    StringNode,
)
from conduit.jobs.handlers import NOTIFICATION_TYPES
from conduit.jobs.queue import JobQueue
from conduit.kernel.errors import NotFoundError
from conduit.kernel.time import utc_now


async def echo(arguments: dict[str, Any], caller: CallerContext) -> dict[str, Any]:
    return {"echo": arguments["message"], "timestamp": utc_now().isoformat()}


async def hello_world(arguments: dict[str, Any], caller: CallerContext) -> dict[str, Any]:
    return {"message": f"Hello, {arguments['name']}!"}


def make_get_job_status(queue: JobQueue):
    async def get_job_status(arguments: dict[str, Any], caller: CallerContext) -> dict[str, Any]:
        job = await queue.get(arguments["job_id"])
        # Jobs of other owners are reported as missing.
        if job is None or (job.owner_id is not None and job.owner_id != caller.owner_id):
            raise NotFoundError(message=f"Job {arguments['job_id']} not found", code="jobs.not_found")
        return {
            "job_id": job.id,
            "kind": job.kind,
            "status": job.status.value,
            "progress": job.progress,
            "result": job.result,
            "error_message": job.error_message,
        }

    return get_job_status


def builtin_definitions(queue: JobQueue) -> list[FunctionDefinition]:
    return [
        FunctionDefinition(
            name="echo",
            description="Echo back a message. Useful for testing tool calling.",
            parameters=ObjectNode(
                properties={"message": StringNode(description="The message to echo back")},
            ),
            execution_mode=ExecutionMode.SYNC,
            handler=echo,
        ),
        FunctionDefinition(
            name="hello_world",
            description="Return a greeting.",
            parameters=ObjectNode(
                properties={
                    "name": OptionalNode(StringNode(description="Who to greet"), default="World"),
                },
            ),
            execution_mode=ExecutionMode.SYNC,
            handler=hello_world,
        ),
        FunctionDefinition(
            name="get_job_status",
            description="Look up the status, progress and result of a scheduled job.",
            parameters=ObjectNode(
                properties={"job_id": StringNode(description="Job id returned when the job was scheduled")},
            ),
            execution_mode=ExecutionMode.SYNC,
            handler=make_get_job_status(queue),
        ),
        FunctionDefinition(
            name="send_notification",
            description="Send a notification to one or more recipients.",
            parameters=ObjectNode(
                properties={
                    "type": EnumNode(values=NOTIFICATION_TYPES, description="Delivery channel"),
                    "title": StringNode(description="Notification title"),
                    "message": StringNode(description="Notification body"),
                    "recipients": OptionalNode(
                        ArrayNode(
                            items=StringNode(),
                            description="Recipient ids. Defaults to the caller.",
                        )
                    ),
                },
            ),
            execution_mode=ExecutionMode.ASYNC,
        ),
        FunctionDefinition(
            name="send_webhook",
            description="Send an HTTP request to an external URL.",
            parameters=ObjectNode(
                properties={
                    "url": StringNode(description="Target URL"),
                    "method": OptionalNode(
                        EnumNode(values=("GET", "POST", "PUT", "PATCH", "DELETE")),
                        default="POST",
                    ),
                    "headers": OptionalNode(
                        ObjectNode(additional=True, description="Extra request headers")
                    ),
                    "body": OptionalNode(
                        ObjectNode(additional=True, description="JSON request body")
                    ),
                },
            ),
            execution_mode=ExecutionMode.ASYNC,
        ),
        FunctionDefinition(
            name="generate_report",
            description="Generate a job activity report for a date range.",
            parameters=ObjectNode(
                properties={
                    "report_type": OptionalNode(StringNode(), default="job_activity"),
                    "start_date": OptionalNode(StringNode(description="ISO 8601 start (inclusive)")),
                    "end_date": OptionalNode(StringNode(description="ISO 8601 end (exclusive)")),
                    "days": OptionalNode(
                        NumberNode(integer=True, description="Window length when start_date is omitted")
                    ),
                },
            ),
            execution_mode=ExecutionMode.ASYNC,
        ),
    ]


def build_builtin_registry(queue: JobQueue) -> FunctionRegistry:
    return FunctionRegistry(builtin_definitions(queue))
