"""Job handler registry and built-in job handlers.

Handlers are keyed by job `kind` in an explicit map built at startup. Each
handler receives the job payload and a `JobContext` used to report progress.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable

import httpx
import structlog

from conduit.config import Settings, get_settings
from conduit.jobs.models import clamp_progress
from conduit.jobs.queue import JobQueue
from conduit.kernel.errors import ConflictError, HandlerError, ValidationError
from conduit.kernel.time import parse_iso8601, utc_now

logger = structlog.get_logger()

ProgressCallback = Callable[[str, int], Awaitable[bool]]


@dataclass
class JobContext:
    job_id: str
    kind: str
    owner_id: str | None
    _progress: ProgressCallback = field(repr=False)

    async def update_progress(self, progress: int) -> None:
        """Report progress (0-100). A failed write is logged and does not fail the job."""
        try:
            await self._progress(self.job_id, clamp_progress(progress))
        except Exception as exc:
            logger.warning(
                "Failed to update job progress",
                job_id=self.job_id,
                kind=self.kind,
                progress=progress,
                error=str(exc),
            )


JobHandler = Callable[[dict[str, Any], JobContext], Awaitable[Any]]


class JobHandlerRegistry:
    """Map of job kind -> handler."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, kind: str, handler: JobHandler) -> None:
        if kind in self._handlers:
            raise ConflictError(
                message=f"Job handler already registered: {kind}",
                code="jobs.handler_conflict",
            )
        self._handlers[kind] = handler

    def get(self, kind: str) -> JobHandler | None:
        return self._handlers.get(kind)

    def kinds(self) -> list[str]:
        return sorted(self._handlers.keys())

    def __contains__(self, kind: object) -> bool:
        return kind in self._handlers


# =============================================================================
# Built-in handlers
# =============================================================================


NOTIFICATION_TYPES = ("email", "push", "in_app")


def make_send_notification_handler(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> JobHandler:
    """
    Deliver a notification to each recipient.

    With `notification_webhook_url` configured every recipient is POSTed to
    the webhook; otherwise delivery is recorded in the log only.
    """

    async def send_notification(payload: dict[str, Any], ctx: JobContext) -> dict[str, Any]:
        notification_type = payload.get("type")
        if notification_type not in NOTIFICATION_TYPES:
            raise ValidationError(message=f"Unsupported notification type: {notification_type}")

        recipients = list(payload.get("recipients") or [])
        if not recipients and ctx.owner_id:
            recipients = [ctx.owner_id]

        url = settings.notification_webhook_url
        delivered: list[str] = []
        async with httpx.AsyncClient(
            timeout=settings.outbound_webhook_timeout_seconds,
            transport=transport,
        ) as client:
            for index, recipient in enumerate(recipients, start=1):
                if url:
                    response = await client.post(
                        url,
                        json={
                            "type": notification_type,
                            "title": payload.get("title"),
                            "message": payload.get("message"),
                            "recipient": recipient,
                            "job_id": ctx.job_id,
                        },
                    )
                    if response.status_code >= 400:
                        raise HandlerError(
                            message=(
                                f"Notification delivery to {recipient} failed "
                                f"with status {response.status_code}"
                            ),
                            code="jobs.notification_failed",
                        )
                else:
                    logger.info(
                        "Notification webhook skipped (no URL)",
                        job_id=ctx.job_id,
                        recipient=recipient,
                        type=notification_type,
                    )
                delivered.append(str(recipient))
                await ctx.update_progress(int(index * 100 / len(recipients)))

        return {
            "type": notification_type,
            "title": payload.get("title"),
            "delivered": len(delivered),
            "recipients": delivered,
            "sent_at": utc_now().isoformat(),
        }

    return send_notification


def make_send_webhook_handler(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> JobHandler:
    """Outbound HTTP call. A non-2xx response fails the job."""

    async def send_webhook(payload: dict[str, Any], ctx: JobContext) -> dict[str, Any]:
        url = payload.get("url")
        if not url:
            raise ValidationError(message="Webhook url is required")
        method = str(payload.get("method") or "POST").upper()
        headers = {"Content-Type": "application/json"}
        headers.update({str(k): str(v) for k, v in (payload.get("headers") or {}).items()})

        await ctx.update_progress(10)
        async with httpx.AsyncClient(
            timeout=settings.outbound_webhook_timeout_seconds,
            transport=transport,
        ) as client:
            response = await client.request(
                method,
                url,
                json=payload.get("body") if method != "GET" else None,
                headers=headers,
            )

        if not response.is_success:
            logger.warning(
                "Webhook delivery failed",
                job_id=ctx.job_id,
                url=url,
                status_code=response.status_code,
            )
            raise HandlerError(
                message=f"Webhook returned status {response.status_code}",
                code="jobs.webhook_failed",
            )

        await ctx.update_progress(90)
        return {
            "status_code": response.status_code,
            "url": url,
            "method": method,
        }

    return send_webhook


def make_generate_report_handler(queue: JobQueue) -> JobHandler:
    """Summarise job activity in a date range (defaults to the last 7 days)."""

    async def generate_report(payload: dict[str, Any], ctx: JobContext) -> dict[str, Any]:
        until = parse_iso8601(payload["end_date"]) if payload.get("end_date") else utc_now()
        since = (
            parse_iso8601(payload["start_date"])
            if payload.get("start_date")
            else until - timedelta(days=int(payload.get("days") or 7))
        )
        if since >= until:
            raise ValidationError(message="start_date must be before end_date")

        await ctx.update_progress(20)
        counts = await queue.count_by_status(since=since, until=until, owner_id=ctx.owner_id)

        await ctx.update_progress(60)
        total = sum(counts.values())
        finished = counts.get("completed", 0) + counts.get("failed", 0)
        success_rate = round(counts.get("completed", 0) / finished, 4) if finished else None

        await ctx.update_progress(90)
        return {
            "report_type": payload.get("report_type") or "job_activity",
            "start_date": since.isoformat(),
            "end_date": until.isoformat(),
            "total_jobs": total,
            "by_status": counts,
            "success_rate": success_rate,
            "generated_at": utc_now().isoformat(),
        }

    return generate_report


def build_default_job_handlers(
    queue: JobQueue,
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> JobHandlerRegistry:
    settings = settings or get_settings()
    registry = JobHandlerRegistry()
    registry.register(
        "job:send_notification",
        make_send_notification_handler(settings, transport=transport),
    )
    registry.register(
        "job:send_webhook",
        make_send_webhook_handler(settings, transport=transport),
    )
    registry.register("job:generate_report", make_generate_report_handler(queue))
    return registry
