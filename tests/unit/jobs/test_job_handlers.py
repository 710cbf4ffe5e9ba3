from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from conduit.jobs.handlers import (
    JobContext,
    JobHandlerRegistry,
    build_default_job_handlers,
    make_generate_report_handler,
    make_send_notification_handler,
    make_send_webhook_handler,
)
from conduit.jobs.models import EnqueueJobRequest
from conduit.kernel.errors import ConflictError, HandlerError, ValidationError
from tests.support.job_queue import InMemoryJobQueue

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


class _ProgressRecorder:
    def __init__(self) -> None:
        self.values: list[int] = []

    async def __call__(self, job_id: str, progress: int) -> bool:
        self.values.append(progress)
        return True


@pytest.fixture
def progress():
    return _ProgressRecorder()


@pytest.fixture
def ctx(progress):
    return JobContext(job_id="job_1", kind="job:test", owner_id="owner_1", _progress=progress)


def _transport(status_code: int, sink: list[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        sink.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.MockTransport(handler)


async def test_registry_rejects_duplicate_kinds():
    async def handler(payload, ctx):
        return {}

    registry = JobHandlerRegistry()
    registry.register("job:a", handler)

    with pytest.raises(ConflictError):
        registry.register("job:a", handler)
    assert "job:a" in registry
    assert registry.get("job:b") is None


async def test_default_registry_covers_async_builtins(settings):
    registry = build_default_job_handlers(InMemoryJobQueue(), settings)

    assert registry.kinds() == ["job:generate_report", "job:send_notification", "job:send_webhook"]


async def test_send_webhook_posts_body_and_reports_status(settings, ctx, progress):
    sent: list[httpx.Request] = []
    handler = make_send_webhook_handler(settings, transport=_transport(201, sent))

    result = await handler(
        {"url": "https://hooks.test/in", "headers": {"X-Attempt": 1}, "body": {"event": "done"}},
        ctx,
    )

    assert result == {"status_code": 201, "url": "https://hooks.test/in", "method": "POST"}
    assert sent[0].method == "POST"
    assert sent[0].headers["X-Attempt"] == "1"
    assert json.loads(sent[0].content) == {"event": "done"}
    assert progress.values == [10, 90]


async def test_send_webhook_non_success_status_raises(settings, ctx):
    handler = make_send_webhook_handler(settings, transport=_transport(500, []))

    with pytest.raises(HandlerError, match="Webhook returned status 500"):
        await handler({"url": "https://hooks.test/in"}, ctx)


async def test_send_webhook_requires_url(settings, ctx):
    handler = make_send_webhook_handler(settings, transport=_transport(200, []))

    with pytest.raises(ValidationError):
        await handler({}, ctx)


async def test_send_notification_without_webhook_defaults_to_owner(settings, ctx, progress):
    sent: list[httpx.Request] = []
    handler = make_send_notification_handler(
        settings.model_copy(update={"notification_webhook_url": None}),
        transport=_transport(200, sent),
    )

    result = await handler({"type": "in_app", "title": "Hi", "message": "Done"}, ctx)

    assert result["recipients"] == ["owner_1"]
    assert result["delivered"] == 1
    assert sent == []
    assert progress.values == [100]


async def test_send_notification_posts_each_recipient(settings, ctx):
    sent: list[httpx.Request] = []
    handler = make_send_notification_handler(
        settings.model_copy(update={"notification_webhook_url": "https://notify.test/send"}),
        transport=_transport(202, sent),
    )

    result = await handler(
        {"type": "email", "title": "Hi", "message": "Done", "recipients": ["a", "b"]},
        ctx,
    )

    assert result["delivered"] == 2
    assert [json.loads(r.content)["recipient"] for r in sent] == ["a", "b"]


async def test_send_notification_rejects_unknown_type(settings, ctx):
    handler = make_send_notification_handler(settings, transport=_transport(200, []))

    with pytest.raises(ValidationError):
        await handler({"type": "carrier_pigeon", "title": "t", "message": "m"}, ctx)


async def test_generate_report_counts_owner_jobs(ctx, progress):
    queue = InMemoryJobQueue(clock=lambda: datetime(2026, 1, 5, tzinfo=timezone.utc))
    await queue.enqueue(EnqueueJobRequest(kind="job:x", owner_id="owner_1"))
    await queue.enqueue(EnqueueJobRequest(kind="job:x", owner_id="someone_else"))
    handler = make_generate_report_handler(queue)

    result = await handler(
        {"start_date": "2026-01-01T00:00:00Z", "end_date": "2026-01-08T00:00:00Z"},
        ctx,
    )

    assert result["report_type"] == "job_activity"
    assert result["total_jobs"] == 1
    assert result["by_status"]["pending"] == 1
    assert result["success_rate"] is None
    assert progress.values == [20, 60, 90]


async def test_generate_report_rejects_inverted_range(ctx):
    handler = make_generate_report_handler(InMemoryJobQueue())

    with pytest.raises(ValidationError):
        await handler({"start_date": "2026-02-01", "end_date": "2026-01-01"}, ctx)
