"""API tests for the internal function dispatch endpoints."""

from __future__ import annotations

import pytest

pytestmark = [pytest.mark.api, pytest.mark.asyncio]


class TestDispatch:
    async def test_sync_dispatch_returns_result(self, async_client, internal_headers):
        response = await async_client.post(
            "/api/v1/functions/dispatch",
            json={"name": "hello_world", "arguments": {"name": "Ada"}},
            headers=internal_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "result": {"message": "Hello, Ada!"},
            "error": None,
            "job_id": None,
            "details": None,
        }

    async def test_async_dispatch_returns_job_id(self, async_client, internal_headers, job_queue):
        response = await async_client.post(
            "/api/v1/functions/dispatch",
            json={
                "name": "send_notification",
                "arguments": '{"type": "push", "title": "Hi", "message": "Done"}',
                "priority": 8,
                "llm_call_log_id": "llm_42",
            },
            headers=internal_headers,
        )

        data = response.json()
        assert data["success"] is True
        job = job_queue.jobs[data["job_id"]]
        assert job.priority == 8
        assert job.owner_id == "owner_test"

    async def test_validation_failure_is_reported_in_body(self, async_client, internal_headers, call_log):
        response = await async_client.post(
            "/api/v1/functions/dispatch",
            json={"name": "echo", "arguments": {}},
            headers=internal_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["details"]["errors"][0]["path"] == "message"
        assert len(call_log.rows) == 1

    async def test_requires_internal_token(self, async_client):
        response = await async_client.post(
            "/api/v1/functions/dispatch",
            json={"name": "echo", "arguments": {"message": "x"}},
        )

        assert response.status_code == 401
        assert response.json()["code"] == "auth.unauthorized"

    async def test_empty_name_is_rejected(self, async_client, internal_headers):
        response = await async_client.post(
            "/api/v1/functions/dispatch",
            json={"name": ""},
            headers=internal_headers,
        )

        assert response.status_code == 422
        assert response.json()["code"] == "request.validation_error"


class TestToolDeclarations:
    async def test_defaults_to_openai_shape(self, async_client, internal_headers):
        response = await async_client.get("/api/v1/functions/tools", headers=internal_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "openai"
        names = [tool["function"]["name"] for tool in data["tools"]]
        assert names == sorted(names)
        assert {"echo", "send_notification", "send_webhook"} <= set(names)

    async def test_gemini_shape(self, async_client, internal_headers):
        response = await async_client.get(
            "/api/v1/functions/tools",
            params={"provider": "gemini"},
            headers=internal_headers,
        )

        tools = {tool["name"]: tool for tool in response.json()["tools"]}
        assert tools["echo"]["parameters"]["type"] == "OBJECT"

    async def test_unknown_provider_is_422(self, async_client, internal_headers):
        response = await async_client.get(
            "/api/v1/functions/tools",
            params={"provider": "mistral"},
            headers=internal_headers,
        )

        assert response.status_code == 422
