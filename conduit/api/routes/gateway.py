"""
Public gateway routes.

`GET /gateway/{entity}/{list|get}` and `POST /gateway/{entity}/{create|update|delete}`.
All gateway logic lives in `conduit.gateway.service.ApiGateway`; this module
only translates between HTTP and `GatewayRequest` / `GatewayResponse`.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from conduit.api.dependencies import get_gateway
from conduit.gateway.service import ApiGateway, GatewayRequest
from conduit.kernel.errors import ConduitError
from conduit.monitoring.metrics import get_metrics

router = APIRouter(prefix="/gateway", tags=["Gateway"])


async def _read_json_body(request: Request) -> dict[str, Any] | None:
    raw = await request.body()
    if not raw:
        return None
    try:
        body = json.loads(raw)
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


async def _handle(entity: str, operation: str, request: Request, gateway: ApiGateway) -> JSONResponse:
    gateway_request = GatewayRequest(
        entity=entity,
        operation=operation,
        method=request.method,
        api_key=request.headers.get(gateway.settings.gateway_api_key_header),
        query=dict(request.query_params),
        body=await _read_json_body(request) if request.method != "GET" else None,
    )

    status_code = 500
    try:
        response = await gateway.handle(gateway_request)
        status_code = response.status_code
    except ConduitError as exc:
        status_code = exc.status_code
        raise
    finally:
        get_metrics().track_gateway_request(entity, operation, status_code)

    return JSONResponse(
        status_code=response.status_code,
        content=response.body,
        headers=response.headers,
    )


@router.get("/{entity}/{operation}")
async def gateway_get(
    entity: str,
    operation: str,
    request: Request,
    gateway: ApiGateway = Depends(get_gateway),
) -> JSONResponse:
    return await _handle(entity, operation, request, gateway)


@router.post("/{entity}/{operation}")
async def gateway_post(
    entity: str,
    operation: str,
    request: Request,
    gateway: ApiGateway = Depends(get_gateway),
) -> JSONResponse:
    return await _handle(entity, operation, request, gateway)
