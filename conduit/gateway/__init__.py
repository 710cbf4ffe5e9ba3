"""Public API gateway for external integrations."""

from conduit.gateway.service import (
    GATEWAY_OPERATIONS,
    ApiGateway,
    GatewayRequest,
    GatewayResponse,
    build_proxy_body,
)

__all__ = [
    "GATEWAY_OPERATIONS",
    "ApiGateway",
    "GatewayRequest",
    "GatewayResponse",
    "build_proxy_body",
]
