"""Data proxy route: ``/api/supabase-proxy?target=/rest/v1/...``."""

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from inventory_gateway.api.dependencies import (
    GatewayServices,
    get_optional_user,
    get_services,
)
from inventory_gateway.domain.models import SessionUser
from inventory_gateway.domain.services.gateway import filter_response_headers

logger = logging.getLogger(__name__)

router = APIRouter(tags=["proxy"])

PROXY_METHODS = ["GET", "HEAD", "POST", "PATCH", "PUT", "DELETE"]


@router.api_route("/supabase-proxy", methods=PROXY_METHODS)
async def supabase_proxy(
    request: Request,
    target: str | None = Query(default=None),
    user: SessionUser | None = Depends(get_optional_user),
    services: GatewayServices = Depends(get_services),
) -> Response:
    """Authorize the request and stream the data-service response back."""
    gateway = services.gateway
    decision = gateway.authorize(
        user,
        services.cookies.read_access_token(request.cookies),
        request.method,
        target,
    )

    body = await request.body()
    upstream = await gateway.forward(decision, request.headers, body)
    headers = filter_response_headers(upstream.headers)

    if upstream.status_code == status.HTTP_204_NO_CONTENT or request.method == "HEAD":
        await upstream.aclose()
        return Response(status_code=upstream.status_code, headers=headers)

    return StreamingResponse(
        upstream.aiter_bytes(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )
