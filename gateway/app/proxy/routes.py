"""
Proxy Routes - Backend Request Forwarding
==========================================

This module implements the single proxy entry point that forwards requests
from shared-secret holders to the backend data API with privileged
credentials.

Security Model:
---------------
1. Every request must present the shared proxy secret (x-proxy-secret,
   or another configured secret header)
2. The destination is resolved once into a canonical target, which is both
   evaluated by the route policy and dispatched to the backend
3. Writes to sensitive entities are always denied; other writes need an
   allow-listed prefix; reads need a read-scope prefix
4. Caller credentials are stripped and the privileged API key and bearer
   token are injected
5. The backend status code and body are passed back verbatim

Endpoints:
----------
- ANY /proxy              : destination from the x-dest-path header
- ANY /proxy/{path...}    : destination from the route segments
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ..dependencies import get_app_state
from ..models import ErrorResponse
from .paths import EmptyDestination, resolve
from .policy import extract_secret

logger = logging.getLogger(__name__)

# Create router
proxy_router = APIRouter()

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing destination path"},
    401: {"model": ErrorResponse, "description": "Invalid proxy secret"},
    403: {"model": ErrorResponse, "description": "Destination not allowed or protected"},
    500: {"model": ErrorResponse, "description": "Proxy runtime error"},
}


@proxy_router.api_route("/proxy", methods=PROXY_METHODS, responses=ERROR_RESPONSES)
@proxy_router.api_route("/proxy/{path:path}", methods=PROXY_METHODS, responses=ERROR_RESPONSES)
async def proxy_request(
    request: Request,
    app_state=Depends(get_app_state),
) -> Response:
    """
    Proxy one request to the backend.

    Flow:
    1. Extract the shared secret from the accepted secret headers
    2. Resolve the canonical destination (header wins over route segments)
    3. Evaluate the route policy; denials raise a GatewayError
    4. Rewrite headers (drop caller credentials, inject privileged ones)
    5. Forward and translate the backend response

    Raises:
        AuthDenied, BadRequest, PolicyDenied, MethodNotAllowed, InternalError
    """
    settings = app_state.settings
    # Only bound on /proxy/{path}; never read from the query string
    path = request.path_params.get("path", "")

    secret = extract_secret(request.headers, settings.secret_header_list)

    try:
        destination = resolve(
            request.headers.get(settings.DEST_PATH_HEADER),
            path.split("/") if path else [],
            request.url.query,
        )
    except EmptyDestination:
        destination = None

    target = destination.target if destination else ""
    decision = app_state.policy_engine.decide(secret, request.method, target)

    if not decision.allowed:
        logger.warning(
            f"Proxy request denied: {decision.reason}",
            extra={
                "method": request.method,
                "target": destination.path if destination else None,
                "reason": decision.reason,
            },
        )
        decision.enforce()

    outbound_headers = app_state.rewriter.rewrite(request.headers)
    body = await request.body()

    logger.info(
        "Proxying request to backend",
        extra={
            "method": request.method,
            "target": destination.path,
            "request_id": request.headers.get("x-request-id"),
        },
    )

    result = await app_state.forwarder.forward(
        request.method,
        destination,
        outbound_headers,
        body,
    )
    return result.to_response()
