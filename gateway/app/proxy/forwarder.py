"""
Backend Forwarding
==================

Issues the outbound request for an allowed proxy call and translates the
backend response for the client.

- Single attempt, no retries; the backend status code is always propagated
- Response body is read as text first, then re-emitted as JSON if it parses,
  otherwise as raw text
- Transport failures become ``InternalError`` without leaking the backend
  URL or credentials
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from fastapi.responses import JSONResponse, Response

from ..exceptions import InternalError
from .paths import CanonicalDestination

logger = logging.getLogger(__name__)

BODYLESS_METHODS = frozenset({"GET", "HEAD"})
RESPONSE_PASSTHROUGH_HEADERS = ("content-range", "location", "x-request-id")
EMPTY_JSON_BODY = b"{}"


def _reject_constant(name: str) -> None:
    # NaN and Infinity are not JSON and cannot be re-rendered as JSON
    raise ValueError(f"non-JSON constant {name}")


def _finite_float(literal: str) -> float:
    value = float(literal)
    if not math.isfinite(value):
        raise ValueError(f"number out of range: {literal}")
    return value


@dataclass
class BackendResponse:
    """
    Backend response as seen by the gateway.

    Attributes:
        status_code: Backend status code, propagated verbatim
        text: Full response body as text
        data: Parsed JSON body (only meaningful when is_json is True)
        is_json: Whether the body parsed as JSON
        headers: Response headers passed back to the caller
    """

    status_code: int
    text: str
    data: Any = None
    is_json: bool = False
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "BackendResponse":
        text = response.text
        headers = {
            name: response.headers[name]
            for name in RESPONSE_PASSTHROUGH_HEADERS
            if name in response.headers
        }
        try:
            data = json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
        except ValueError:
            return cls(status_code=response.status_code, text=text, headers=headers)
        return cls(
            status_code=response.status_code,
            text=text,
            data=data,
            is_json=True,
            headers=headers,
        )

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def to_response(self) -> Response:
        """Render for the client: JSON when it parsed, raw text otherwise."""
        if self.is_json:
            return JSONResponse(
                content=self.data,
                status_code=self.status_code,
                headers=self.headers,
            )
        return Response(
            content=self.text,
            status_code=self.status_code,
            headers=self.headers,
            media_type="text/plain",
        )


def prepare_body(method: str, body: Optional[bytes], forward_delete_body: bool = False) -> Optional[bytes]:
    """
    Decide what body to send for a method.

    Returns None for GET/HEAD (and DELETE unless enabled). Otherwise the
    caller's JSON body as-is, or ``{}`` when it is empty or not JSON.
    """
    method = method.upper()
    if method in BODYLESS_METHODS:
        return None
    if method == "DELETE" and not forward_delete_body:
        return None
    if not body or not body.strip():
        return EMPTY_JSON_BODY
    try:
        json.loads(body)
    except ValueError:
        logger.warning("Unparsable request body replaced with empty object", extra={"method": method})
        return EMPTY_JSON_BODY
    return body


class Forwarder:
    """
    Sends allowed requests to the backend over a shared ``httpx.AsyncClient``.

    The client is created with the backend base URL in the application
    lifespan; targets are always resolved relative to it.
    """

    def __init__(self, client: httpx.AsyncClient, forward_delete_body: bool = False):
        self._client = client
        self._forward_delete_body = forward_delete_body

    async def forward(
        self,
        method: str,
        destination: CanonicalDestination,
        headers: Dict[str, str],
        body: Optional[bytes] = None,
    ) -> BackendResponse:
        """
        Forward one request to the backend.

        Args:
            method: HTTP method
            destination: Canonical destination (its target is dispatched verbatim)
            headers: Outbound headers from the credential rewriter
            body: Raw caller body

        Returns:
            BackendResponse with the backend status and translated body

        Raises:
            InternalError: If the backend cannot be reached
        """
        content = prepare_body(method, body, self._forward_delete_body)
        outbound_headers = dict(headers)
        if content is not None and not any(k.lower() == "content-type" for k in outbound_headers):
            outbound_headers["Content-Type"] = "application/json"

        try:
            response = await self._client.request(
                method.upper(),
                f"/{destination.target}",
                headers=outbound_headers,
                content=content,
            )
        except httpx.HTTPError as e:
            logger.error(
                "Backend request failed",
                extra={
                    "method": method,
                    "target": destination.path,
                    "exception_type": type(e).__name__,
                },
            )
            raise InternalError("proxy runtime error", detail=type(e).__name__) from e

        result = BackendResponse.from_httpx(response)

        log = logger.warning if result.is_error else logger.info
        log(
            "Backend responded",
            extra={
                "method": method,
                "target": destination.path,
                "status_code": result.status_code,
            },
        )
        return result
