"""
Gateway Exceptions
==================

Error taxonomy for the gateway. Every error raised on the request path is a
``GatewayError`` carrying the HTTP status code and the public ``error`` message
rendered to the caller. The application-level exception handler in
``gateway.app.main`` turns these into ``ErrorResponse`` payloads.

Backend non-2xx responses are not represented here: they are passed through
to the caller verbatim by the forwarder.
"""

from typing import Optional

from fastapi import status


class GatewayError(Exception):
    """Base exception for errors reported by the gateway itself"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class AuthDenied(GatewayError):
    """Shared secret missing or wrong"""

    status_code = status.HTTP_401_UNAUTHORIZED


class BadRequest(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST


class PolicyDenied(GatewayError):
    """Destination or method not permitted by the route policy"""

    status_code = status.HTTP_403_FORBIDDEN


class MethodNotAllowed(PolicyDenied):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED


class InternalError(GatewayError):
    """
    Unexpected failure inside the gateway (e.g. backend unreachable).

    ``detail`` must never contain the backend URL or credentials; callers
    pass the exception class name only.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ConfigurationError(Exception):
    """Raised at startup when the loaded settings are unsafe to serve with"""
    pass
