"""
Proxy Package
=============

This package implements the authorization gateway in front of the
backend data API.

Main Components:
----------------
- policy.py: Route policy tables and the pure Allow/Deny policy engine
- paths.py: Canonical destination resolution (header, route, query)
- headers.py: Credential rewriting for outbound requests
- forwarder.py: Outbound request and response translation
- routes.py: FastAPI router with the /proxy endpoints

Security Features:
------------------
- Shared secret enforcement (constant-time comparison)
- Sensitive entity write protection overriding the write allow-list
- Caller credential stripping, privileged credential injection

Usage:
------
    from gateway.app.proxy.routes import proxy_router
    app.include_router(proxy_router)
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
