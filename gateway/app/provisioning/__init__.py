"""
Provisioning Package

Privileged provisioning endpoints that use the gateway's backend
credentials directly and record an audit event on success.

Modules:
- routes: POST /tenant-admins
"""

from .routes import provisioning_router

__all__ = [
    "provisioning_router",
]
