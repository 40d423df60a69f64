"""
Audit Package

Best-effort, fire-and-forget audit records for privileged actions
performed through the gateway (e.g. tenant admin provisioning).

Modules:
- sink: AuditSink writing rows to the backend audit table
"""

from .sink import AuditSink

__all__ = [
    "AuditSink",
]
