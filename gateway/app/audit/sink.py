"""
Audit Sink
==========

Best-effort writer for audit records of privileged actions.

``record`` never raises: network errors and non-2xx responses are logged and
swallowed. ``dispatch`` schedules ``record`` as a background task so that the
request path never waits on, or fails because of, an audit write.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from ..models import AuditRecord
from ..proxy.headers import OutboundCredentials, privileged_headers

logger = logging.getLogger(__name__)


class AuditSink:
    """
    Writes audit rows to the backend audit table.

    Args:
        client: Backend HTTP client (base URL already configured)
        credentials: Privileged credential set
        table_path: Backend path of the audit table (e.g. 'rest/v1/audit_logs_v2')
        actor_role: actor_role stamped on every record
        timeout: Per-write timeout in seconds
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        credentials: OutboundCredentials,
        table_path: str = "rest/v1/audit_logs_v2",
        actor_role: str = "super_admin",
        timeout: float = 5.0,
    ):
        self._client = client
        self._credentials = credentials
        self._table_path = table_path.strip("/")
        self._actor_role = actor_role
        self._timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    async def record(
        self,
        tenant_id: Optional[str],
        actor_id: Optional[str],
        action: str,
        object_type: str,
        object_id: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Insert one audit record.

        Returns:
            True if the backend accepted the record, False otherwise
        """
        entry = AuditRecord(
            tenant_id=tenant_id,
            actor_id=actor_id,
            actor_role=self._actor_role,
            action=action,
            object_type=object_type,
            object_id=object_id,
            details=details or {},
            created_at=datetime.now(timezone.utc),
        )
        headers = {
            **privileged_headers(self._credentials),
            "Content-Type": "application/json",
            "Prefer": "return=minimal",
        }

        try:
            response = await self._client.post(
                f"/{self._table_path}",
                json=entry.model_dump(mode="json"),
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except Exception as e:
            # Audit failures never reach the caller
            logger.error(
                f"Audit write failed: {type(e).__name__}",
                extra={"action": action, "object_type": object_type, "object_id": object_id},
            )
            return False

        logger.debug(f"Recorded audit event {action}", extra={"object_id": object_id})
        return True

    def dispatch(self, **kwargs: Any) -> asyncio.Task:
        """
        Schedule ``record`` without awaiting it.

        Keyword arguments are passed to ``record``. The task is tracked until
        it completes so that shutdown can drain it.
        """
        task = asyncio.create_task(self.record(**kwargs))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-flight audit writes during shutdown."""
        if not self._pending:
            return
        done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            await asyncio.gather(*not_done, return_exceptions=True)
            logger.warning(f"Cancelled {len(not_done)} unfinished audit writes on shutdown")
