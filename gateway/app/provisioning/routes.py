"""
Provisioning Routes
===================

Privileged provisioning actions performed by the gateway on behalf of an
internal caller, followed by a best-effort audit record.

Endpoints:
----------
- POST /tenant-admins: Create an auth user and its tenant_admin users_meta row
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

import httpx
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from ..dependencies import get_app_state
from ..exceptions import AuthDenied, BadRequest, InternalError
from ..models import ErrorResponse, TenantAdminRequest, TenantAdminResponse
from ..proxy.headers import privileged_headers
from ..proxy.policy import extract_secret, secret_matches

logger = logging.getLogger(__name__)

provisioning_router = APIRouter()

AUTH_ADMIN_USERS_PATH = "/auth/v1/admin/users"
USERS_META_PATH = "/rest/v1/users_meta"


def _backend_error_message(response: httpx.Response) -> str:
    """Best human-readable error from a backend error response."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("msg", "message", "error_description", "error"):
            if data.get(key):
                return str(data[key])
    return response.text or f"backend returned {response.status_code}"


async def _create_auth_user(
    client: httpx.AsyncClient,
    headers: Dict[str, str],
    admin: TenantAdminRequest,
) -> str:
    response = await client.post(
        AUTH_ADMIN_USERS_PATH,
        json={"email": admin.email, "password": admin.password, "email_confirm": True},
        headers=headers,
    )
    if response.is_error:
        raise InternalError(_backend_error_message(response))

    data: Any = response.json()
    user = data.get("user", data) if isinstance(data, dict) else {}
    user_id = user.get("id") if isinstance(user, dict) else None
    if not user_id:
        raise InternalError("auth user created without id")
    return str(user_id)


async def _insert_users_meta(
    client: httpx.AsyncClient,
    headers: Dict[str, str],
    admin: TenantAdminRequest,
    user_id: str,
) -> None:
    row = {
        "id": user_id,
        "tenant_id": admin.tenant_id,
        "role": "tenant_admin",
        "display_name": admin.display_name or "",
        "must_change_password": True,
        "is_active": True,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    response = await client.post(
        USERS_META_PATH,
        json=row,
        headers={**headers, "Prefer": "return=minimal"},
    )
    if response.is_error:
        raise InternalError(_backend_error_message(response))


async def _delete_auth_user(client: httpx.AsyncClient, headers: Dict[str, str], user_id: str) -> None:
    """Remove an auth user whose users_meta row could not be written."""
    try:
        response = await client.delete(f"{AUTH_ADMIN_USERS_PATH}/{user_id}", headers=headers)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(
            f"Failed to remove orphaned auth user: {type(e).__name__}",
            extra={"user_id": user_id},
        )


@provisioning_router.post(
    "/tenant-admins",
    response_model=TenantAdminResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def create_tenant_admin(
    request: Request,
    app_state=Depends(get_app_state),
) -> TenantAdminResponse:
    """
    Create a tenant admin.

    Flow:
    1. Check the internal token (secret headers, INTERNAL_TOKEN or PROXY_SECRET)
    2. Validate email, password and tenant_id are present
    3. Create the auth user, then insert the users_meta row
    4. Dispatch an audit record without waiting for it

    Raises:
        AuthDenied: 401 if the token is missing or wrong
        BadRequest: 400 if required fields are missing
        InternalError: 500 if the backend rejects either write
    """
    settings = app_state.settings

    token = extract_secret(request.headers, settings.secret_header_list)
    if not secret_matches(settings.provisioning_token, token):
        logger.warning("Provisioning request rejected: invalid internal token")
        raise AuthDenied("unauthorized")

    try:
        payload = await request.json()
    except ValueError:
        payload = {}

    try:
        admin = TenantAdminRequest.model_validate(payload or {})
    except ValidationError:
        raise BadRequest("missing fields")

    client = app_state.backend_client
    headers = privileged_headers(app_state.rewriter.credentials)

    try:
        user_id = await _create_auth_user(client, headers, admin)
    except httpx.HTTPError as e:
        logger.error(f"create_tenant_admin error: {type(e).__name__}", extra={"tenant_id": admin.tenant_id})
        raise InternalError("provisioning failed", detail=type(e).__name__) from e

    try:
        await _insert_users_meta(client, headers, admin, user_id)
    except (httpx.HTTPError, InternalError) as e:
        logger.error(
            f"create_tenant_admin error: {type(e).__name__}",
            extra={"tenant_id": admin.tenant_id, "user_id": user_id},
        )
        await _delete_auth_user(client, headers, user_id)
        if isinstance(e, InternalError):
            raise
        raise InternalError("provisioning failed", detail=type(e).__name__) from e

    app_state.audit_sink.dispatch(
        tenant_id=admin.tenant_id,
        actor_id=admin.created_by,
        action="create_tenant_admin",
        object_type="users_meta",
        object_id=user_id,
        details={"id": user_id, "email": admin.email, "tenant_id": admin.tenant_id},
    )

    logger.info(
        "Created tenant admin",
        extra={"tenant_id": admin.tenant_id, "user_id": user_id},
    )
    return TenantAdminResponse(userId=user_id)
