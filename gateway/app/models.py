"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the gateway.

Models are organized by functional area:
- Provisioning models (tenant admin creation)
- Audit models (rows written to the backend audit table)
- Health and error models
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Provisioning Models
# ============================================================================

class TenantAdminRequest(BaseModel):
    """Request model for creating a tenant admin user."""
    email: str = Field(..., description="Admin email address", min_length=1)
    password: str = Field(..., description="Initial password", min_length=1)
    tenant_id: str = Field(..., description="Tenant the admin belongs to", min_length=1)
    display_name: Optional[str] = Field(None, description="Display name")
    created_by: Optional[str] = Field(None, description="Actor performing the provisioning")

    @field_validator("email", "tenant_id")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class TenantAdminResponse(BaseModel):
    """Response model for a provisioned tenant admin."""
    ok: bool = Field(default=True)
    userId: str = Field(..., description="Identifier of the created auth user")


# ============================================================================
# Audit Models
# ============================================================================

class AuditRecord(BaseModel):
    """Row inserted into the backend audit table."""
    tenant_id: Optional[str] = Field(None, description="Tenant the action applies to")
    actor_id: Optional[str] = Field(None, description="Actor who performed the action")
    actor_role: str = Field(..., description="Role of the actor")
    action: str = Field(..., description="Action identifier (e.g. create_tenant_admin)")
    object_type: str = Field(..., description="Type of the affected object")
    object_id: Optional[str] = Field(None, description="Identifier of the affected object")
    details: Dict[str, Any] = Field(default_factory=dict, description="Action details")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Record timestamp",
    )


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error detail")
