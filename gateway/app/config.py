"""
Configuration module for the Tenant Data Gateway.

This module uses Pydantic Settings to load and validate environment variables
for the backend credential set, the shared proxy secret, the route policy
tables, and server/CORS settings.

Environment variables are loaded from .env file or system environment. The
settings are loaded once at process start; a missing backend URL, key, token
or proxy secret fails validation instead of letting the gateway proxy
unauthenticated.
"""

from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The privileged credential set, the shared secret and the route policy
    tables are all defined here. Policy tables are comma-separated strings
    so that policy changes are configuration edits.
    """

    # =========================================================================
    # Backend Credential Set
    # =========================================================================

    BACKEND_URL: HttpUrl = Field(
        ...,
        description="Backend data API base URL (e.g., https://project.supabase.co)",
        validation_alias=AliasChoices("BACKEND_URL", "SUPABASE_URL"),
    )

    BACKEND_API_KEY: str = Field(
        ...,
        description="Privileged backend API key sent as the 'apikey' header",
        min_length=1,
        validation_alias=AliasChoices(
            "BACKEND_API_KEY", "SUPABASE_SERVICE_ROLE", "SUPABASE_SERVICE_ROLE_KEY"
        ),
    )

    BACKEND_BEARER_TOKEN: str = Field(
        ...,
        description="Privileged bearer token sent as 'Authorization: Bearer ...'",
        min_length=1,
        validation_alias=AliasChoices(
            "BACKEND_BEARER_TOKEN", "SUPABASE_SERVICE_ROLE", "SUPABASE_SERVICE_ROLE_KEY"
        ),
    )

    BACKEND_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Total timeout for one outbound backend call",
        gt=0,
        le=300,
    )

    BACKEND_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Connect timeout for outbound backend calls",
        gt=0,
        le=60,
    )

    # =========================================================================
    # Caller Authentication (shared secret)
    # =========================================================================

    PROXY_SECRET: str = Field(
        ...,
        description="Shared secret proxy clients must present",
        min_length=1,
    )

    INTERNAL_TOKEN: Optional[str] = Field(
        None,
        description="Secret for provisioning endpoints (falls back to PROXY_SECRET)",
    )

    PROXY_SECRET_HEADERS: str = Field(
        default="x-proxy-secret,x-api-key,x-internal-token",
        description="Comma-separated header names accepted as the shared secret, in priority order",
    )

    DEST_PATH_HEADER: str = Field(
        default="x-dest-path",
        description="Header carrying an explicit destination path",
    )

    # =========================================================================
    # Route Policy
    # =========================================================================

    READ_SCOPE: str = Field(
        default="rest/v1/,auth/v1/",
        description="Comma-separated path prefixes readable via GET/HEAD",
    )

    WRITE_ALLOWLIST: str = Field(
        default="rest/v1/leads,rest/v1/contacts,rest/v1/deals,rest/v1/tasks,rest/v1/notes",
        description="Comma-separated path prefixes writable via POST/PUT/PATCH/DELETE",
    )

    SENSITIVE_ENTITIES: str = Field(
        default="users_meta,tenants,tenant_members,audit_logs,audit_logs_v2,payments",
        description="Comma-separated backend resources that never accept client writes",
    )

    SENSITIVE_NAMESPACES: str = Field(
        default="rest/v1",
        description="Comma-separated namespaces the sensitive entities live under",
    )

    HEADER_FORWARD_MODE: Literal["allowlist", "passthrough"] = Field(
        default="allowlist",
        description="'allowlist' forwards only content headers; 'passthrough' copies all but secrets",
    )

    FORWARD_DELETE_BODY: bool = Field(
        default=False,
        description="Send the caller's body on DELETE requests",
    )

    # =========================================================================
    # Audit
    # =========================================================================

    AUDIT_TABLE_PATH: str = Field(
        default="rest/v1/audit_logs_v2",
        description="Backend path audit records are inserted into",
    )

    AUDIT_ACTOR_ROLE: str = Field(
        default="super_admin",
        description="actor_role recorded on audit rows written by the gateway",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    GATEWAY_HOST: str = Field(default="0.0.0.0", description="Host to bind")

    GATEWAY_PORT: int = Field(default=8080, description="Port to bind", ge=1, le=65535)

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def backend_url_str(self) -> str:
        """Backend URL as string without trailing slash."""
        return str(self.BACKEND_URL).rstrip("/")

    @property
    def secret_header_list(self) -> List[str]:
        return [name.lower() for name in _split_csv(self.PROXY_SECRET_HEADERS)]

    @property
    def read_scope_list(self) -> List[str]:
        return [prefix.lstrip("/") for prefix in _split_csv(self.READ_SCOPE)]

    @property
    def write_allowlist_list(self) -> List[str]:
        return [prefix.lstrip("/") for prefix in _split_csv(self.WRITE_ALLOWLIST)]

    @property
    def sensitive_entity_list(self) -> List[str]:
        return [entity.lower() for entity in _split_csv(self.SENSITIVE_ENTITIES)]

    @property
    def sensitive_namespace_list(self) -> List[str]:
        return [ns.strip("/").lower() for ns in _split_csv(self.SENSITIVE_NAMESPACES)]

    @property
    def allowed_origins_list(self) -> List[str]:
        return _split_csv(self.ALLOWED_ORIGINS)

    @property
    def provisioning_token(self) -> str:
        """Secret expected on provisioning endpoints."""
        return self.INTERNAL_TOKEN or self.PROXY_SECRET

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("PROXY_SECRET_HEADERS")
    @classmethod
    def validate_secret_headers(cls, v: str) -> str:
        """
        Validate that at least one secret header name is configured.

        Raises:
            ValueError: If the list is empty
        """
        if not _split_csv(v):
            raise ValueError("PROXY_SECRET_HEADERS must name at least one header")
        return v

    @field_validator("DEST_PATH_HEADER")
    @classmethod
    def validate_dest_header(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("DEST_PATH_HEADER must not be empty")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> Dict[str, Any]:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup. Errors abort startup, warnings
    are logged.

    Returns:
        Dictionary with validation status, errors and warnings.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    # Callers holding the proxy secret must not hold backend privilege
    if settings.PROXY_SECRET in (settings.BACKEND_API_KEY, settings.BACKEND_BEARER_TOKEN):
        errors.append("PROXY_SECRET must differ from the privileged backend credentials")

    if len(settings.PROXY_SECRET) < 16:
        warnings.append("PROXY_SECRET is shorter than recommended (16+ chars)")

    if settings.DEST_PATH_HEADER in settings.secret_header_list:
        errors.append("DEST_PATH_HEADER must not also be a secret header")

    if not settings.read_scope_list:
        warnings.append("READ_SCOPE is empty; all reads will be denied")

    for prefix in settings.write_allowlist_list:
        lowered = prefix.lower()
        for ns in settings.sensitive_namespace_list:
            for entity in settings.sensitive_entity_list:
                if lowered.startswith(f"{ns}/{entity}"):
                    warnings.append(
                        f"WRITE_ALLOWLIST entry '{prefix}' is shadowed by sensitive entity '{entity}'"
                    )

    if "localhost" in settings.backend_url_str or "127.0.0.1" in settings.backend_url_str:
        warnings.append("Backend URL points to localhost (may cause issues in containers)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "read_scope": settings.read_scope_list,
        "write_allowlist": settings.write_allowlist_list,
    }


if __name__ == "__main__":
    """
    Validate your .env configuration:
        python -m gateway.app.config
    """
    try:
        config = get_settings()
    except Exception as e:
        print(f"\n✗ Configuration error: {e}")
        print("\nRequired variables: BACKEND_URL, BACKEND_API_KEY, BACKEND_BEARER_TOKEN, PROXY_SECRET")
        raise SystemExit(1)

    print("=" * 80)
    print("GATEWAY CONFIGURATION")
    print("=" * 80)
    print(f"  Backend URL:      {config.backend_url_str}")
    print(f"  Secret headers:   {', '.join(config.secret_header_list)}")
    print(f"  Read scope:       {', '.join(config.read_scope_list)}")
    print(f"  Write allow-list: {', '.join(config.write_allowlist_list)}")
    print(f"  Sensitive:        {', '.join(config.sensitive_entity_list)}")
    print(f"  Header mode:      {config.HEADER_FORWARD_MODE}")

    status = validate_configuration(config)
    if status["valid"]:
        print("\n✓ All critical checks passed!")
    else:
        print("\n✗ Configuration errors found:")
        for error in status["errors"]:
            print(f"  - {error}")
    for warning in status["warnings"]:
        print(f"  ⚠ {warning}")
