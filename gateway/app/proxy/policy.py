"""
Route Policy Engine
===================

Pure decision function deciding whether a shared-secret holder may reach a
backend destination with a given HTTP method.

Evaluation order:
-----------------
1. Shared secret (401 "invalid proxy secret")
2. Destination present (400 "missing destination path")
3. Write methods: sensitive entities (403 "destination is protected"),
   then the write allow-list (403 "write to destination not allowed")
4. Read methods: read scope (403 "destination not allowed")
5. Anything else: 405 "method not allowed"

Rule sets are plain data on ``RoutePolicy``; the engine never performs I/O.
"""

import secrets
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple, Type
from urllib.parse import unquote

from ..config import Settings
from ..exceptions import (
    AuthDenied,
    BadRequest,
    GatewayError,
    MethodNotAllowed,
    PolicyDenied,
)
from .paths import decoded_path

READ_METHODS = frozenset({"GET", "HEAD"})
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

INVALID_SECRET = "invalid proxy secret"
MISSING_DESTINATION = "missing destination path"
DESTINATION_PROTECTED = "destination is protected"
WRITE_NOT_ALLOWED = "write to destination not allowed"
DESTINATION_NOT_ALLOWED = "destination not allowed"
METHOD_NOT_ALLOWED = "method not allowed"


# ============================================================================
# Policy Data
# ============================================================================

@dataclass(frozen=True)
class RoutePolicy:
    """
    Static route policy tables.

    Attributes:
        sensitive_entities: Lowercase resource names never writable by clients
        sensitive_namespaces: Namespaces the entities are addressed under (e.g. 'rest/v1')
        write_prefixes: Path prefixes writable when not sensitive
        read_prefixes: Path prefixes readable
    """

    sensitive_entities: Tuple[str, ...] = ()
    sensitive_namespaces: Tuple[str, ...] = ()
    write_prefixes: Tuple[str, ...] = ()
    read_prefixes: Tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RoutePolicy":
        return cls(
            sensitive_entities=tuple(settings.sensitive_entity_list),
            sensitive_namespaces=tuple(settings.sensitive_namespace_list),
            write_prefixes=tuple(settings.write_allowlist_list),
            read_prefixes=tuple(settings.read_scope_list),
        )

    def is_sensitive(self, target: str) -> bool:
        """
        Check a target against the sensitive entity patterns.

        Both the path-prefix form (``<namespace>/<entity>``) and the
        query-embedded form (``<entity>?``) are checked case-insensitively.
        Matching also runs on the decoded path with dot segments resolved.
        """
        forms = {target.lower(), unquote(target).lower(), _decoded_target(target).lower()}
        for form in forms:
            for entity in self.sensitive_entities:
                if f"{entity}?" in form:
                    return True
                for namespace in self.sensitive_namespaces:
                    if form.startswith(f"{namespace}/{entity}"):
                        return True
        return False

    def is_writable(self, target: str) -> bool:
        return _has_prefix(target, self.write_prefixes)

    def is_readable(self, target: str) -> bool:
        return _has_prefix(target, self.read_prefixes)


def _decoded_target(target: str) -> str:
    path, separator, query = target.partition("?")
    return f"{decoded_path(path)}{separator}{query}"


def _has_prefix(target: str, prefixes: Sequence[str]) -> bool:
    # Encoded dot segments must not walk out of an allowed prefix
    decoded = _decoded_target(target)
    return any(
        prefix and target.startswith(prefix) and decoded.startswith(prefix)
        for prefix in prefixes
    )


# ============================================================================
# Decisions
# ============================================================================

@dataclass(frozen=True)
class Decision:
    """Outcome of a policy evaluation"""

    allowed: bool
    reason: Optional[str] = None
    denial: Optional[Type[GatewayError]] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, denial: Type[GatewayError], reason: str) -> "Decision":
        return cls(allowed=False, reason=reason, denial=denial)

    def enforce(self) -> None:
        """
        Raise the matching gateway error if this decision is a denial.

        Raises:
            AuthDenied, BadRequest, PolicyDenied, MethodNotAllowed
        """
        if not self.allowed:
            raise self.denial(self.reason)


def secret_matches(expected: Optional[str], presented: Optional[str]) -> bool:
    """Constant-time shared secret comparison; absent values never match."""
    if not expected or not presented:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def extract_secret(headers: Mapping[str, str], header_names: Sequence[str]) -> Optional[str]:
    """
    Return the first non-empty secret among the accepted header names.

    The value is returned verbatim; the comparison is exact.

    Args:
        headers: Case-insensitive inbound headers
        header_names: Accepted secret header names, in priority order
    """
    for name in header_names:
        value = headers.get(name)
        if value:
            return value
    return None


class PolicyEngine:
    """
    Decides Allow/Deny for (secret, method, canonical target).

    Holds only immutable configuration, so one instance is shared by all
    requests.
    """

    def __init__(self, policy: RoutePolicy, shared_secret: str):
        self.policy = policy
        self._shared_secret = shared_secret

    def check_secret(self, secret: Optional[str]) -> Decision:
        if not secret_matches(self._shared_secret, secret):
            return Decision.deny(AuthDenied, INVALID_SECRET)
        return Decision.allow()

    def decide(self, secret: Optional[str], method: str, target: str) -> Decision:
        """
        Evaluate the route policy for one request.

        Args:
            secret: Secret presented by the caller (None if absent)
            method: HTTP method
            target: Canonical destination target (path plus query), or empty

        Returns:
            Decision (allowed, or denied with reason and error class)
        """
        decision = self.check_secret(secret)
        if not decision.allowed:
            return decision

        if not target:
            return Decision.deny(BadRequest, MISSING_DESTINATION)

        method = method.upper()

        if method in WRITE_METHODS:
            # Sensitive entities win over the allow-list
            if self.policy.is_sensitive(target):
                return Decision.deny(PolicyDenied, DESTINATION_PROTECTED)
            if self.policy.is_writable(target):
                return Decision.allow()
            return Decision.deny(PolicyDenied, WRITE_NOT_ALLOWED)

        if method in READ_METHODS:
            if self.policy.is_readable(target):
                return Decision.allow()
            return Decision.deny(PolicyDenied, DESTINATION_NOT_ALLOWED)

        return Decision.deny(MethodNotAllowed, METHOD_NOT_ALLOWED)
