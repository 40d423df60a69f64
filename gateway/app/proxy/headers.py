"""
Credential Rewriting
====================

Builds the headers of an outbound backend request from the caller's headers.

Security Model:
---------------
1. Caller-supplied credentials (secret headers, Authorization, apikey,
   cookies) are never forwarded
2. The privileged API key and bearer token are always injected last, so a
   same-named caller header cannot override them
3. In the default 'allowlist' mode only content-shaping headers pass through
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping

from ..config import Settings

ALLOWLIST_MODE = "allowlist"
PASSTHROUGH_MODE = "passthrough"

# Canonical casing of headers passed through in allowlist mode
CONTENT_HEADERS = {
    "content-type": "Content-Type",
    "prefer": "Prefer",
    "x-request-id": "X-Request-ID",
}

CREDENTIAL_HEADERS = frozenset({
    "authorization",
    "proxy-authorization",
    "apikey",
    "cookie",
})

HOP_BY_HOP_HEADERS = frozenset({
    "host",
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "content-length",
})


@dataclass(frozen=True)
class OutboundCredentials:
    """Privileged backend credentials, loaded once at startup"""

    base_url: str
    api_key: str
    bearer_token: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "OutboundCredentials":
        return cls(
            base_url=settings.backend_url_str,
            api_key=settings.BACKEND_API_KEY,
            bearer_token=settings.BACKEND_BEARER_TOKEN,
        )

    def __repr__(self) -> str:
        return f"OutboundCredentials(base_url={self.base_url!r}, api_key=***, bearer_token=***)"


def privileged_headers(credentials: OutboundCredentials) -> Dict[str, str]:
    return {
        "apikey": credentials.api_key,
        "Authorization": f"Bearer {credentials.bearer_token}",
    }


class CredentialRewriter:
    """
    Rewrites caller headers into outbound backend headers.

    Args:
        credentials: Privileged credential set
        secret_headers: Header names carrying the caller's shared secret
        dest_header: Destination-selector header name
        mode: 'allowlist' (default) or 'passthrough'
    """

    def __init__(
        self,
        credentials: OutboundCredentials,
        secret_headers: Iterable[str],
        dest_header: str,
        mode: str = ALLOWLIST_MODE,
    ):
        if mode not in (ALLOWLIST_MODE, PASSTHROUGH_MODE):
            raise ValueError(f"Unknown header forward mode: {mode}")
        self._credentials = credentials
        self._mode = mode
        self._dropped = (
            CREDENTIAL_HEADERS
            | HOP_BY_HOP_HEADERS
            | {name.lower() for name in secret_headers}
            | {dest_header.lower()}
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialRewriter":
        return cls(
            credentials=OutboundCredentials.from_settings(settings),
            secret_headers=settings.secret_header_list,
            dest_header=settings.DEST_PATH_HEADER,
            mode=settings.HEADER_FORWARD_MODE,
        )

    @property
    def credentials(self) -> OutboundCredentials:
        return self._credentials

    def rewrite(self, caller_headers: Mapping[str, str]) -> Dict[str, str]:
        """
        Build outbound headers.

        Args:
            caller_headers: Inbound request headers

        Returns:
            Headers dict for the backend request
        """
        outbound: Dict[str, str] = {}

        for name, value in caller_headers.items():
            lowered = name.lower()
            if lowered in self._dropped:
                continue
            if lowered in CONTENT_HEADERS:
                outbound[CONTENT_HEADERS[lowered]] = value
            elif self._mode == PASSTHROUGH_MODE:
                outbound[lowered] = value

        outbound.update(privileged_headers(self._credentials))
        return outbound
