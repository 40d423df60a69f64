"""
Destination Path Resolution
===========================

Turns the destination inputs of an inbound proxy request (explicit
``x-dest-path`` header, ``/proxy/<segments...>`` route, inbound query string)
into one ``CanonicalDestination``.

The canonical ``target`` string is evaluated by the policy engine and is
also the exact string dispatched to the backend, so the two cannot diverge.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional
from urllib.parse import quote, unquote

# RFC 3986 pchar minus '%': route segments arrive percent-decoded
_SEGMENT_SAFE = "-._~!$&'()*+,;=:@"
_LEADING_SEPARATORS = "/\\"


class EmptyDestination(ValueError):
    """No destination path could be resolved from the request"""
    pass


@dataclass(frozen=True)
class CanonicalDestination:
    """
    Where a request is forwarded.

    Attributes:
        path: Backend path without leading slash, empty or dot segments
        query: Raw query string (without '?'), or empty
    """

    path: str
    query: str = ""

    @property
    def target(self) -> str:
        """Path plus query, as evaluated by policy and sent to the backend."""
        if self.query:
            return f"{self.path}?{self.query}"
        return self.path


def _normalize_segments(segments: Iterable[str]) -> List[str]:
    """Collapse empty segments and resolve '.' / '..' without escaping the root."""
    resolved: List[str] = []
    for segment in segments:
        marker = unquote(segment)
        if not segment or marker == ".":
            continue
        if marker == "..":
            if resolved:
                resolved.pop()
            continue
        resolved.append(segment)
    return resolved


def decoded_path(path: str) -> str:
    """
    Percent-decode a path and resolve its dot segments.

    Encoded separators (``%2F``, ``%5C``) become real ones first, so
    ``leads/..%2Fusers_meta`` decodes to ``users_meta``. Used only for
    matching; the dispatched target keeps its original encoding.
    """
    decoded = unquote(path).replace("\\", "/")
    return "/".join(_normalize_segments(decoded.split("/")))


def resolve(
    explicit_path: Optional[str],
    route_segments: Optional[Iterable[str]],
    raw_query: Optional[str],
) -> CanonicalDestination:
    """
    Resolve the canonical destination of a proxy request.

    An explicit header path, when non-empty after trimming, wins over route
    segments. A query string embedded in the header path wins over the
    inbound query string; otherwise the inbound query is kept verbatim.

    Args:
        explicit_path: Value of the destination header, if any
        route_segments: Path segments captured by the ``/proxy/...`` route
        raw_query: Inbound raw query string (without '?')

    Returns:
        CanonicalDestination with normalized path and preserved query

    Raises:
        EmptyDestination: If no non-empty path remains after resolution
    """
    explicit = (explicit_path or "").strip()
    query = raw_query or ""

    if explicit:
        explicit = explicit.split("#", 1)[0]
        path, separator, embedded_query = explicit.partition("?")
        if separator:
            query = embedded_query
        segments = path.lstrip(_LEADING_SEPARATORS).replace("\\", "/").split("/")
    else:
        segments = [
            quote(segment, safe=_SEGMENT_SAFE)
            for segment in (route_segments or [])
        ]

    canonical_path = "/".join(_normalize_segments(segments)).lstrip(_LEADING_SEPARATORS)
    if not canonical_path:
        raise EmptyDestination("missing destination path")

    return CanonicalDestination(path=canonical_path, query=query)
