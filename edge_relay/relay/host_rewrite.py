"""
Public host/protocol resolution for requests forwarded to the backend.

The backend builds OAuth ``redirect_uri`` values from the host it believes it
is serving. Behind a CDN or load balancer the inbound Host is usually an
internal name, so the public one is recovered from the X-Forwarded-* headers
and passed along explicitly.

Header mappings are expected to be Starlette ``Headers`` (case-insensitive)
or plain dicts with lower-case keys.
"""

from typing import Dict, List, Mapping, Tuple

DEFAULT_PROTO = "https"

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Replaced by the resolved public origin on the passthrough
REWRITTEN_HEADERS = {"host", "x-forwarded-host", "x-forwarded-proto"}


def resolve_public_origin(
    headers: Mapping[str, str],
    default_host: str,
    default_proto: str = DEFAULT_PROTO,
) -> Tuple[str, str]:
    """
    Return the externally visible ``(host, proto)`` of an inbound request.

    Host precedence: X-Forwarded-Host, then Host, then ``default_host``.
    Proto precedence: X-Forwarded-Proto, then ``default_proto``.
    Empty header values count as absent.
    """
    host = headers.get("x-forwarded-host") or headers.get("host") or default_host
    proto = headers.get("x-forwarded-proto") or default_proto
    return host, proto


def build_redirect_headers(
    headers: Mapping[str, str],
    default_host: str,
    default_proto: str = DEFAULT_PROTO,
) -> Dict[str, str]:
    """Headers sent to the backend by the OAuth redirect relays."""
    host, proto = resolve_public_origin(headers, default_host, default_proto)
    return {
        "Host": host,
        "X-Forwarded-Host": host,
        "X-Forwarded-Proto": proto,
        "Cookie": headers.get("cookie") or "",
    }


def build_passthrough_headers(
    headers: Mapping[str, str],
    default_host: str,
    default_proto: str = DEFAULT_PROTO,
) -> List[Tuple[str, str]]:
    """
    Headers sent to the backend by the generic /api passthrough.

    Everything except hop-by-hop headers is copied, repeated headers stay
    repeated. Host is left to the HTTP client; the public origin travels in
    X-Forwarded-Host/X-Forwarded-Proto.
    """
    host, proto = resolve_public_origin(headers, default_host, default_proto)
    forwarded = [
        (name, value)
        for name, value in headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS
        and name.lower() not in REWRITTEN_HEADERS
    ]
    forwarded.append(("x-forwarded-host", host))
    forwarded.append(("x-forwarded-proto", proto))
    return forwarded
