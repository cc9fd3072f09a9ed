"""
Relays between the browser and the backend API origin.

- ``stream``: server-sent-events chat streams, relayed chunk by chunk
- ``redirect``: OAuth2 authorization and callback, replayed verbatim
- ``passthrough``: every other /api path
"""

from .client import create_backend_client, get_backend_client
from .errors import (
    BackendError,
    EmptyBody,
    NetworkFailure,
    RelayError,
    StreamReadFailure,
)
from .host_rewrite import resolve_public_origin
from .passthrough import forward_to_backend
from .redirect import relay_authorization, relay_callback
from .stream import relay_event_stream

__all__ = [
    "BackendError",
    "EmptyBody",
    "NetworkFailure",
    "RelayError",
    "StreamReadFailure",
    "create_backend_client",
    "forward_to_backend",
    "get_backend_client",
    "relay_authorization",
    "relay_callback",
    "relay_event_stream",
    "resolve_public_origin",
]
