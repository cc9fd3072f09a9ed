"""
Relay failure taxonomy and the client-facing shapes they map to.

Two shapes coexist on purpose. Stream relays answer with a JSON object
carrying an ``error`` string, which is what the chat client parses. Redirect
relays (and the generic passthrough) answer with a plain-text 502, since the
browser is in the middle of an OAuth redirect chain and nothing parses JSON
there.
"""

from typing import Any, Optional

from fastapi.responses import JSONResponse, PlainTextResponse


class RelayError(Exception):
    """Base class for failures surfaced to the client by a relay."""

    status_code = 502
    message = "Relay failure"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message if message is not None else self.message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class NetworkFailure(RelayError):
    """The backend could not be reached at all (DNS, connect, timeout)."""

    message = "Failed to connect to backend"


class BackendError(RelayError):
    """The backend answered with a non-2xx status."""

    message = "Unknown error"

    def __init__(self, status_code: int, message: Optional[str] = None, payload: Any = None):
        super().__init__(message, status_code=status_code)
        self.payload = payload


class EmptyBody(RelayError):
    """The backend answered 2xx but there was no body to stream."""

    message = "No response body from backend"


class StreamReadFailure(RelayError):
    """A backend body read failed after the client response had started."""

    message = "Backend stream interrupted"


def json_error_response(error: RelayError) -> JSONResponse:
    """
    Render a failure for the stream endpoints.

    A ``BackendError`` carrying a decoded JSON payload is replayed as-is;
    every other failure becomes ``{"error": <message>}``.
    """
    if isinstance(error, BackendError) and error.payload is not None:
        return JSONResponse(error.payload, status_code=error.status_code)
    return JSONResponse({"error": error.message}, status_code=error.status_code)


def plain_error_response(message: str, status_code: int = 502) -> PlainTextResponse:
    """Render a failure for the redirect endpoints."""
    return PlainTextResponse(message, status_code=status_code)
