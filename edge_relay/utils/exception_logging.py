"""
Utility functions for logging relay failures with enough context for diagnosis.
"""

import logging
from typing import Optional


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, falling back to safe alternatives
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def format_exception_message(exception: Optional[BaseException]) -> str:
    """
    Format an exception as ``Type: message``, following its ``__cause__`` chain.

    httpx errors often carry an empty message and the useful detail (DNS
    failure, refused connection) lives on the chained cause.
    """
    if exception is None:
        return "None"

    parts = []
    seen = set()
    current = exception
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        message = _safe_str(current)
        name = type(current).__name__
        parts.append(f"{name}: {message}" if message else name)
        current = current.__cause__
    return " <- ".join(parts)


def log_relay_failure(
    logger: logging.Logger,
    prefix: str,
    endpoint: str,
    exception: BaseException,
    provider: Optional[str] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Log a relay failure with the endpoint and provider it happened on.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[StreamRelay]")
        endpoint: The inbound endpoint being relayed
        exception: The failure to log
        provider: OAuth provider identifier, when the endpoint has one
        level: The logging level to use (default: ERROR)
    """
    where = f"{endpoint} (provider={provider})" if provider else endpoint
    logger.log(level, f"{prefix} {where} failed: {format_exception_message(exception)}")
