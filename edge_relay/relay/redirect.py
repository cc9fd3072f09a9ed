"""
Relay for the OAuth2 redirect endpoints.

Both the authorization initiation and the provider callback are forwarded to
the backend with redirect following disabled, and the backend's answer
(usually a 302 with Location and Set-Cookie) is replayed to the browser
verbatim. Following the redirect here would make the relay consume the
identity provider's consent page instead of the browser.
"""

import logging
from typing import Mapping, Optional
from urllib.parse import quote

import httpx
from fastapi.responses import Response
from opentelemetry import trace

from edge_relay.config import ProxyConfig
from edge_relay.utils import log_relay_failure, traced_relay

from .errors import NetworkFailure, plain_error_response
from .host_rewrite import build_redirect_headers
from .streaming import replay_response

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

LOG_PREFIX = "[RedirectRelay]"

# Characters legal inside a single path segment besides the unreserved set
PATH_SEGMENT_SAFE = "!$&'()*+,;=:@"

AUTHORIZATION_PATH = "/api/oauth2/authorization/{provider}"
CALLBACK_PATH = "/api/login/oauth2/code/{provider}"

AUTHORIZATION_FAILURE_MESSAGE = "Failed to initiate OAuth2 login"
CALLBACK_FAILURE_MESSAGE = "Failed to handle OAuth2 callback"


async def relay_redirect(
    client: httpx.AsyncClient,
    config: ProxyConfig,
    path_template: str,
    provider: str,
    headers: Mapping[str, str],
    query: Optional[str],
    failure_message: str,
) -> Response:
    """
    Forward a GET to the backend and replay its response untouched.

    Args:
        client: Shared backend client (redirects disabled)
        config: Relay configuration
        path_template: Backend path with a ``{provider}`` placeholder
        provider: Provider path segment, forwarded without validation
        headers: Inbound request headers
        query: Raw inbound query string, appended unchanged when non-empty
        failure_message: Plain-text body of the 502 sent when the backend
            cannot be reached

    Returns:
        The replayed backend response, or a plain-text 502
    """
    segment = quote(provider, safe=PATH_SEGMENT_SAFE)
    backend_path = path_template.format(provider=segment)
    target_url = config.backend_endpoint(backend_path, query)
    forward_headers = build_redirect_headers(
        headers, config.default_public_host, config.default_public_proto
    )

    with traced_relay(
        tracer,
        "relay_redirect",
        path_template,
        provider,
        f"{LOG_PREFIX} GET {backend_path} as {forward_headers['X-Forwarded-Proto']}://"
        f"{forward_headers['X-Forwarded-Host']}",
        {"relay.target_url": target_url},
    ) as span:
        request = client.build_request("GET", target_url, headers=forward_headers)
        try:
            response = await client.send(request, stream=True, follow_redirects=False)
        except httpx.HTTPError as e:
            span.set_attribute("relay.error", type(e).__name__)
            log_relay_failure(logger, LOG_PREFIX, path_template, e, provider)
            return plain_error_response(failure_message, NetworkFailure.status_code)

        span.set_attribute("relay.status_code", response.status_code)
        location = response.headers.get("location")
        if location:
            span.set_attribute("relay.location", location)
        return replay_response(response, f"{LOG_PREFIX} {backend_path}")


async def relay_authorization(
    client: httpx.AsyncClient,
    config: ProxyConfig,
    provider: str,
    headers: Mapping[str, str],
) -> Response:
    """Start the OAuth2 login for ``provider`` on the backend."""
    return await relay_redirect(
        client,
        config,
        AUTHORIZATION_PATH,
        provider,
        headers,
        None,
        AUTHORIZATION_FAILURE_MESSAGE,
    )


async def relay_callback(
    client: httpx.AsyncClient,
    config: ProxyConfig,
    provider: str,
    headers: Mapping[str, str],
    query: Optional[str],
) -> Response:
    """Hand the provider's callback (code, state, error...) to the backend."""
    return await relay_redirect(
        client,
        config,
        CALLBACK_PATH,
        provider,
        headers,
        query,
        CALLBACK_FAILURE_MESSAGE,
    )
