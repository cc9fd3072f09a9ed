import logging

import httpx
from fastapi import Request
from fastapi.responses import Response
from opentelemetry import trace

from edge_relay.config import ProxyConfig
from edge_relay.utils import log_relay_failure, traced_relay

from .errors import NetworkFailure, plain_error_response
from .host_rewrite import build_passthrough_headers
from .streaming import replay_response

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

LOG_PREFIX = "[ApiPassthrough]"
FAILURE_MESSAGE = "Failed to reach backend"


async def forward_to_backend(
    client: httpx.AsyncClient, config: ProxyConfig, request: Request
) -> Response:
    """
    Forward any other /api request to the backend as-is.

    Method, path, raw query, body and end-to-end headers are forwarded; the
    backend response is replayed verbatim, redirects included.
    """
    target_url = config.backend_endpoint(request.url.path, request.url.query)
    headers = build_passthrough_headers(
        request.headers, config.default_public_host, config.default_public_proto
    )

    with traced_relay(
        tracer,
        "api_passthrough",
        request.url.path,
        None,
        f"{LOG_PREFIX} {request.method} {request.url.path} -> {target_url}",
        {"relay.target_url": target_url, "relay.method": request.method},
    ) as span:
        content = None
        if "content-length" in request.headers or "transfer-encoding" in request.headers:
            content = request.stream()
        outbound = client.build_request(
            request.method, target_url, headers=headers, content=content
        )
        try:
            response = await client.send(outbound, stream=True, follow_redirects=False)
        except httpx.HTTPError as e:
            span.set_attribute("relay.error", type(e).__name__)
            log_relay_failure(logger, LOG_PREFIX, request.url.path, e)
            return plain_error_response(FAILURE_MESSAGE, NetworkFailure.status_code)

        span.set_attribute("relay.status_code", response.status_code)
        return replay_response(response, f"{LOG_PREFIX} {request.url.path}")
