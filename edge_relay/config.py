"""
Process-wide relay configuration.

The environment is read once (see ``edge_relay.vars``) and frozen into a
``ProxyConfig`` when the application is built. Request handlers only ever see
the frozen object through ``get_proxy_config``.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from edge_relay import vars as relay_vars


@dataclass(frozen=True)
class ProxyConfig:
    """
    Static relay settings.

    Attributes:
        backend_url: Origin of the backend API, without trailing slash
        default_public_host: Host reported to the backend when the inbound
            request carries neither X-Forwarded-Host nor Host
        default_public_proto: Protocol reported when X-Forwarded-Proto is absent
        timeout: Read/write/pool timeout in seconds for backend calls
        connect_timeout: Connect timeout in seconds for backend calls
        max_connections: Upper bound of pooled backend connections
        max_keepalive_connections: Upper bound of idle pooled connections
        api_passthrough_enabled: Whether unmatched /api/* paths are forwarded
    """

    backend_url: str
    default_public_host: str = "www.intellidraw.top"
    default_public_proto: str = "https"
    timeout: float = 300.0
    connect_timeout: float = 10.0
    max_connections: int = 100
    max_keepalive_connections: int = 20
    api_passthrough_enabled: bool = True

    def backend_endpoint(self, path: str, query: Optional[str] = None) -> str:
        """Join a backend path (and an optional raw query string) onto the origin."""
        url = f"{self.backend_url}/{path.lstrip('/')}"
        if query:
            url = f"{url}?{query}"
        return url


def select_backend_url(
    env: str,
    override: str = "",
    development_url: str = relay_vars.BACKEND_URL_DEVELOPMENT,
    production_url: str = relay_vars.BACKEND_URL_PRODUCTION,
) -> str:
    """Pick the backend origin: explicit override first, then by environment."""
    if override:
        return override.rstrip("/")
    if env == "development":
        return development_url.rstrip("/")
    return production_url.rstrip("/")


def load_config() -> ProxyConfig:
    """Build the ProxyConfig from the values read at import time."""
    return ProxyConfig(
        backend_url=select_backend_url(
            relay_vars.RELAY_ENV,
            relay_vars.BACKEND_URL,
            relay_vars.BACKEND_URL_DEVELOPMENT,
            relay_vars.BACKEND_URL_PRODUCTION,
        ),
        default_public_host=relay_vars.DEFAULT_PUBLIC_HOST,
        default_public_proto=relay_vars.DEFAULT_PUBLIC_PROTO,
        timeout=relay_vars.RELAY_TIMEOUT,
        connect_timeout=relay_vars.RELAY_CONNECT_TIMEOUT,
        max_connections=relay_vars.RELAY_MAX_CONNECTIONS,
        max_keepalive_connections=relay_vars.RELAY_MAX_KEEPALIVE_CONNECTIONS,
        api_passthrough_enabled=relay_vars.API_PASSTHROUGH_ENABLED,
    )


def get_proxy_config(request: Request) -> ProxyConfig:
    """FastAPI dependency returning the config attached to the running app."""
    return request.app.state.proxy_config
