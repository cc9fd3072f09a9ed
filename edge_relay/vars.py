import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "edge-relay")

# "development" selects the local backend, anything else the production one
RELAY_ENV = os.environ.get("RELAY_ENV", "production").lower()
BACKEND_URL = os.environ.get("BACKEND_URL", "").rstrip("/")
BACKEND_URL_DEVELOPMENT = os.environ.get(
    "BACKEND_URL_DEVELOPMENT", "http://localhost:8081"
).rstrip("/")
BACKEND_URL_PRODUCTION = os.environ.get(
    "BACKEND_URL_PRODUCTION", "http://47.95.35.178:8081"
).rstrip("/")

DEFAULT_PUBLIC_HOST = os.environ.get("DEFAULT_PUBLIC_HOST", "www.intellidraw.top")
DEFAULT_PUBLIC_PROTO = os.environ.get("DEFAULT_PUBLIC_PROTO", "https")

RELAY_TIMEOUT = float(os.getenv("RELAY_TIMEOUT", "300"))
RELAY_CONNECT_TIMEOUT = float(os.getenv("RELAY_CONNECT_TIMEOUT", "10"))
RELAY_MAX_CONNECTIONS = int(os.getenv("RELAY_MAX_CONNECTIONS", "100"))
RELAY_MAX_KEEPALIVE_CONNECTIONS = int(
    os.getenv("RELAY_MAX_KEEPALIVE_CONNECTIONS", "20")
)

API_PASSTHROUGH_ENABLED = (
    os.getenv("API_PASSTHROUGH_ENABLED", "true").lower() == "true"
)

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
