import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "auth-gate-proxy")

BACKEND_URL = os.environ.get("BACKEND_URL", "").rstrip("/")
BACKEND_PROBE_PATH = os.environ.get("BACKEND_PROBE_PATH", "")

AUTH_USER = os.environ.get("AUTH_USER", "")
AUTH_PASS = os.environ.get("AUTH_PASS", "")

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8080"))

SESSION_STORE = os.getenv("SESSION_STORE", "InMemorySessionStore")
SESSION_COOKIE_NAME = os.environ.get("SESSION_COOKIE_NAME", "proxy.sid")
# Sliding window, re-armed on every request that reaches the store
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", "7200"))
SESSION_COOKIE_SECURE = (
    os.environ.get("SESSION_COOKIE_SECURE", "false").lower() == "true"
)

HEALTH_CHECK_INTERVAL = float(os.getenv("HEALTH_CHECK_INTERVAL", "5"))
HEALTH_CHECK_TIMEOUT = float(os.getenv("HEALTH_CHECK_TIMEOUT", "3"))

PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "30"))
PROXY_VERIFY_TLS = os.environ.get("PROXY_VERIFY_TLS", "false").lower() == "true"

METRICS_PATH = os.getenv("METRICS_PATH", "/_proxy/metrics")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")


class ConfigurationError(Exception):
    """Raised when the process is missing configuration it cannot serve without."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            "Missing required environment variables: " + ", ".join(missing)
        )


def validate_config(
    backend_url: str = BACKEND_URL,
    username: str = AUTH_USER,
    password: str = AUTH_PASS,
) -> None:
    missing = [
        name
        for name, value in (
            ("BACKEND_URL", backend_url),
            ("AUTH_USER", username),
            ("AUTH_PASS", password),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(missing)
