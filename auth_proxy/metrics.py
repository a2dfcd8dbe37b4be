"""Proxy-specific Prometheus collectors.

HTTP request metrics and the exposition endpoint come from
prometheus-fastapi-instrumentator (see server.py); these share its default
registry.
"""

from prometheus_client import Counter, Gauge, Histogram

forwarded_requests_total = Counter(
    "auth_proxy_forwarded_requests_total",
    "Requests forwarded to the upstream, by upstream status code",
    ["method", "status"],
)
upstream_response_seconds = Histogram(
    "auth_proxy_upstream_response_seconds",
    "Time until the upstream response headers arrived",
)
maintenance_responses_total = Counter(
    "auth_proxy_maintenance_responses_total",
    "Requests answered with the maintenance page",
    ["reason"],
)
login_attempts_total = Counter(
    "auth_proxy_login_attempts_total",
    "Login attempts",
    ["outcome"],
)
upstream_up = Gauge(
    "auth_proxy_upstream_up",
    "1 while the last upstream health probe succeeded",
)
