import hashlib
from typing import Optional

from starlette.requests import HTTPConnection


def token_fingerprint(token: Optional[str]) -> str:
    """Provide a stable, low-leak session token identifier for logs."""
    if not token:
        return "<none>"
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]
    return f"sid:{digest}"


def client_ip(conn: HTTPConnection) -> str:
    """Client address as reported by the edge, falling back to the socket peer."""
    forwarded = conn.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded
    return conn.client.host if conn.client else "unknown"


def client_scheme(conn: HTTPConnection) -> str:
    """Scheme the client used, honouring a single trusted edge proxy."""
    forwarded = conn.headers.get("x-forwarded-proto", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return conn.url.scheme
