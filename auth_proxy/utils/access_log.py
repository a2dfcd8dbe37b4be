"""
Per-request access log. One JSON object per line on the ``auth_proxy.access``
logger, e.g.::

    {"timestamp":"2026-01-05T10:12:01.120Z","clientIP":"10.0.0.7","user":"Guest","method":"GET","path":"/login"}
"""

import json
import logging
import sys
from datetime import datetime, timezone

from starlette.requests import HTTPConnection

from auth_proxy.utils import client_ip

GUEST = "Guest"

access_logger = logging.getLogger("auth_proxy.access")


def _now() -> str:
    return (
        datetime.now(tz=timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def configure_access_logger() -> None:
    """Attach a bare stdout handler so each record is exactly one JSON line."""
    if access_logger.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    access_logger.addHandler(handler)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False


def request_target(conn: HTTPConnection) -> str:
    """Path and query exactly as the client sent them."""
    raw_path = conn.scope.get("raw_path")
    path = raw_path.split(b"?", 1)[0].decode("latin-1") if raw_path else conn.url.path
    query = conn.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


def access_entry(conn: HTTPConnection, method: str, user: str) -> dict:
    return {
        "timestamp": _now(),
        "clientIP": client_ip(conn),
        "user": user,
        "method": method,
        "path": request_target(conn),
    }


def log_access(conn: HTTPConnection, method: str, user: str) -> None:
    access_logger.info(json.dumps(access_entry(conn, method, user), separators=(",", ":")))
