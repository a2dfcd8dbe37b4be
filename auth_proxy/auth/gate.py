"""Request classification in front of every local route and the proxy.

Unauthenticated requests are redirected to the login page whatever the path
or method; API-style callers get the same redirect as browsers.
"""

import logging
from enum import Enum
from typing import Iterable, Optional

from starlette.requests import HTTPConnection
from starlette.responses import RedirectResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from auth_proxy.session import SESSION_STATE_KEY, Session, SessionStoreBase
from auth_proxy.utils import token_fingerprint
from auth_proxy.utils.access_log import GUEST, log_access
from auth_proxy.vars import AUTH_USER, METRICS_PATH

logger = logging.getLogger("uvicorn.error")

LOGIN_PATH = "/login"

PUBLIC_PATHS = frozenset(
    {
        LOGIN_PATH,
        "/auth/style.css",
        "/auth/bg.jpg",
        "/auth/script.js",
        "/favicon.ico",
    }
)
PUBLIC_PREFIXES = ("/auth/", "/assets/")

# Served without a login: session upkeep and health checks
EXEMPT_PATHS = frozenset({"/logout", "/keep-alive", "/health", "/ready"})


class Access(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    DENIED = "denied"


def is_public_path(path: str, extra_paths: Iterable[str] = ()) -> bool:
    if path in PUBLIC_PATHS or path in EXEMPT_PATHS or path in extra_paths:
        return True
    return path.startswith(PUBLIC_PREFIXES)


def classify(
    path: str, session: Optional[Session], extra_public: Iterable[str] = ()
) -> Access:
    if is_public_path(path, extra_public):
        return Access.PUBLIC
    if session is not None and session.authenticated:
        return Access.AUTHENTICATED
    return Access.DENIED


class AuthGateMiddleware:
    """Logs each request and turns Denied requests into a login redirect.

    Must run inside SessionMiddleware, which places the session token on the
    request state.
    """

    def __init__(
        self,
        app: ASGIApp,
        store: SessionStoreBase,
        username: str = AUTH_USER,
        extra_public: Iterable[str] = (METRICS_PATH,),
    ) -> None:
        self.app = app
        self.store = store
        self.username = username
        self.extra_public = frozenset(extra_public)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        token = scope.get("state", {}).get(SESSION_STATE_KEY)
        session = self.store.get(token)
        authenticated = session is not None and session.authenticated
        log_access(conn, scope["method"], self.username if authenticated else GUEST)

        access = classify(conn.url.path, session, self.extra_public)
        if access is Access.DENIED:
            logger.debug(
                f"[Gate] Redirecting {scope['method']} {conn.url.path} to login "
                f"({token_fingerprint(token)})"
            )
            response = RedirectResponse(LOGIN_PATH, status_code=302)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
