"""Cookie-backed session resolution.

Uses pure ASGI middleware (not BaseHTTPMiddleware) so streamed upstream
bodies pass through untouched and client disconnects reach the proxy route.
"""

from typing import Iterable

from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from auth_proxy.session.store import SessionStoreBase
from auth_proxy.vars import (
    SESSION_COOKIE_NAME,
    SESSION_COOKIE_SECURE,
    SESSION_TTL_SECONDS,
)

SESSION_STATE_KEY = "session_token"


def session_cookie_header(
    token: str,
    cookie_name: str = SESSION_COOKIE_NAME,
    max_age: int = SESSION_TTL_SECONDS,
    secure: bool = SESSION_COOKIE_SECURE,
) -> str:
    response = Response()
    response.set_cookie(
        cookie_name,
        token,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )
    return response.headers["set-cookie"]


class SessionMiddleware:
    """Resolve or issue the session for every HTTP request.

    A valid cookie has its session extended by the sliding window; a missing,
    unknown or expired cookie gets a fresh unauthenticated session. The cookie
    is re-sent on every response so the browser-side expiry slides as well.

    Requests to ``sessionless_paths`` (health checks, metrics scrapes)
    still extend a valid session but never get a new one.
    """

    def __init__(
        self,
        app: ASGIApp,
        store: SessionStoreBase,
        cookie_name: str = SESSION_COOKIE_NAME,
        max_age: int = SESSION_TTL_SECONDS,
        secure: bool = SESSION_COOKIE_SECURE,
        sessionless_paths: Iterable[str] = (),
    ) -> None:
        self.app = app
        self.store = store
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure
        self.sessionless_paths = frozenset(sessionless_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        token = conn.cookies.get(self.cookie_name)
        if self.store.touch(token) is None:
            if conn.url.path in self.sessionless_paths:
                scope.setdefault("state", {})[SESSION_STATE_KEY] = None
                await self.app(scope, receive, send)
                return
            token, _ = self.store.create()
        scope.setdefault("state", {})[SESSION_STATE_KEY] = token

        cookie = session_cookie_header(
            token, self.cookie_name, self.max_age, self.secure
        )

        async def send_with_cookie(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message).append("set-cookie", cookie)
            await send(message)

        await self.app(scope, receive, send_with_cookie)
