"""
Response post-processing for proxied responses.

Upstream redirects are pointed back at the proxy, and HTML pages get the user
menu injected. The body handling is chosen once, when the upstream headers
arrive:

* ``BufferedHtmlBody`` reads the whole (decoded) body so it can be edited.
* ``StreamedBody`` relays the raw upstream bytes as they arrive.
"""

import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Tuple
from urllib.parse import urlsplit, urlunsplit

import httpx
from fastapi import Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from auth_proxy.pages import user_menu_fragment
from auth_proxy.utils import client_scheme

logger = logging.getLogger("uvicorn.error")

BODY_CLOSE = "</body>"

# Hop-by-hop headers that should NOT be forwarded (RFC 9110)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def is_html(content_type: str) -> bool:
    return "text/html" in (content_type or "").lower()


def rewrite_location_header(location: str, request: Request) -> str:
    """
    Point an absolute redirect at the proxy's own scheme and host, keeping
    path, query and fragment. Relative and malformed values are returned
    unchanged.
    """
    if not location:
        return location
    try:
        parsed = urlsplit(location)
    except ValueError:
        logger.debug(f"[Rewrite] Leaving malformed Location as-is: {location!r}")
        return location
    if not parsed.scheme or not parsed.netloc:
        return location

    host = request.headers.get("host")
    if not host:
        return location
    return urlunsplit(
        (client_scheme(request), host, parsed.path or "/", parsed.query, parsed.fragment)
    )


def inject_user_menu(html: str, username: str) -> str:
    """Insert the user menu fragment right before the first ``</body>``."""
    return html.replace(BODY_CLOSE, f"{user_menu_fragment(username)}{BODY_CLOSE}", 1)


def response_headers(
    upstream: httpx.Response, request: Request
) -> List[Tuple[str, str]]:
    """Copy upstream headers for the client, minus hop-by-hop, with Location rewritten."""
    headers: List[Tuple[str, str]] = []
    for name, value in upstream.headers.multi_items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS:
            continue
        if name_lower == "location":
            value = rewrite_location_header(value, request)
        headers.append((name_lower, value))
    return headers


class BodyStrategy(ABC):
    @abstractmethod
    async def render(
        self, upstream: httpx.Response, headers: List[Tuple[str, str]]
    ) -> Response:
        pass


class BufferedHtmlBody(BodyStrategy):
    """Reads the whole body, injects the user menu, lets Starlette re-frame it."""

    # Dropped because the body handed to the client is decoded and re-sized
    STALE_HEADERS = {"content-length", "content-encoding"}

    def __init__(self, username: str):
        self.username = username

    async def render(self, upstream, headers):
        try:
            await upstream.aread()
        finally:
            await upstream.aclose()
        # Served in the upstream charset, which Content-Type still names
        content = inject_user_menu(upstream.text, self.username).encode(
            upstream.encoding, errors="xmlcharrefreplace"
        )
        response = Response(content=content, status_code=upstream.status_code)
        _apply_headers(response, headers, skip=self.STALE_HEADERS)
        return response


class StreamedBody(BodyStrategy):
    """Relays raw upstream bytes; status and headers pass through verbatim."""

    async def render(self, upstream, headers):
        async def relay() -> AsyncIterator[bytes]:
            # Closing in finally also runs when the client disconnects and
            # Starlette cancels the stream.
            try:
                async for chunk in upstream.aiter_raw():
                    yield chunk
            finally:
                await upstream.aclose()

        response = StreamingResponse(
            relay(),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        _apply_headers(response, headers)
        return response


def _apply_headers(
    response: Response, headers: List[Tuple[str, str]], skip=frozenset()
) -> None:
    # Upstream headers replace Starlette's defaults; only the Content-Length
    # Starlette computed for a rebuilt body survives.
    framing = [item for item in response.raw_headers if item[0] == b"content-length"]
    response.raw_headers = [
        (name.encode("latin-1"), value.encode("latin-1"))
        for name, value in headers
        if name not in skip
    ] + framing


def has_body(method: str, status_code: int) -> bool:
    """Whether a response to ``method`` with ``status_code`` carries a body."""
    if method.upper() == "HEAD":
        return False
    return not (100 <= status_code < 200 or status_code in (204, 304))


def select_body_strategy(
    content_type: str, username: str, method: str = "GET", status_code: int = 200
) -> BodyStrategy:
    if is_html(content_type) and has_body(method, status_code):
        return BufferedHtmlBody(username)
    return StreamedBody()


async def rewrite(
    upstream: httpx.Response, request: Request, username: str
) -> Response:
    """Turn a streamed upstream response into the response sent to the client."""
    headers = response_headers(upstream, request)
    strategy = select_body_strategy(
        upstream.headers.get("content-type", ""),
        username,
        request.method,
        upstream.status_code,
    )
    return await strategy.render(upstream, headers)
