import logging
import time
from typing import List, Tuple
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, Response
from opentelemetry import trace

from auth_proxy.app_proxy.rewrite import HOP_BY_HOP_HEADERS, rewrite
from auth_proxy.metrics import (
    forwarded_requests_total,
    maintenance_responses_total,
    upstream_response_seconds,
)
from auth_proxy.pages import MAINTENANCE_HTML
from auth_proxy.session import SESSION_STATE_KEY
from auth_proxy.utils import client_scheme
from auth_proxy.utils.exception_logging import format_exception_message
from auth_proxy.utils.traced_requests import traced_request

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

# Never forwarded: the upstream must not see the proxy's origin, and httpx
# sets Host and Content-Length for the upstream request itself.
STRIPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {
    "host",
    "origin",
    "referer",
    "content-length",
}


def get_target_url(request: Request, backend_url: str) -> httpx.URL:
    """
    Backend base URL + the request path verbatim + the query string.

    Built from the raw ASGI path so percent-escapes such as ``%2F`` or ``%3F``
    reach the backend untouched.
    """
    base = httpx.URL(backend_url)
    raw_path = request.scope.get("raw_path") or quote(request.url.path).encode("ascii")
    # The query is taken from query_string only
    raw_path = raw_path.split(b"?", 1)[0]
    target = base.raw_path.split(b"?", 1)[0].rstrip(b"/") + raw_path
    query_string = request.scope.get("query_string", b"")
    if query_string:
        target = target + b"?" + query_string
    return base.copy_with(raw_path=target)


def prepare_headers(request: Request) -> List[Tuple[str, str]]:
    """
    Prepare headers for forwarding to the backend.
    Removes hop-by-hop and origin-revealing headers and adds X-Forwarded-*.
    """
    headers = [
        (name, value)
        for name, value in request.headers.items()
        if name.lower() not in STRIPPED_REQUEST_HEADERS
        and not name.lower().startswith("x-forwarded-")
        and name.lower() != "x-real-ip"
    ]

    client_host = request.client.host if request.client else "unknown"
    existing_xff = request.headers.get("x-forwarded-for", "")
    headers.append(("x-forwarded-for", f"{existing_xff}, {client_host}".strip(", ")))
    headers.append(("x-forwarded-host", request.headers.get("host", "")))
    headers.append(("x-forwarded-proto", client_scheme(request)))
    headers.append(("x-real-ip", client_host))
    return headers


def maintenance_response(reason: str) -> HTMLResponse:
    maintenance_responses_total.labels(reason=reason).inc()
    return HTMLResponse(MAINTENANCE_HTML, status_code=503)


async def forward_to_target(request: Request) -> Response:
    """
    Forward an authenticated request to the backend and post-process the
    response:
    - maintenance page while the backend is known to be down
    - origin-revealing headers stripped, X-Forwarded-* added
    - Location header rewritten for redirects
    - HTML buffered for user menu injection, everything else streamed
    """
    state = request.app.state
    if not state.health.is_up:
        logger.debug(f"[Proxy] Maintenance mode, not forwarding {request.url.path}")
        return maintenance_response("down")

    target_url = get_target_url(request, state.backend_url)
    with traced_request(
        tracer,
        operation="proxy_request",
        session_token=getattr(request.state, SESSION_STATE_KEY, None),
        start_message=f"[Proxy] {request.method} {request.url.path} -> {target_url}",
        extra_attrs={"proxy.target_url": str(target_url), "proxy.method": request.method},
    ) as span:
        client: httpx.AsyncClient = state.http_client
        body = await request.body()
        try:
            upstream_request = client.build_request(
                request.method,
                target_url,
                headers=prepare_headers(request),
                content=body,
            )
            started = time.perf_counter()
            upstream = await client.send(upstream_request, stream=True)
            upstream_response_seconds.observe(time.perf_counter() - started)
        except httpx.RequestError as e:
            span.set_attribute("proxy.error", type(e).__name__)
            logger.error(
                f"[Proxy] Upstream request failed for {target_url}: "
                f"{format_exception_message(e)}"
            )
            return maintenance_response("upstream_error")

        span.set_attribute("proxy.status_code", upstream.status_code)
        forwarded_requests_total.labels(
            method=request.method, status=str(upstream.status_code)
        ).inc()
        try:
            return await rewrite(upstream, request, state.verifier.username)
        except httpx.RequestError as e:
            # Upstream dropped while the HTML body was being buffered
            await upstream.aclose()
            span.set_attribute("proxy.error", type(e).__name__)
            logger.error(
                f"[Proxy] Upstream response failed for {target_url}: "
                f"{format_exception_message(e)}"
            )
            return maintenance_response("upstream_error")


@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_all(request: Request, path: str):
    """Catch-all route that proxies every other request to the backend."""
    return await forward_to_target(request)
