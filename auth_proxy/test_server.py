"""
End-to-end tests: the full application (session, gate, local routes and the
proxy) in front of a fake backend served through httpx.MockTransport.
"""

import base64
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from auth_proxy.server import create_app
from auth_proxy.session import InMemorySessionStore
from auth_proxy.vars import ConfigurationError

BACKEND = "http://backend-internal:9000"
COOKIE = "proxy.sid"


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class ChunkStream(httpx.AsyncByteStream):
    def __init__(self, *chunks: bytes):
        self.chunks = chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk


def streamed(status_code, headers, *chunks) -> httpx.Response:
    return httpx.Response(status_code, headers=headers, stream=ChunkStream(*chunks))


class FakeBackend:
    """Records forwarded requests; ``up = False`` refuses every connection."""

    def __init__(self):
        self.up = True
        self.requests = []

    def forwarded(self, path):
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if not self.up:
            raise httpx.ConnectError("Connection refused", request=request)
        self.requests.append(request)
        path = request.url.path
        if path in ("/", "/dashboard"):
            return streamed(
                200,
                {"content-type": "text/html; charset=utf-8"},
                b"<html><body><h1>Dashboard</h1>",
                b"</body></html>",
            )
        if path == "/api/items":
            payload = json.dumps(
                {"method": request.method, "body": request.content.decode()}
            ).encode()
            return streamed(
                200,
                {"content-type": "application/json", "x-backend": "yes"},
                payload,
            )
        if path == "/old":
            return streamed(302, {"location": f"{BACKEND}/new?x=1"})
        if path == "/download":
            return streamed(
                200,
                {"content-type": "application/octet-stream", "content-length": "8"},
                b"abcd",
                b"efgh",
            )
        return streamed(404, {"content-type": "text/plain"}, b"not found")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(backend):
    app = create_app(
        backend_url=BACKEND,
        username="alice",
        password="s3cret",
        upstream_transport=httpx.MockTransport(backend),
    )
    with TestClient(app) as client:
        yield client


def login(client):
    response = client.post(
        "/login",
        headers={"Authorization": f"Basic {b64('alice:s3cret')}"},
        follow_redirects=False,
    )
    assert response.status_code == 302
    return response


class TestAuthentication:
    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE"])
    def test_unauthenticated_requests_redirect_to_login(self, client, backend, method):
        response = client.request(method, "/api/items", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/login"
        assert COOKIE in response.cookies
        assert backend.forwarded("/api/items") == []

    def test_login_page_served(self, client):
        response = client.get("/login")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "<form" in response.text

    def test_auth_assets_served(self, client):
        assert client.get("/auth/style.css").status_code == 200
        assert client.get("/auth/script.js").status_code == 200

    def test_basic_header_login_redirects_home(self, client):
        response = login(client)

        assert response.headers["location"] == "/"
        assert client.get("/dashboard").status_code == 200

    def test_form_login(self, client):
        response = client.post(
            "/login",
            data={"username": b64("alice"), "password": b64("s3cret")},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/"

    def test_failed_login_redirects_with_error(self, client):
        response = client.post(
            "/login",
            headers={"Authorization": f"Basic {b64('alice:wrong')}"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=1"
        assert client.get("/dashboard", follow_redirects=False).status_code == 302

    def test_ajax_login(self, client):
        ajax = {"X-Requested-With": "XMLHttpRequest"}

        failed = client.post(
            "/login",
            headers={**ajax, "Authorization": f"Basic {b64('alice:nope')}"},
        )
        assert failed.status_code == 401
        assert failed.json() == {"success": False}

        ok = client.post(
            "/login",
            headers={**ajax, "Authorization": f"Basic {b64('alice:s3cret')}"},
        )
        assert ok.status_code == 200
        assert ok.json() == {"success": True}

    def test_session_token_survives_login(self, client):
        client.get("/login")
        before = client.cookies.get(COOKIE)

        login(client)

        assert client.cookies.get(COOKIE) == before

    def test_logout(self, client):
        login(client)
        token = client.cookies.get(COOKIE)

        response = client.get("/logout", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/login"
        assert client.get("/dashboard", follow_redirects=False).status_code == 302
        assert client.cookies.get(COOKIE) == token

    def test_logout_without_login(self, client):
        response = client.get("/logout", follow_redirects=False)
        assert response.headers["location"] == "/login"

    def test_keep_alive(self, client):
        response = client.get("/keep-alive")

        assert response.status_code == 200
        assert response.text == "OK"

    def test_profile_requires_login(self, client):
        assert client.get("/profile", follow_redirects=False).status_code == 302

        login(client)
        response = client.get("/profile")

        assert response.status_code == 200
        assert "alice" in response.text
        assert "/logout" in response.text

    def test_profile_not_forwarded(self, client, backend):
        login(client)
        client.get("/profile")
        assert backend.forwarded("/profile") == []


class TestProxying:
    def test_html_gets_user_menu(self, client):
        login(client)

        response = client.get("/dashboard")

        assert response.status_code == 200
        assert "<h1>Dashboard</h1>" in response.text
        assert "alice" in response.text
        assert response.text.rstrip().endswith("</body></html>")
        assert int(response.headers["content-length"]) == len(response.content)

    def test_json_passthrough(self, client, backend):
        login(client)

        response = client.post(
            "/api/items?page=2",
            content=b"hello",
            headers={"Origin": "http://evil.example", "Referer": "http://testserver/x"},
        )

        assert response.status_code == 200
        assert response.json() == {"method": "POST", "body": "hello"}
        assert response.headers["x-backend"] == "yes"
        forwarded = backend.forwarded("/api/items")[-1]
        assert forwarded.url.query == b"page=2"
        assert "origin" not in forwarded.headers
        assert "referer" not in forwarded.headers
        assert forwarded.headers["x-forwarded-host"] == "testserver"
        assert forwarded.headers["x-forwarded-proto"] == "http"
        # The session cookie reaches the backend untouched
        assert COOKIE in forwarded.headers["cookie"]

    def test_streamed_download(self, client):
        login(client)

        response = client.get("/download")

        assert response.content == b"abcdefgh"
        assert response.headers["content-type"] == "application/octet-stream"

    def test_redirect_location_rewritten(self, client):
        login(client)

        response = client.get("/old", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "http://testserver/new?x=1"

    def test_encoded_path_forwarded_verbatim(self, client, backend):
        login(client)

        client.get("/files/a%3Fb%2Fc%23d?x=1")

        forwarded = backend.requests[-1]
        assert forwarded.url.raw_path == b"/files/a%3Fb%2Fc%23d?x=1"

    def test_upstream_status_preserved(self, client):
        login(client)

        response = client.get("/missing")

        assert response.status_code == 404
        assert response.text == "not found"


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_health_checks_do_not_accumulate_sessions(self, client):
        for path in ("/health", "/ready", "/health", "/_proxy/metrics"):
            response = client.get(path)
            assert "set-cookie" not in response.headers

        assert len(client.app.state.sessions) == 0

    def test_ready(self, client, backend):
        assert client.get("/ready").json() == {"ready": True}

        backend.up = False
        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json() == {"ready": False}

    def test_maintenance_page_when_backend_down_at_start(self, backend):
        backend.up = False
        app = create_app(
            backend_url=BACKEND,
            username="alice",
            password="s3cret",
            sessions=InMemorySessionStore(ttl_seconds=60),
            upstream_transport=httpx.MockTransport(backend),
        )

        with TestClient(app) as client:
            login(client)
            backend.up = True  # the cached status still says down

            response = client.get("/anything")

        assert response.status_code == 503
        assert "Service Unavailable" in response.text
        assert backend.forwarded("/anything") == []

    def test_metrics_exposed_without_login(self, client):
        login(client)
        client.get("/dashboard")
        client.cookies.clear()

        response = client.get("/_proxy/metrics")

        assert response.status_code == 200
        assert "auth_proxy_forwarded_requests_total" in response.text
        assert "auth_proxy_login_attempts_total" in response.text
        assert "http_request_duration_highr_seconds" in response.text


class TestConfiguration:
    @pytest.mark.parametrize(
        "settings",
        [
            {"backend_url": "", "username": "alice", "password": "s3cret"},
            {"backend_url": BACKEND, "username": "", "password": "s3cret"},
            {"backend_url": BACKEND, "username": "alice", "password": ""},
        ],
    )
    def test_refuses_to_start_without_required_settings(self, settings):
        app = create_app(**settings, upstream_transport=httpx.MockTransport(FakeBackend()))

        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass
