import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import (
    FileResponse,
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
)

from auth_proxy.auth.credentials import CredentialVerifier
from auth_proxy.auth.gate import LOGIN_PATH
from auth_proxy.metrics import login_attempts_total
from auth_proxy.pages import profile_page
from auth_proxy.session import SESSION_STATE_KEY, SessionStoreBase
from auth_proxy.utils import client_ip, token_fingerprint

router = APIRouter()

logger = logging.getLogger("uvicorn.error")

PUBLIC_DIR = Path(__file__).resolve().parent.parent / "public"
LOGIN_PAGE = PUBLIC_DIR / "login.html"


def _sessions(request: Request) -> SessionStoreBase:
    return request.app.state.sessions


def _verifier(request: Request) -> CredentialVerifier:
    return request.app.state.verifier


def _session_token(request: Request):
    return getattr(request.state, SESSION_STATE_KEY, None)


def _is_ajax(request: Request) -> bool:
    return request.headers.get("x-requested-with") == "XMLHttpRequest"


@router.get(LOGIN_PATH)
async def login_page():
    return FileResponse(LOGIN_PAGE, media_type="text/html")


@router.post(LOGIN_PATH)
async def login(request: Request):
    ok, credentials = await _verifier(request).authenticate(request)
    token = _session_token(request)

    if ok and _sessions(request).set_authenticated(token, True) is not None:
        login_attempts_total.labels(outcome="success").inc()
        logger.info(
            f"[Login] Login succeeded for {credentials.username} "
            f"({token_fingerprint(token)})"
        )
        if _is_ajax(request):
            return JSONResponse({"success": True})
        return RedirectResponse("/", status_code=302)

    login_attempts_total.labels(outcome="failure").inc()
    logger.warning(
        f"[Login] Login failed from {client_ip(request)} "
        f"for {credentials.username if credentials else '-'}"
    )
    if _is_ajax(request):
        return JSONResponse({"success": False}, status_code=401)
    return RedirectResponse(f"{LOGIN_PATH}?error=1", status_code=302)


@router.get("/logout")
async def logout(request: Request):
    token = _session_token(request)
    _sessions(request).set_authenticated(token, False)
    logger.info(f"[Login] Logged out ({token_fingerprint(token)})")
    return RedirectResponse(LOGIN_PATH, status_code=302)


@router.get("/keep-alive")
async def keep_alive():
    # The session middleware has already slid the expiry
    return PlainTextResponse("OK")


@router.get("/profile", response_class=HTMLResponse)
async def profile(request: Request):
    return HTMLResponse(profile_page(_verifier(request).username))
