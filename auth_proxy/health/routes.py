from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()

HEALTH_PATH = "/health"
READY_PATH = "/ready"
HEALTH_PATHS = (HEALTH_PATH, READY_PATH)


@router.get(HEALTH_PATH)
async def health():
    """Liveness: the proxy process is serving."""
    return {"status": "ok"}


@router.get(READY_PATH)
async def ready(request: Request):
    """Readiness: a fresh upstream probe, independent of the cached status."""
    ok = await request.app.state.health.probe_once()
    if ok:
        return {"ready": True}
    return JSONResponse({"ready": False}, status_code=503)
