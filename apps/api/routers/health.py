from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.observability import COUNTERS

router = APIRouter(tags=["health"])
settings = get_settings()


@router.get("/health")
def health():
    return {"status": "ok", "env": settings.env, "version": settings.app_version}


@router.get("/live")
def live():
    return {"status": "ok"}


@router.get("/ready")
def ready(request: Request):
    checks: dict[str, str] = {}

    workflow = getattr(request.app.state, "workflow", None)
    checks["consent_workflow"] = "ok" if workflow is not None else "failed"
    checks["consent_purposes"] = "ok" if settings.consent_purposes else "failed"

    failed_checks = [name for name, result in checks.items() if result == "failed"]
    if failed_checks:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}


@router.get("/metrics")
def metrics():
    return {"counters": COUNTERS.report()}


@router.get("/version")
def version():
    return {"name": settings.app_name, "version": settings.app_version}
