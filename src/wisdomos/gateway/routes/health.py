"""Health routes

GET /health: liveness, always 200.
GET /ready: readiness -- SQLite reachable, orchestrator loop running; also
reports job counts per status.
"""

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    checks: dict = {}
    all_ok = True

    system = request.app.state.system
    try:
        cursor = await system.stores.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
        checks["jobs"] = await system.stores.job_store.count_by_status()
    except Exception as e:
        log.warning("readiness_check_failed", check="sqlite", error=str(e))
        checks["sqlite"] = f"error: {e}"
        all_ok = False

    if system.orchestrator.is_running:
        checks["orchestrator"] = "ok"
    else:
        checks["orchestrator"] = "stopped"
        all_ok = False

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ready" if all_ok else "not_ready", "checks": checks},
    )
