import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dealscout.api.deps import get_storage
from dealscout.config import Settings, get_settings
from dealscout.services.storage import Storage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_settings),
    storage: Storage = Depends(get_storage),
):
    failures = [f"missing {name}" for name in settings.missing_credentials()]
    try:
        await storage.ping()
    except Exception as exc:
        logger.error("Database health check failed: %s", exc)
        failures.append("database unreachable")

    timestamp = datetime.utcnow().isoformat()
    if failures:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "checks": failures, "timestamp": timestamp},
        )
    return {"status": "ok", "timestamp": timestamp}
