from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from orgchart.core.config import settings
from orgchart.core.dependencies import get_current_user
from orgchart.models.auth import UserInfo
from orgchart.services.chart_store import chart_store
from orgchart.services.employee_service import employee_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


async def _probe(service) -> str:
    if not service.initialized:
        return "not_configured"
    try:
        return "ok" if await service.check_connection() else "error"
    except Exception:
        logger.exception("Health probe failed for %s", type(service).__name__)
        return "error"


@router.get("")
async def health_check():
    services = {
        "cosmos_employees": await _probe(employee_service),
        "cosmos_charts": await _probe(chart_store),
    }

    all_ok = all(v in ("ok", "not_configured") for v in services.values())

    return {
        "status": "healthy" if all_ok else "degraded",
        "version": settings.APP_VERSION,
        "services": services,
    }


@router.get("/protected")
async def health_protected(user: UserInfo = Depends(get_current_user)):  # noqa: B008
    return {"status": "ok", "user": user.model_dump()}


@router.get("/ready")
async def readiness_probe():
    return {"ready": True}
