from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..errors import StudyToolError
from ..services.system import system_probe
from .deps import get_study_service

router = APIRouter(tags=["health"])


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "detail": system_probe(),
    }


@router.get("/test-gemini")
async def test_model_connection(request: Request) -> JSONResponse:
    service = get_study_service(request)
    try:
        result = await service.probe()
    except StudyToolError as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "connected": False, "model": service.model_name, "message": exc.message},
        )
    return JSONResponse(content=result)
