"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import text
from starlette.responses import Response

from idm.core.logging import get_logger
from idm.dependencies import SessionDep, SettingsDep
from idm.models.responses import SuccessResponse

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthStatus(BaseModel):
    """Health status response model."""

    status: str
    version: str
    service: str


class ReadinessStatus(HealthStatus):
    """Readiness status response model."""

    cache_store: str


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(settings: SettingsDep) -> SuccessResponse[HealthStatus]:
    """Liveness check; does not touch the cache store."""
    logger.debug("health_check")

    return SuccessResponse(
        data=HealthStatus(
            status="healthy",
            version=settings.version,
            service=settings.app_name,
        )
    )


@router.get("/health/ready")
async def readiness_check(db: SessionDep, settings: SettingsDep) -> Response:
    """Readiness check; 200 when the cache store answers, 503 otherwise."""
    logger.debug("readiness_check")

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar_one()
    except Exception as e:
        logger.error("readiness_check_failed", error=str(e))
        ready, status_code = False, status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        logger.info("readiness_check_passed")
        ready, status_code = True, status.HTTP_200_OK

    response_data = SuccessResponse(
        data=ReadinessStatus(
            status="ready" if ready else "not_ready",
            version=settings.version,
            service=settings.app_name,
            cache_store="connected" if ready else "disconnected",
        )
    )

    return Response(
        content=response_data.model_dump_json(),
        status_code=status_code,
        media_type="application/json",
    )
