from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mediacdn.api import deps
from mediacdn.core.config import Settings
from mediacdn.core.logging import get_logger

from .schemas import HealthResponse


router = APIRouter(tags=["system"])
logger = get_logger(component="system_api")


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health(settings: Settings = Depends(deps.get_app_settings)) -> HealthResponse:
    return HealthResponse(version=settings.version)


@router.get("/ready", response_model=HealthResponse, summary="Readiness check (metadata store reachable)")
async def ready(
    session: AsyncSession = Depends(deps.get_session),
    settings: Settings = Depends(deps.get_app_settings),
) -> HealthResponse:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("metadata_store_unreachable", error=str(exc))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="metadata_store_unreachable")
    return HealthResponse(version=settings.version)


__all__ = ["router"]
