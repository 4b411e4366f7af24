"""Version 1 API routes for the geospatial data source service."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from geosource.api.v1.oauth import router as oauth_router
from geosource.api.v1.sheets import router as sheets_router
from geosource.api.v1.sources import router as sources_router
from geosource.core.config import Settings, get_settings

router = APIRouter()
router.include_router(oauth_router)
router.include_router(sheets_router)
router.include_router(sources_router)


@router.get("/health", tags=["health"])
async def health_check(settings: Settings = Depends(get_settings)) -> dict[str, dict[str, str]]:
    """Report the service health information."""
    return {"data": {"status": "ok", "version": settings.version}}
