"""Google OAuth connection endpoints."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from geosource.core.config import Settings, get_settings
from geosource.core.db import get_session
from geosource.core.errors import SourceError
from geosource.core.oauth_google import get_google_oauth_client
from geosource.schemas import RefreshRequest
from geosource.services.oauth_flow import OAuthCoordinator

router = APIRouter(prefix="/oauth/google", tags=["oauth"])

logger = logging.getLogger(__name__)


def get_oauth_coordinator(
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> OAuthCoordinator:
    return OAuthCoordinator(session, settings=settings, oauth_client=get_google_oauth_client())


@router.get("/start")
async def oauth_start(
    tenant_id: str | None = Query(default=None, alias="tenantId"),
    admin_email: str | None = Query(default=None, alias="adminEmail"),
    coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
) -> dict[str, str]:
    """Return the consent URL the administrator's browser should open."""

    auth_url = await coordinator.start(tenant_id, admin_email)
    return {"authUrl": auth_url}


@router.get("/callback", response_model=None)
async def oauth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
) -> RedirectResponse | PlainTextResponse:
    """Finish the consent flow and send the browser back to the admin UI."""

    if error:
        await coordinator.abandon(state, error)
        return PlainTextResponse(
            f"Authorization was not granted: {error}", status_code=status.HTTP_400_BAD_REQUEST
        )

    try:
        result = await coordinator.callback(code, state)
    except SourceError as exc:
        if exc.status_code >= 500:
            raise
        logger.warning(
            "OAuth callback rejected",
            extra={"operation": "callback", "error_class": type(exc).__name__},
        )
        return PlainTextResponse(exc.user_message, status_code=status.HTTP_400_BAD_REQUEST)
    return RedirectResponse(result.redirect_url, status_code=status.HTTP_302_FOUND)


@router.post("/refresh")
async def oauth_refresh(
    payload: RefreshRequest,
    coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
) -> dict[str, Any]:
    """Refresh the tenant's access token on demand."""

    expires_at = await coordinator.refresh(payload.tenant_id)
    return {"success": True, "expiresAt": expires_at.isoformat()}
