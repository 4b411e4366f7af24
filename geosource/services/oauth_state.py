"""Single-use OAuth state tokens persisted in the central database."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from geosource.core.crypto import generate_token
from geosource.core.db import as_utc, utcnow
from geosource.core.errors import StateExpiredError, StateNotFoundError
from geosource.models import OAuthState

DEFAULT_STATE_TTL = timedelta(minutes=15)
STATE_TOKEN_BYTES = 32

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateRecord:
    token: str
    tenant_id: str
    admin_email: str
    redirect_uri: str
    created_at: datetime
    expires_at: datetime


class OAuthStateStore:
    """Create and atomically consume anti-CSRF state records."""

    def __init__(self, session: AsyncSession, *, ttl: timedelta = DEFAULT_STATE_TTL):
        self._session = session
        self._ttl = ttl

    async def create(
        self,
        tenant_id: str,
        admin_email: str,
        redirect_uri: str,
        *,
        now: datetime | None = None,
    ) -> str:
        """Persist a new state record and return its token."""

        created_at = now or utcnow()
        token = generate_token(STATE_TOKEN_BYTES)
        self._session.add(
            OAuthState(
                token=token,
                tenant_id=tenant_id,
                admin_email=admin_email,
                redirect_uri=redirect_uri,
                created_at=created_at,
                expires_at=created_at + self._ttl,
            )
        )
        await self._session.commit()
        return token

    async def consume(self, token: str) -> StateRecord:
        """Delete and return the record for ``token``.

        The lookup and the delete are one statement, so a replayed token finds
        nothing. Expired records are removed by the same statement and reported
        with :class:`StateExpiredError`.
        """

        if not token:
            raise StateNotFoundError("OAuth state is missing")

        stmt = (
            delete(OAuthState)
            .where(OAuthState.token == token)
            .returning(
                OAuthState.token,
                OAuthState.tenant_id,
                OAuthState.admin_email,
                OAuthState.redirect_uri,
                OAuthState.created_at,
                OAuthState.expires_at,
            )
        )
        result = await self._session.execute(stmt)
        row = result.one_or_none()
        await self._session.commit()

        if row is None:
            logger.info("OAuth state not found", extra={"operation": "consume_state"})
            raise StateNotFoundError("OAuth state not found")

        record = StateRecord(
            token=row.token,
            tenant_id=row.tenant_id,
            admin_email=row.admin_email,
            redirect_uri=row.redirect_uri,
            created_at=as_utc(row.created_at),
            expires_at=as_utc(row.expires_at),
        )
        if record.expires_at <= utcnow():
            logger.info(
                "OAuth state expired",
                extra={"operation": "consume_state", "tenant_id": record.tenant_id},
            )
            raise StateExpiredError("OAuth state expired")
        return record

    async def purge_expired(self) -> int:
        """Delete every expired state record and return how many were removed."""

        result = await self._session.execute(
            delete(OAuthState).where(OAuthState.expires_at <= utcnow())
        )
        await self._session.commit()
        return result.rowcount or 0

    async def discard(self, token: str) -> bool:
        """Delete ``token`` without validating it. Returns whether a row existed."""

        result = await self._session.execute(delete(OAuthState).where(OAuthState.token == token))
        await self._session.commit()
        return bool(result.rowcount)
