from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from geosource.core.errors import ProviderError
from geosource.models import SourceConfig, SourceKind
from geosource.services.source_configs import get_active_config, replace_active_config

VALUES = {"source_kind": SourceKind.TABLE_API, "base_url": "https://tables.example.com", "base_id": "bse1"}


def _conflicting_commit(session, monkeypatch, failures: int) -> list[int]:
    """Make the first ``failures`` commits trip the active-tenant index."""

    commit = session.commit
    attempts: list[int] = []

    async def flaky_commit() -> None:
        attempts.append(len(attempts) + 1)
        if len(attempts) <= failures:
            raise IntegrityError(
                "INSERT INTO source_configs",
                {},
                Exception("UNIQUE constraint failed: source_configs.tenant_id"),
            )
        await commit()

    monkeypatch.setattr(session, "commit", flaky_commit)
    return attempts


@pytest.mark.anyio("asyncio")
async def test_replace_retries_after_unique_index_conflict(session, monkeypatch):
    await replace_active_config(session, "tenant-a", VALUES)
    attempts = _conflicting_commit(session, monkeypatch, failures=1)

    config = await replace_active_config(session, "tenant-a", {**VALUES, "base_id": "bse2"})

    assert attempts == [1, 2]
    assert config.is_active
    assert config.base_id == "bse2"
    rows = (await session.execute(select(SourceConfig).order_by(SourceConfig.id))).scalars().all()
    assert [(row.base_id, row.is_active) for row in rows] == [("bse1", False), ("bse2", True)]


@pytest.mark.anyio("asyncio")
async def test_replace_gives_up_after_second_conflict(session, monkeypatch):
    await replace_active_config(session, "tenant-a", VALUES)
    attempts = _conflicting_commit(session, monkeypatch, failures=2)

    with pytest.raises(ProviderError):
        await replace_active_config(session, "tenant-a", {**VALUES, "base_id": "bse2"})

    assert attempts == [1, 2]
    active = await get_active_config(session, "tenant-a")
    assert active is not None
    assert active.base_id == "bse1"
