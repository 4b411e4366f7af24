"""Per-tenant data source configuration model."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Index,
    Integer,
    JSON,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from geosource.models.base import Base


class SourceKind(str, Enum):
    """Backends a tenant's records can live in."""

    TABLE_API = "table_api"
    SPREADSHEET = "spreadsheet"


class SourceConfig(Base):
    """Connection parameters for one tenant's data source.

    Secret columns only ever hold :class:`~geosource.core.crypto.CredentialCipher`
    blobs. At most one row per tenant has ``is_active`` set.
    """

    __tablename__ = "source_configs"
    __table_args__ = (
        Index(
            "uq_source_configs_active_tenant",
            "tenant_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_kind: Mapped[SourceKind] = mapped_column(
        SQLEnum(SourceKind, name="source_kind"), nullable=False
    )
    base_url: Mapped[str | None] = mapped_column(String(255))
    space_id: Mapped[str | None] = mapped_column(String(128))
    base_id: Mapped[str | None] = mapped_column(String(128))
    spreadsheet_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    sheet_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    access_token_encrypted: Mapped[str | None] = mapped_column(Text())
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text())
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    oauth_user_email: Mapped[str | None] = mapped_column(String(255))
    field_mappings: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(
        Boolean(), default=True, server_default=text("1"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def is_configured(self) -> bool:
        if self.source_kind is SourceKind.TABLE_API:
            return bool(self.base_url and self.base_id)
        return bool(self.spreadsheet_id and self.sheet_name and self.field_mappings)

    def __repr__(self) -> str:
        return (
            f"SourceConfig(id={self.id!r}, tenant_id={self.tenant_id!r}, "
            f"source_kind={self.source_kind.value!r}, is_active={self.is_active!r})"
        )
