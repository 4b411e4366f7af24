"""Pydantic schemas for the data source service."""

from .oauth import (
    FieldDetectionRequest,
    RefreshRequest,
    SaveConfigRequest,
    SheetSelection,
    SourceStatus,
    TableApiConfigCreate,
)
from .source import (
    ColumnSchema,
    FieldMappingProposal,
    FieldMappings,
    Pagination,
    RecordPage,
    SourceRecord,
    TableInfo,
)

__all__ = [
    "ColumnSchema",
    "FieldDetectionRequest",
    "FieldMappingProposal",
    "FieldMappings",
    "Pagination",
    "RecordPage",
    "RefreshRequest",
    "SaveConfigRequest",
    "SheetSelection",
    "SourceRecord",
    "SourceStatus",
    "TableApiConfigCreate",
    "TableInfo",
]
