"""Adapters normalising both backends into one record model."""

from .base import DataAdapter
from .cache import SheetRowCache
from .factory import AdapterFactory, get_adapter_factory
from .sheets import SpreadsheetAdapter
from .table_api import TableApiAdapter

__all__ = [
    "AdapterFactory",
    "DataAdapter",
    "SheetRowCache",
    "SpreadsheetAdapter",
    "TableApiAdapter",
    "get_adapter_factory",
]
