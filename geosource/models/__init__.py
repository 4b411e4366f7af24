"""Database models for tenant data source configuration."""

from .base import Base
from .oauth_state import OAuthState
from .source_config import SourceConfig, SourceKind

__all__ = [
    "Base",
    "OAuthState",
    "SourceConfig",
    "SourceKind",
]
