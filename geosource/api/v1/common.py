"""Response envelope shared by the v1 routers."""
from __future__ import annotations

from typing import TypeVar


T = TypeVar("T")


def data_response(payload: T) -> dict[str, T]:
    """Wrap ``payload`` as ``{"data": payload}``."""

    return {"data": payload}
