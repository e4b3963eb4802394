"""Pydantic schemas shared by the dispatch services."""

from shared.schemas.common import ErrorResponse, HealthResponse
from shared.schemas.notifications import PushMessage

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "PushMessage",
]
