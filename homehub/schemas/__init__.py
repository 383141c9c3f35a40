"""Pydantic schemas for request/response validation."""

from homehub.schemas.common import ErrorResponse, HealthResponse

__all__ = [
    "HealthResponse",
    "ErrorResponse",
]
