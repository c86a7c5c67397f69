"""Pydantic schemas for request/response validation."""

from app.schemas.common import BaseSchema, HealthResponse, PaginatedResponse

__all__ = [
    "BaseSchema",
    "HealthResponse",
    "PaginatedResponse",
]
