"""
Common Pydantic schemas for API responses and requests.
Provides the versioned response envelope shared by every endpoint.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


SCHEMA_VERSION = "1"

T = TypeVar("T")


# Money travels as a JSON number; Decimal is kept in Python
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RequestModel(BaseModel):
    """Request model accepting camelCase or snake_case keys and nothing else."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class APIResponse(CamelModel):
    """Base API response model."""
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    schema_version: str = SCHEMA_VERSION


class DataResponse(APIResponse, Generic[T]):
    """Success response with a typed payload."""
    data: T


class ErrorResponse(APIResponse):
    """Error response model."""
    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class PaginationInfo(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool


class PaginatedResponse(APIResponse, Generic[T]):
    """Paginated response model."""
    data: List[T]
    pagination: PaginationInfo


class HealthCheckResponse(CamelModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=utc_now)
    version: str = "0.1.0"
    services: Dict[str, str] = Field(
        default_factory=lambda: {
            "database": "healthy",
            "api": "healthy"
        }
    )


def create_error_response(
    message: str,
    error_code: str = None,
    details: Dict[str, Any] = None
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(
        message=message,
        error_code=error_code,
        details=details
    )


def create_pagination_info(total: int, page: int, limit: int) -> PaginationInfo:
    total_pages = max(1, -(-total // limit)) if limit > 0 else 0
    return PaginationInfo(
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )
