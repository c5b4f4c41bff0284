"""Common schemas for the HR Desk API."""

from typing import Generic, TypeVar, Optional, List, Any, Dict
from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated response wrapper."""
    items: List[T]
    total: int
    page: int
    per_page: int
    pages: int

    @classmethod
    def create(cls, items: List[T], total: int, page: int, per_page: int):
        pages = (total + per_page - 1) // per_page if per_page > 0 else 0
        return cls(items=items, total=total, page=page, per_page=per_page, pages=pages)


class ErrorResponse(BaseModel):
    """Error body returned by the domain exception handlers."""
    detail: str
    errors: Optional[Dict[str, str]] = None


class SuccessResponse(BaseModel):
    """Standard success response."""
    message: str
    data: Optional[Any] = None
