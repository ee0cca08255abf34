"""
Result Pattern Implementation
Report services hand back a Result instead of raising into the routes
"""

from typing import TypeVar, Generic, Optional, Any, Dict
from dataclasses import dataclass

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """
    Outcome of a report service call.

    Holds either the data of a successful call or the failure reason and a
    machine-readable code.

    Examples:
        result = report_service.fetch_conversions(query)
        if result.is_success:
            print(result.data['total_rows'])
        elif result.error_code == 'STALE_RESPONSE':
            pass  # a newer fetch owns the store
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        """
        Create a successful result.

        Args:
            data: Payload of the call
            metadata: Optional details about the call

        Returns:
            A successful Result
        """
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def failure(cls,
                error: str,
                code: Optional[str] = None,
                metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        """
        Create a failure result.

        Args:
            error: Human readable failure reason
            code: Optional code for programmatic handling (FETCH_ERROR, ...)
            metadata: Optional details about the failure

        Returns:
            A failed Result
        """
        return cls(success=False, error=error, error_code=code, metadata=metadata)

    @property
    def is_success(self) -> bool:
        return self.success

    @property
    def is_failure(self) -> bool:
        return not self.success

    def unwrap(self) -> T:
        """
        Get the data from a successful result.

        Raises:
            ValueError: If called on a failure result
        """
        if self.is_failure:
            raise ValueError(f"Cannot unwrap a failure result: {self.error}")
        return self.data

    def unwrap_or(self, default: T) -> T:
        return self.data if self.is_success else default

    def to_dict(self) -> Dict[str, Any]:
        """JSON body for the routes."""
        if self.is_success:
            body = {'success': True, 'data': self.data}
        else:
            body = {'success': False, 'error': self.error, 'code': self.error_code}
        if self.metadata:
            body['metadata'] = self.metadata
        return body

    def __bool__(self) -> bool:
        return self.is_success

    def __repr__(self) -> str:
        if self.is_success:
            return f"Result.success(data={self.data!r})"
        return f"Result.failure(error={self.error!r}, code={self.error_code!r})"


@dataclass
class PagedResult(Generic[T], Result[T]):
    """
    Result carrying one page of conversions plus the pagination numbers
    the table footer needs.
    """

    total: Optional[int] = None
    page: Optional[int] = None
    per_page: Optional[int] = None
    total_pages: Optional[int] = None

    @classmethod
    def paginated(cls,
                  data: T,
                  total: int,
                  page: int,
                  per_page: int,
                  metadata: Optional[Dict[str, Any]] = None) -> 'PagedResult[T]':
        """
        Create a paginated successful result.

        Args:
            data: The page of data
            total: Number of items across all pages
            page: Current page number (1-based)
            per_page: Items per page
            metadata: Optional additional metadata
        """
        total_pages = (total + per_page - 1) // per_page if per_page > 0 else 0

        return cls(
            success=True,
            data=data,
            metadata=metadata,
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages
        )

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.is_success:
            body['pagination'] = {
                'total': self.total,
                'page': self.page,
                'per_page': self.per_page,
                'total_pages': self.total_pages,
            }
        return body
