"""
Exception hierarchy for the content service.

Services raise these instead of HTTPException; the app-level handler in
`cms.app` converts them to JSON responses.
"""

from __future__ import annotations

from typing import Optional


class CmsError(Exception):
    """
    Base class for errors surfaced to API callers.

    Attributes:
        message: user-facing message
        status_code: HTTP status code
        detail: longer description for the logs
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        detail: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.detail = detail or message
        super().__init__(self.message)


class NotFoundError(CmsError):
    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            detail=f"{resource} not found: {identifier}",
        )


class InvalidFieldError(CmsError):
    def __init__(self, message: str, field: Optional[str] = None):
        detail = f"invalid field {field}: {message}" if field else message
        super().__init__(message=message, status_code=400, detail=detail)


class InvalidIndexError(CmsError, IndexError):
    def __init__(self, index: int, size: int):
        super().__init__(
            message=f"Index {index} out of range for {size} items",
            status_code=400,
        )


class SlotLimitError(CmsError):
    def __init__(self, max_slots: int):
        super().__init__(
            message=f"At most {max_slots} featured photos allowed",
            status_code=400,
        )


class StoreUnavailableError(CmsError):
    """Transport failure talking to the document store or object storage."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        detail = f"{operation} failed"
        if cause is not None:
            detail = f"{detail}: {type(cause).__name__}: {cause}"
        super().__init__(
            message=f"{operation} failed, please retry",
            status_code=503,
            detail=detail,
        )
        self.operation = operation
        self.cause = cause
