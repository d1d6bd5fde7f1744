"""
Exception hierarchy for the stock-idea core.

Every failure the core reports carries an error code, a human message and
a details dict so the UI layer can render a short notice without parsing
strings.
"""

from typing import Any, Dict, Optional


class StockIdeaError(Exception):
    """Base exception for all stock-idea errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "STOCK_IDEA_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class NotFound(StockIdeaError):
    """Raised when an operation targets an id with no stored document."""

    def __init__(self, record_id: str, resource: str = "stock idea"):
        super().__init__(
            message=f"{resource.capitalize()} not found: {record_id}",
            error_code="NOT_FOUND",
            details={"resource": resource, "record_id": record_id},
        )
        self.record_id = record_id


class ValidationError(StockIdeaError):
    """Raised when caller-supplied data violates a required invariant."""

    def __init__(self, field: str, message: str, error_code: str = "VALIDATION_ERROR",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"field": field, **(details or {})},
        )
        self.field = field


class AlreadyPublished(ValidationError):
    """Raised by publish() when the record already has a publish timestamp."""

    def __init__(self, record_id: Optional[str], posted_at: str):
        super().__init__(
            field="postedAt",
            message=f"Stock idea already published at {posted_at}",
            error_code="ALREADY_PUBLISHED",
            details={"record_id": record_id, "posted_at": posted_at},
        )
        self.posted_at = posted_at


class MappingError(StockIdeaError):
    """Raised when a wire document is structurally malformed."""

    def __init__(self, path: str, message: str):
        super().__init__(
            message=f"{path}: {message}",
            error_code="MAPPING_ERROR",
            details={"path": path},
        )
        self.path = path


class TransportError(StockIdeaError):
    """Opaque failure from the backing store, passed through as-is."""

    def __init__(
        self,
        method: str,
        url: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        status = status_code if status_code is not None else "no response"
        super().__init__(
            message=f"{method} {url} failed ({status}): {body[:300]}",
            error_code="TRANSPORT_ERROR",
            details={"method": method, "url": url, "status_code": status_code},
        )
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
