"""Custom exceptions for the invoice management application."""


class ScanBookException(Exception):
    """Base exception for all invoice management errors."""

    error_kind = "InternalError"

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ScanBookException):
    """Raised when input validation fails."""

    error_kind = "ValidationError"

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class NotFoundError(ScanBookException):
    """Raised when a resource is not found."""

    error_kind = "NotFoundError"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ConflictError(ScanBookException):
    """Raised when a transition is not allowed from the stored state."""

    error_kind = "ConflictError"

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message, status_code=409)


class ExternalServiceError(ScanBookException):
    """Raised when document extraction fails, times out or returns garbage."""

    error_kind = "ExternalServiceError"

    def __init__(self, message: str = "External service failed"):
        super().__init__(message, status_code=502)


class AggregationDataError(ScanBookException):
    """Raised for a single malformed record during report aggregation."""

    error_kind = "AggregationDataError"

    def __init__(self, message: str = "Malformed invoice record"):
        super().__init__(message, status_code=422)


class StorageError(ScanBookException):
    """Raised when storage operations fail."""

    error_kind = "StorageError"

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, status_code=500)


class DatabaseError(ScanBookException):
    """Raised when database operations fail."""

    error_kind = "DatabaseError"

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, status_code=500)
