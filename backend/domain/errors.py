"""
Custom domain exceptions for consistent error handling.

Every failure the order core surfaces is a DomainError subclass, so callers get
one error shape and match on the subclass to tell the kinds apart. The original
exception (if any) is kept in ``cause``.

These exceptions are mapped to HTTP status codes by the exception handler
in main.py.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: dict | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)
        self.identifier = identifier


class ValidationError(DomainError):
    """Validation error (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class ProductValidationError(ValidationError):
    """Requested products the catalog did not return (400)."""
    def __init__(self, missing_product_ids: list[str]):
        super().__init__(
            f"Products not found: {', '.join(missing_product_ids)}",
            details={"missing_product_ids": missing_product_ids},
        )
        self.missing_product_ids = missing_product_ids


class UnauthorizedError(DomainError):
    """Unauthorized access (401)."""
    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class DependencyError(DomainError):
    """Remote service unreachable or errored (502)."""
    def __init__(
        self,
        message: str,
        service: str,
        details: dict | None = None,
        cause: BaseException | None = None,
    ):
        details = {"service": service, **(details or {})}
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, details=details, cause=cause)
        self.service = service


class StorageError(DomainError):
    """Persistence layer rejected a read or write (503)."""
    def __init__(self, message: str, details: dict | None = None, cause: BaseException | None = None):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details, cause=cause)
