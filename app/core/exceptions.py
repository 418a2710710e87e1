"""
Error taxonomy for the college administration backend.

Stores raise NotFound/Unavailable straight from the data-access layer; the
HOD coordinator adds Conflict, PreconditionFailed and Degraded on top. The
FastAPI app translates every subclass into a JSON error response.
"""

from typing import Any, Dict, Optional


class CollegeAdminError(Exception):
    """Base exception class for all application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code or self.__class__.__name__
        super().__init__(message)


class NotFound(CollegeAdminError):
    """Raised when a referenced faculty/department/subject/class does not exist."""

    def __init__(self, message: str = "Resource not found", resource_type: Optional[str] = None):
        details = {"resource_type": resource_type} if resource_type else {}
        super().__init__(message, status_code=404, details=details, error_code="NOT_FOUND")


class Conflict(CollegeAdminError):
    """Raised on uniqueness violations or when a conditional write lost a race."""

    def __init__(self, message: str = "Resource conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=409, details=details, error_code="CONFLICT")


class PreconditionFailed(CollegeAdminError):
    """Raised when activating something whose prerequisite is missing."""

    def __init__(self, message: str = "Precondition failed"):
        super().__init__(message, status_code=412, error_code="PRECONDITION_FAILED")


class InvalidState(CollegeAdminError):
    """Raised when a write would leave a row in a state its invariants forbid."""

    def __init__(self, message: str = "Invalid state"):
        super().__init__(message, status_code=422, error_code="INVALID_STATE")


class InvalidOperation(CollegeAdminError):
    """Raised for mutation paths that are not allowed at all."""

    def __init__(self, message: str = "Operation not allowed"):
        super().__init__(message, status_code=400, error_code="INVALID_OPERATION")


class Unavailable(CollegeAdminError):
    """Raised when the database is unreachable or a round trip timed out."""

    def __init__(self, message: str = "Database unavailable", operation: Optional[str] = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, status_code=503, details=details, error_code="UNAVAILABLE")


class Degraded(CollegeAdminError):
    """
    Raised when a compensating write failed after a partial failure.

    `details["reconcile"]` lists the rows that may disagree and need a
    manual look.
    """

    def __init__(
        self,
        message: str,
        reconcile: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        details: Dict[str, Any] = {"reconcile": reconcile or {}}
        if cause is not None:
            details["cause"] = str(cause)
        super().__init__(message, status_code=500, details=details, error_code="DEGRADED")
