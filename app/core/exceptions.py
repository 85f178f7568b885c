from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ValidationError(AppException):
    """Bad dates, empty reason, missing rejection remarks. Raised before any mutation."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details
        )

class InsufficientBalanceError(AppException):
    def __init__(self, required: int, available: int, pool: str):
        self.required = required
        self.available = available
        self.pool = pool
        super().__init__(
            message=f"Insufficient {pool} balance: {required} day(s) required, {available} available.",
            status_code=400,
            error_code="INSUFFICIENT_BALANCE",
            details={"required": required, "available": available, "pool": pool}
        )

class ZeroWorkingDaysError(AppException):
    def __init__(self, message: str = "The selected dates contain no working days."):
        super().__init__(
            message=message,
            status_code=400,
            error_code="ZERO_WORKING_DAYS"
        )

class InvalidTransitionError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code="INVALID_TRANSITION",
            details=details
        )

class StaleStateError(AppException):
    """Optimistic-concurrency conflict. Callers should re-fetch and retry."""
    def __init__(self, message: str = "The vacation request was modified concurrently. Reload and retry."):
        super().__init__(
            message=message,
            status_code=409,
            error_code="STALE_STATE"
        )

class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND"
        )

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )
