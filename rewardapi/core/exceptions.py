from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """Base exception for API errors"""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={"error": message, "code": error_code},
            headers=headers,
        )

    def __str__(self) -> str:  # Ensure str(e) returns the human message
        return self.message

    def to_content(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"error": self.message, "code": self.error_code}
        if self.details:
            content["details"] = self.details
        return content


class ValidationError(BaseAPIException):
    """Malformed or missing parameters"""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="VALIDATION_ERROR",
            message=message,
            details=details,
        )


class BusinessRuleViolation(BaseAPIException):
    """Business rule errors - message is surfaced verbatim"""

    def __init__(self, error_code: str, message: str, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=error_code,
            message=message,
            details=details,
        )


class InsufficientBalanceError(BusinessRuleViolation):
    """Insufficient balance errors"""

    def __init__(self, message: str = "Insufficient balance", details: Optional[Dict] = None):
        super().__init__("INSUFFICIENT_BALANCE", message, details)


class NotFoundError(BaseAPIException):
    """Referenced task/code/session/question absent"""

    def __init__(
        self,
        message: str = "Resource not found",
        error_code: str = "NOT_FOUND",
        details: Optional[Dict] = None,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=error_code,
            message=message,
            details=details,
        )


class ConflictError(BaseAPIException):
    """Duplicate redemption/referral"""

    def __init__(
        self,
        message: str = "Resource conflict",
        error_code: str = "CONFLICT",
        details: Optional[Dict] = None,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=error_code,
            message=message,
            details=details,
        )


class AuthenticationError(BaseAPIException):
    """Authentication related errors"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="UNAUTHORIZED",
            message=message,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(BaseAPIException):
    """Authorization related errors"""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="FORBIDDEN",
            message=message,
        )


class RateLimitError(BaseAPIException):
    """Rate limiting / lockout errors"""

    def __init__(
        self,
        message: str = "Rate limited. Try again later.",
        retry_after: int = 60,
    ):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="RATE_LIMITED",
            message=message,
            details={"retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )


class InternalServerError(BaseAPIException):
    """Internal server errors - generic message only"""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="INTERNAL_ERROR",
            message=message,
        )


class ServiceUnavailableError(BaseAPIException):
    """External dependency timed out - caller may retry"""

    def __init__(self, message: str = "Service temporarily unavailable", retry_after: int = 5):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="SERVICE_UNAVAILABLE",
            message=message,
            headers={"Retry-After": str(retry_after)},
        )
