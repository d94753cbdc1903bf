"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the bridge.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    UNAUTHORIZED = "ERR_1004"
    FORBIDDEN = "ERR_1005"
    RATE_LIMITED = "ERR_1006"

    # Configuration errors (2xxx)
    CONFIGURATION_ERROR = "ERR_2001"

    # Inbound event errors (3xxx)
    INVALID_EVENT = "ERR_3001"

    # Webhook delivery errors (5xxx)
    WEBHOOK_DELIVERY_FAILED = "ERR_5001"
    WEBHOOK_RATE_LIMITED = "ERR_5002"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ConfigurationError(AppException):
    """Raised when a required setting is missing or invalid"""

    def __init__(self, setting: str, message: str | None = None):
        super().__init__(
            message=message or f"Missing or invalid setting: {setting}",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            details={"setting": setting}
        )


class InvalidEventError(AppException):
    """Raised when an inbound host event cannot be parsed"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_EVENT,
            status_code=400,
            details=details
        )


class WebhookDeliveryError(AppException):
    """Raised when the Discord webhook rejects a message"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.WEBHOOK_DELIVERY_FAILED,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = "discord"
        # HTTP status returned by Discord (status_code is the one we answer with)
        self.response_status = status_code

    @classmethod
    def from_response(
        cls,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "WebhookDeliveryError":
        """
        Build the error from an HTTP response in a consistent way.

        Args:
            response: response object (e.g. httpx.Response)
            message: custom message (built from the status when omitted)
            max_response_chars: cap on the stored response_text
        """
        status_code = getattr(response, "status_code", None)
        response_text = (getattr(response, "text", "") or "")[:max_response_chars]
        return cls(
            message=message or f"Discord webhook failed: {status_code} {response_text}".strip(),
            status_code=status_code,
            details={
                "status_code": status_code,
                "response_text": response_text,
            },
        )


class WebhookRateLimitError(WebhookDeliveryError):
    """Raised when Discord is still rate limiting after the single retry"""

    def __init__(
        self,
        message: str,
        status_code: int | None = 429,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            details=details,
            error_code=ErrorCode.WEBHOOK_RATE_LIMITED,
        )
        self.status_code = 429
