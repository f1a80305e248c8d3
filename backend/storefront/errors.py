"""
Application Error Classes

AppError carries a code, an HTTP status and a request id; the global handler
renders it as ``{"success": false, "error": {...}}``.

Payment operations raise the PaymentError family. Those render as
``{"ok": false, "error": <message>}`` so browser polling code can treat every
failure the same way:

    ConfigError             500  provider not configured
    PaymentValidationError  400  bad input or state (403/404 via ``status``)
    ProviderError           502  gateway transport or parse failure
    StateConflictError      409  stale token or lost race
"""
from typing import Optional, Any
from uuid import uuid4


# Error code type
ErrorCode = str


class AppError(Exception):
    """
    Application error class for consistent error handling.

    Attributes:
        code: Error code (e.g., 'VALIDATION_ERROR', 'PROVIDER_ERROR')
        status: HTTP status code
        details: Additional error details (for internal logging)
        request_id: UUID for request tracing
    """

    def __init__(
        self,
        code: ErrorCode,
        status: int,
        details: Optional[Any] = None,
        request_id: Optional[str] = None,
    ):
        self.code = code
        self.status = status
        self.details = details
        self.request_id = request_id or str(uuid4())
        self.name = "AppError"
        super().__init__(code)

    def to_dict(self, is_production: bool = True) -> dict:
        """
        Convert error to JSON-serializable dict.

        Args:
            is_production: If True, hide internal details

        Returns:
            Error response dictionary
        """
        response = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self._get_public_message() if is_production else self.code,
                "requestId": self.request_id,
            },
        }

        # Include details in non-production
        if not is_production and self.details:
            response["error"]["details"] = self.details

        return response

    def _get_public_message(self) -> str:
        """Get user-friendly message for error code."""
        messages = {
            "VALIDATION_ERROR": "The request is invalid.",
            "CONFLICT_ERROR": "The request conflicts with the current state.",
            "CONFIG_ERROR": "Payment provider is not configured.",
            "PROVIDER_ERROR": "Payment provider is unavailable. Please try again.",
            "INTERNAL_ERROR": "Internal server error.",
        }
        return messages.get(self.code, messages["INTERNAL_ERROR"])


class PaymentError(AppError):
    """Base class for payment workflow failures carrying a client-facing message."""

    default_code = "INTERNAL_ERROR"
    default_status = 500

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[Any] = None):
        super().__init__(self.default_code, status or self.default_status, details)
        self.message = message
        self.name = type(self).__name__

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict:
        return {"ok": False, "error": self.message}


class ConfigError(PaymentError):
    """Provider credentials or environment missing. Not retryable."""

    default_code = "CONFIG_ERROR"
    default_status = 500


class PaymentValidationError(PaymentError):
    """Bad id, wrong owner, invalid method or an operation invalid for the payable state."""

    default_code = "VALIDATION_ERROR"
    default_status = 400


class ProviderError(PaymentError):
    """Transport or parse failure talking to a payment gateway. Transient."""

    default_code = "PROVIDER_ERROR"
    default_status = 502


class StateConflictError(PaymentError):
    """Stale correlation token or a transition that lost a concurrent race."""

    default_code = "CONFLICT_ERROR"
    default_status = 409
