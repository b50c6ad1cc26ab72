"""
Application error types

Services raise these; the handlers registered in ``app.main`` turn them into
``{"success": false, "error": ..., "message": ...}`` responses.
"""
from typing import Optional, Dict, Any
from fastapi import status


class AppError(Exception):
    """Base class for errors that map to an HTTP response"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidSubscriptionError(AppError):
    """Billing provider rejected the purchase or it has already expired"""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_SUBSCRIPTION"

    def __init__(self, message: str = "Invalid subscription"):
        super().__init__(message)


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHORIZED"

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class SubscriptionRequiredError(ForbiddenError):
    error_code = "SUBSCRIPTION_REQUIRED"

    def __init__(self, message: str = "Subscription required"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class ConflictError(AppError):
    """A store uniqueness constraint rejected the write"""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message)


class VerificationFailedError(AppError):
    """Billing provider call failed or timed out; safe for the caller to retry"""

    error_code = "VERIFICATION_FAILED"

    def __init__(self, message: str = "Error verifying subscription"):
        super().__init__(message)


class DeliveryFailedError(AppError):
    """Push provider call failed or timed out"""

    error_code = "DELIVERY_FAILED"

    def __init__(self, message: str = "Failed to send notification"):
        super().__init__(message)


class WebhookDecodeError(AppError):
    error_code = "WEBHOOK_DECODE_FAILED"

    def __init__(self, message: str = "Error processing webhook"):
        super().__init__(message)
