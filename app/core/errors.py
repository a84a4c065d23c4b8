"""
Application error taxonomy.

Every error carries a machine-readable code, a human message and an HTTP
status. `details` is merged into the JSON failure payload, which is how quota
failures ship their numeric usage snapshot to the client.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 500
    error_code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        self.message = message or self.default_message
        self.details = details or {}
        self.original_exception = original_exception
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"error": self.error_code, "message": self.message}
        payload.update(self.details)
        return payload


class Unauthenticated(AppError):
    status_code = 401
    error_code = "UNAUTHORIZED"
    default_message = "Please sign in to continue"


class Forbidden(AppError):
    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "You do not have access to this resource"


class NotFound(AppError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    error_code = "CONFLICT"
    default_message = "Resource already exists"


class InvalidInput(AppError):
    status_code = 400
    error_code = "INVALID_INPUT"
    default_message = "Invalid input provided"


class SubscriptionRequired(AppError):
    status_code = 402
    error_code = "SUBSCRIPTION_REQUIRED"
    default_message = "This article requires a subscription to access"


class InsufficientQuota(AppError):
    status_code = 403
    error_code = "INSUFFICIENT_TOKENS"
    default_message = "You do not have enough tokens for this operation. Please upgrade to continue."

    def __init__(
        self,
        tokens_used: int,
        limit: int,
        tokens_remaining: int,
        message: Optional[str] = None,
        estimated_tokens: Optional[int] = None,
        required_tokens: Optional[int] = None,
    ):
        details: Dict[str, Any] = {
            "tokensUsed": tokens_used,
            "limit": limit,
            "tokensRemaining": tokens_remaining,
            "upgradeRequired": True,
        }
        if estimated_tokens is not None:
            details["estimatedTokens"] = estimated_tokens
        if required_tokens is not None:
            details["requiredTokens"] = required_tokens
        super().__init__(message, details=details)
        self.tokens_used = tokens_used
        self.limit = limit
        self.tokens_remaining = tokens_remaining
        self.estimated_tokens = estimated_tokens
        self.required_tokens = required_tokens
        # Nothing left at all is reported separately so the UI can show the upgrade wall
        if tokens_remaining <= 0:
            self.error_code = "TOKEN_LIMIT_REACHED"


class EmptyContent(AppError):
    status_code = 400
    error_code = "EMPTY_CONTENT"
    default_message = "No content found in the article"


class ExtractionFailed(AppError):
    status_code = 400
    error_code = "CONTENT_EXTRACTION_FAILED"
    default_message = "Failed to extract content"


class NetworkError(AppError):
    status_code = 503
    error_code = "NETWORK_ERROR"
    default_message = "Network error while contacting an external service"


class GenerationError(AppError):
    status_code = 502
    error_code = "GENERATION_ERROR"
    default_message = "The generation service failed"


class StorageUnavailable(AppError):
    status_code = 503
    error_code = "DATABASE_UNAVAILABLE"
    default_message = "Database is temporarily unavailable. Please try again later."


class StorageNotProvisioned(StorageUnavailable):
    error_code = "DATABASE_NOT_SETUP"
    default_message = "Articles table does not exist. Please run the database migration."


class WebhookVerificationFailed(AppError):
    status_code = 400
    error_code = "WEBHOOK_VERIFICATION_FAILED"
    default_message = "Webhook signature verification failed"


class ConfigurationError(AppError):
    status_code = 500
    error_code = "CONFIGURATION_ERROR"
    default_message = "Server misconfiguration"


class UnknownError(AppError):
    status_code = 500
    error_code = "UNKNOWN_ERROR"
    default_message = "Unknown error"


class PaymentProviderError(AppError):
    status_code = 502
    error_code = "PAYMENT_PROVIDER_ERROR"
    default_message = "Failed to reach the payment provider"
