"""Error codes and the response envelope shared by every endpoint."""
import enum
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from rentalshop.utils.time import utcnow

T = TypeVar("T")


class ErrorCode(str, enum.Enum):
    """
    Machine-readable error codes.

    Values double as translation keys for client-side message tables.
    """

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"

    # Subscription access errors (402)
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
    SUBSCRIPTION_CANCELLED = "SUBSCRIPTION_CANCELLED"
    SUBSCRIPTION_PAUSED = "SUBSCRIPTION_PAUSED"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"

    # Authorization / quota errors (403)
    NO_SUBSCRIPTION = "NO_SUBSCRIPTION"
    PLAN_LIMIT_EXCEEDED = "PLAN_LIMIT_EXCEEDED"
    FEATURE_NOT_AVAILABLE = "FEATURE_NOT_AVAILABLE"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"
    MERCHANT_NOT_FOUND = "MERCHANT_NOT_FOUND"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    SUBSCRIPTION_NOT_FOUND = "SUBSCRIPTION_NOT_FOUND"

    # Conflict / business rule errors (409, 422)
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"

    # Infrastructure errors (500, 503)
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


ERROR_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.MISSING_REQUIRED_FIELD: 400,
    ErrorCode.SUBSCRIPTION_EXPIRED: 402,
    ErrorCode.SUBSCRIPTION_CANCELLED: 402,
    ErrorCode.SUBSCRIPTION_PAUSED: 402,
    ErrorCode.TRIAL_EXPIRED: 402,
    ErrorCode.NO_SUBSCRIPTION: 403,
    ErrorCode.PLAN_LIMIT_EXCEEDED: 403,
    ErrorCode.FEATURE_NOT_AVAILABLE: 403,
    ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.MERCHANT_NOT_FOUND: 404,
    ErrorCode.PLAN_NOT_FOUND: 404,
    ErrorCode.SUBSCRIPTION_NOT_FOUND: 404,
    ErrorCode.DUPLICATE_ENTRY: 409,
    ErrorCode.INVALID_STATE_TRANSITION: 409,
    ErrorCode.BUSINESS_RULE_VIOLATION: 422,
    ErrorCode.DATABASE_ERROR: 503,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
}

ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "Input validation failed",
    ErrorCode.INVALID_INPUT: "Invalid input provided",
    ErrorCode.MISSING_REQUIRED_FIELD: "Required field is missing",
    ErrorCode.SUBSCRIPTION_EXPIRED: "Subscription has expired",
    ErrorCode.SUBSCRIPTION_CANCELLED: "Subscription has been cancelled",
    ErrorCode.SUBSCRIPTION_PAUSED: "Subscription is paused",
    ErrorCode.TRIAL_EXPIRED: "Trial period has expired",
    ErrorCode.NO_SUBSCRIPTION: "No active subscription found",
    ErrorCode.PLAN_LIMIT_EXCEEDED: "Plan limit exceeded",
    ErrorCode.FEATURE_NOT_AVAILABLE: "Feature is not available on the current plan",
    ErrorCode.INSUFFICIENT_PERMISSIONS: "Insufficient permissions",
    ErrorCode.NOT_FOUND: "Resource not found",
    ErrorCode.MERCHANT_NOT_FOUND: "Merchant not found",
    ErrorCode.PLAN_NOT_FOUND: "Plan not found",
    ErrorCode.SUBSCRIPTION_NOT_FOUND: "Subscription not found",
    ErrorCode.DUPLICATE_ENTRY: "Record already exists",
    ErrorCode.INVALID_STATE_TRANSITION: "Subscription cannot move to the requested status",
    ErrorCode.BUSINESS_RULE_VIOLATION: "Business rule violation",
    ErrorCode.DATABASE_ERROR: "Database operation failed",
    ErrorCode.INTERNAL_SERVER_ERROR: "Internal server error",
}

# Remediation hints for common errors
REMEDIATION_HINTS: dict[ErrorCode, str] = {
    ErrorCode.PLAN_LIMIT_EXCEEDED: "Upgrade the subscription plan or remove unused records before creating new ones.",
    ErrorCode.SUBSCRIPTION_EXPIRED: "Renew the subscription to restore access.",
    ErrorCode.TRIAL_EXPIRED: "Choose a paid plan to continue using the platform.",
    ErrorCode.SUBSCRIPTION_PAUSED: "Resume the subscription to restore access.",
    ErrorCode.INVALID_STATE_TRANSITION: "Check the current subscription status before changing it.",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}


def get_status_code(code: ErrorCode) -> int:
    """HTTP status for an error code, defaulting to 500."""
    return ERROR_STATUS_CODES.get(code, 500)


def get_error_message(code: ErrorCode) -> str:
    """Default message for an error code."""
    return ERROR_MESSAGES.get(code, ERROR_MESSAGES[ErrorCode.INTERNAL_SERVER_ERROR])


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope: ``{success, data, message}``."""

    success: bool = Field(default=True, description="Whether the request succeeded")
    data: T | None = Field(default=None, description="Response payload")
    message: str | None = Field(default=None, description="Optional human-readable message")


class ErrorResponse(BaseModel):
    """Error envelope: ``{success: false, error, message}`` plus tracing details."""

    success: bool = Field(default=False, description="Always false for errors")
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Primary error message")
    details: Any | None = Field(default=None, description="Structured error context")
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=utcnow, description="Error timestamp")
