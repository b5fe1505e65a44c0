"""Typed domain exceptions carrying an error code and HTTP status."""
from typing import Any

from rentalshop.schemas.error import ErrorCode, get_error_message, get_status_code


class RentalShopError(Exception):
    """
    Base error for the billing engine.

    Args:
        code: Error code, also used as the translation key
        message: Human-readable message (defaults to the code's message)
        details: Structured context serialized with the error response
        status_code: HTTP status override (defaults to the code's status)
    """

    default_code = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ):
        self.code = code or self.default_code
        self.message = message or get_error_message(self.code)
        self.details = details or {}
        self.status_code = status_code or get_status_code(self.code)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the error envelope fields."""
        return {
            "success": False,
            "error": self.code.value,
            "message": self.message,
            "details": self.details or None,
        }


class ValidationError(RentalShopError):
    """Invalid input rejected before any state change."""

    default_code = ErrorCode.VALIDATION_ERROR


class NotFoundError(RentalShopError):
    """Referenced record does not exist."""

    default_code = ErrorCode.NOT_FOUND


class PlanLimitError(RentalShopError):
    """Merchant reached the plan limit for a resource type."""

    default_code = ErrorCode.PLAN_LIMIT_EXCEEDED


class SubscriptionAccessError(RentalShopError):
    """Subscription status does not allow the requested access."""

    default_code = ErrorCode.NO_SUBSCRIPTION


class InvalidStateTransitionError(RentalShopError):
    """Requested status change is not in the lifecycle transition table."""

    default_code = ErrorCode.INVALID_STATE_TRANSITION


class BusinessRuleError(RentalShopError):
    """Operation conflicts with a billing rule (duplicate subscription, inactive plan, ...)."""

    default_code = ErrorCode.BUSINESS_RULE_VIOLATION
