"""Failure taxonomy for the wholesale core.

Every failure carries a stable ``kind`` (how callers must react), a
machine-readable ``code`` and a human-readable message, plus structured
``details`` for explaining the failure to an end user.
"""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    TRANSIENT_CONFLICT = "transient_conflict"
    NOT_FOUND = "not_found"
    SYSTEM = "system"


class ErrorCode(Enum):
    AUTHORIZATION_INSUFFICIENT_PERMISSIONS = "1010"
    PRODUCT_NOT_FOUND = "2001"
    PRODUCT_INSUFFICIENT_INVENTORY = "2003"
    PRODUCT_INVALID_STATUS = "2005"
    ORDER_NOT_FOUND = "3001"
    ORDER_INVALID_STATUS_TRANSITION = "3007"
    VALIDATION_FAILED = "8001"
    SYSTEM_DATABASE_ERROR = "9001"
    SYSTEM_RATE_LIMIT_EXCEEDED = "9003"
    SYSTEM_UNKNOWN_ERROR = "9999"


class WholesaleError(Exception):
    """Base class for every failure raised by the wholesale core."""

    kind: ErrorKind = ErrorKind.SYSTEM
    code: ErrorCode = ErrorCode.SYSTEM_UNKNOWN_ERROR
    default_message = "Unexpected failure"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT_CONFLICT

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class ValidationFailedError(WholesaleError):
    kind = ErrorKind.VALIDATION
    code = ErrorCode.VALIDATION_FAILED
    default_message = "Input is not valid"


# ---------------------------------------------------------------------------
# Business-rule rejections
# ---------------------------------------------------------------------------
class BusinessRuleViolation(WholesaleError):
    kind = ErrorKind.BUSINESS_RULE


class InsufficientInventoryError(BusinessRuleViolation):
    code = ErrorCode.PRODUCT_INSUFFICIENT_INVENTORY
    default_message = "Insufficient inventory"

    def __init__(self, product_id: str, current_inventory: int, requested_decrease: int) -> None:
        super().__init__(
            f"Insufficient inventory: {current_inventory} available, {requested_decrease} requested",
            product_id=product_id,
            current_inventory=current_inventory,
            requested_decrease=requested_decrease,
        )


class NegativeInventoryError(BusinessRuleViolation):
    code = ErrorCode.PRODUCT_INVALID_STATUS
    default_message = "Inventory cannot be negative"

    def __init__(self, product_id: str, requested_inventory: int) -> None:
        super().__init__(
            self.default_message,
            product_id=product_id,
            requested_inventory=requested_inventory,
        )


class ProductNotOrderableError(BusinessRuleViolation):
    code = ErrorCode.PRODUCT_INVALID_STATUS
    default_message = "Product cannot be ordered in the requested quantity"

    def __init__(self, product_id: str, status: str, inventory: int, requested_quantity: int) -> None:
        super().__init__(
            self.default_message,
            product_id=product_id,
            status=status,
            inventory=inventory,
            requested_quantity=requested_quantity,
        )


class InvalidTransitionError(BusinessRuleViolation):
    code = ErrorCode.ORDER_INVALID_STATUS_TRANSITION
    default_message = "Invalid order status transition"

    def __init__(self, current_status: str, requested_status: str, allowed_transitions: list[str]) -> None:
        super().__init__(
            f"Cannot transition from {current_status} to {requested_status}",
            current_status=current_status,
            requested_status=requested_status,
            allowed_transitions=allowed_transitions,
        )


class UnauthorizedActorError(BusinessRuleViolation):
    code = ErrorCode.AUTHORIZATION_INSUFFICIENT_PERMISSIONS
    default_message = "Insufficient permissions"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message, **details)


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------
class EntityNotFoundError(WholesaleError):
    kind = ErrorKind.NOT_FOUND


class ProductNotFoundError(EntityNotFoundError):
    code = ErrorCode.PRODUCT_NOT_FOUND
    default_message = "Product not found"

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product {product_id} not found", product_id=product_id)


class OrderNotFoundError(EntityNotFoundError):
    code = ErrorCode.ORDER_NOT_FOUND
    default_message = "Order not found"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found", order_id=order_id)


# ---------------------------------------------------------------------------
# Transient conflicts
# ---------------------------------------------------------------------------
class TransientConflictError(WholesaleError):
    kind = ErrorKind.TRANSIENT_CONFLICT
    code = ErrorCode.SYSTEM_DATABASE_ERROR
    default_message = "The record is being modified concurrently, try again"


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------
class SystemFailure(WholesaleError):
    kind = ErrorKind.SYSTEM


class MutationTimeoutError(SystemFailure):
    code = ErrorCode.SYSTEM_DATABASE_ERROR
    default_message = "The operation timed out and was rolled back"


class StorageUnavailableError(SystemFailure):
    code = ErrorCode.SYSTEM_DATABASE_ERROR
    default_message = "Storage is unavailable"


class RateLimitedError(SystemFailure):
    code = ErrorCode.SYSTEM_RATE_LIMIT_EXCEEDED
    default_message = "Too many requests, try again later"
