"""Business exceptions shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; nothing here depends on it.
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base business exception"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderValidationException(DomainValidationException):
    """Malformed or missing order input, correctable by the client."""


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message=f"Order {order_id} not found",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[str] = None):
        details = {"user_id": user_id} if user_id else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class OrderAssignmentConflictException(BusinessException):
    """Another driver won the race, or the order already has a driver."""

    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_CONFLICT,
            message=f"Order {order_id} is already assigned to another driver",
            error_type="OrderAssignmentConflict",
            details={"order_id": order_id},
        )


class OrderNotAssignableException(BusinessException):
    """Order exists but is cancelled, unpaid, expired or past pending."""

    def __init__(self, order_id: str, reason: str):
        super().__init__(
            code=BusinessCode.ORDER_INVALID_STATE,
            message=f"Order {order_id} is not available for assignment: {reason}",
            error_type="OrderNotAssignable",
            details={"order_id": order_id, "reason": reason},
        )


class DriverNotEligibleException(BusinessException):
    def __init__(self, driver_id: str):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="User is not an active driver",
            error_type="DriverNotEligible",
            details={"driver_id": driver_id},
        )


class OrderNotAssignedToDriverException(BusinessException):
    def __init__(self, order_id: str, driver_id: str):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=f"Order {order_id} is not assigned to this driver",
            error_type="OrderNotAssignedToDriver",
            details={"order_id": order_id, "driver_id": driver_id},
        )


class InvalidTransitionException(BusinessException):
    def __init__(self, current: str, target: str):
        terminal = current in {"delivered", "cancelled"}
        message = f"Cannot change status from {current} to {target}"
        if terminal:
            message += ". This order is already completed"
        super().__init__(
            code=BusinessCode.INVALID_TRANSITION,
            message=message,
            error_type="InvalidTransition",
            details={"current": current, "target": target},
            field="status",
        )
        self.current = current
        self.target = target


class InvalidCouponException(BusinessException):
    def __init__(self, code: str, reason: Optional[str] = None):
        super().__init__(
            code=BusinessCode.INVALID_COUPON,
            message=reason or "Invalid coupon",
            error_type="InvalidCoupon",
            details={"coupon_code": code},
            field="coupon_code",
        )


class DuplicateWebhookEventException(BusinessException):
    """Raised by the ledger when an event id has already been recorded."""

    def __init__(self, event_id: str):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message=f"Webhook event {event_id} already recorded",
            error_type="DuplicateWebhookEvent",
            details={"event_id": event_id},
        )
        self.event_id = event_id


class PaymentAlreadyExistsException(BusinessException):
    """Raised when a payment mirror for the same Stripe reference already exists."""

    def __init__(self, stripe_reference: str):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message=f"Payment {stripe_reference} already recorded",
            error_type="PaymentAlreadyExists",
            details={"stripe_reference": stripe_reference},
        )
        self.stripe_reference = stripe_reference


class TransientDeliveryError(BusinessException):
    """Downstream push/SMS/email/invoice failure. Always recovered locally."""

    def __init__(self, message: str, *, channel: str, details: Optional[dict] = None):
        full_details = {"channel": channel}
        if details:
            full_details.update(details)
        super().__init__(
            code=BusinessCode.NETWORK_ERROR,
            message=message,
            error_type="TransientDeliveryError",
            details=full_details,
        )
        self.channel = channel
