"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class BookingVariant(str, Enum):
    """Which backing table holds a booking."""
    ACCOUNT = "account"
    GUEST = "guest"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    ONLINE = "ONLINE"
    MEMBERSHIP = "MEMBERSHIP"


class BookingType(str, Enum):
    NORMAL = "Normal"
    SPECIAL = "Special"
    INDIVIDUAL = "Individual"


class MembershipStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class PaymentPath(str, Enum):
    """Cancellation classification: decides which refund flow runs."""
    MEMBERSHIP = "MEMBERSHIP"
    NO_GATEWAY = "NO_GATEWAY"
    GATEWAY_PAID = "GATEWAY_PAID"


class RefundKind(str, Enum):
    SLOT_CANCEL = "SLOT_CANCEL"
    BOOKING_CANCEL = "BOOKING_CANCEL"
    REGISTRATION_CANCEL = "REGISTRATION_CANCEL"


class RefundGateway(str, Enum):
    NONE = "NONE"
    GATEWAY = "GATEWAY"


class RefundStatus(str, Enum):
    NO_REFUND_REQUIRED = "NO_REFUND_REQUIRED"
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
