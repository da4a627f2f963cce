"""Payment-path classification and refund amounts: pure functions."""

from src.co_booking.domain.models import Booking
from src.co_common.enums import PaymentMethod, PaymentPath
from src.co_common.id_generator import is_synthetic_order_id
from src.co_common.money import split_share


def is_membership_booking(booking: Booking) -> bool:
    if booking.is_guest:
        return False
    return (
        booking.amount_cents <= 0
        or booking.payment_method == PaymentMethod.MEMBERSHIP
        or not booking.order_id
    )


def is_no_gateway_booking(booking: Booking) -> bool:
    return (
        booking.is_guest
        or booking.payment_method in (PaymentMethod.CASH, PaymentMethod.MEMBERSHIP)
        or not booking.order_id
        or is_synthetic_order_id(booking.order_id)
        or booking.amount_cents <= 0
    )


def classify(booking: Booking) -> PaymentPath:
    """First match wins: MEMBERSHIP, then NO_GATEWAY, else GATEWAY_PAID."""
    if is_membership_booking(booking):
        return PaymentPath.MEMBERSHIP
    if is_no_gateway_booking(booking):
        return PaymentPath.NO_GATEWAY
    return PaymentPath.GATEWAY_PAID


def slot_refund_cents(booking: Booking) -> int:
    """One slot's share of what is left; the last slot takes the remainder."""
    return split_share(booking.amount_cents, len(booking.slots))


def booking_refund_cents(booking: Booking) -> int:
    return max(0, booking.amount_cents)
