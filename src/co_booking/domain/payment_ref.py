"""Legacy payment reference tag derived from the (PaymentMethod, paid) pair.

Bookings store the explicit pair. The dotted tag ("PAID.CASH", "UNPAID.CASH",
"MEMBERSHIP", ...) is only a display/audit format and is never parsed back.
"""

from src.co_common.enums import PaymentMethod


def format_payment_ref(method: PaymentMethod, paid: bool) -> str:
    """(CASH, True) -> 'PAID.CASH'; (MEMBERSHIP, *) -> 'MEMBERSHIP'."""
    if method == PaymentMethod.MEMBERSHIP:
        return PaymentMethod.MEMBERSHIP.value
    return f"{'PAID' if paid else 'UNPAID'}.{method.value}"
