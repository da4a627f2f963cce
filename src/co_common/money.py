"""Integer arithmetic utilities for minor-unit (paise/cents) amounts.

All stored amounts are int minor units. Decimal is used only at the edges:
converting to the gateway's two-decimal major-unit wire format.
"""

from decimal import Decimal


def split_share(amount_cents: int, parts: int) -> int:
    """One part of amount_cents split `parts` ways, rounded half-up.

    Called against the *remaining* amount each time, so the last part
    always equals whatever is left: 100000 / 3 -> 33333, 66667 / 2 -> 33334,
    33333 / 1 -> 33333.
    """
    if amount_cents <= 0 or parts <= 0:
        return 0
    return (2 * amount_cents + parts) // (2 * parts)


def cents_to_major(cents: int) -> Decimal:
    """6500 -> Decimal('65.00')."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def cents_to_display(cents: int, currency: str = "INR") -> str:
    """Convert minor units to display string: 150000 -> 'INR 1,500.00'."""
    sign = "-" if cents < 0 else ""
    abs_cents = abs(cents)
    return f"{sign}{currency} {abs_cents // 100:,}.{abs_cents % 100:02d}"


def allocate(amount_cents: int, parts: int) -> list[int]:
    """Split amount_cents into `parts` shares that sum exactly to it.

    Same rounding as repeated split_share() calls: 100000 / 3 ->
    [33333, 33334, 33333].
    """
    shares: list[int] = []
    remaining = max(0, amount_cents)
    for left in range(parts, 0, -1):
        share = split_share(remaining, left)
        shares.append(share)
        remaining -= share
    return shares
