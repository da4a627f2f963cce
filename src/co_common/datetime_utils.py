"""UTC helpers for ledger rows and audit timestamps."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_utc_ms(dt: datetime) -> str:
    """Audit sheet timestamp: 2025-10-18T09:30:00.000Z.

    Naive values are taken as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
