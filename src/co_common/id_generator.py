"""Business ID generators.

Gateway idempotency keys and synthetic order ids share one shape:
  <prefix>_<epoch-ms>_<6 base36 chars>
e.g. refund_1760949124241_4jicdh, admin_1760949124241_x81kq2.
"""

import secrets
import string
import time
import uuid

_ALPHABET = string.digits + string.ascii_lowercase

# Order ids minted by the console itself, never seen by the payment gateway.
SYNTHETIC_ORDER_PREFIXES = ("admin_", "memfree_")


def _suffix(length: int = 6) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_tagged_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{_suffix()}"


def generate_refund_key() -> str:
    """Local idempotency key sent to the gateway as refund_id."""
    return generate_tagged_id("refund")


def generate_record_id() -> str:
    return str(uuid.uuid4())


def is_synthetic_order_id(order_id: str | None) -> bool:
    if not order_id:
        return False
    return order_id.startswith(SYNTHETIC_ORDER_PREFIXES)
