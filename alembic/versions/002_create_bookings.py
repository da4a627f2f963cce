"""002: create bookings and guest_bookings

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Shared by both tables; only the identity columns differ.
_COMMON = """
    id              VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
    order_id        VARCHAR(128),
    date            DATE            NOT NULL,
    slots           JSONB           NOT NULL DEFAULT '[]'::jsonb,
    amount_cents    BIGINT          NOT NULL DEFAULT 0,
    currency        VARCHAR(3)      NOT NULL DEFAULT 'INR',
    payment_method  VARCHAR(16)     NOT NULL,
    admin_paid      BOOLEAN         NOT NULL DEFAULT FALSE,
    booking_type    VARCHAR(16)     NOT NULL DEFAULT 'Normal',
    created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
"""


def _checks(table: str) -> str:
    return f"""
        CONSTRAINT ck_{table}_amount_gte_0 CHECK (amount_cents >= 0),
        CONSTRAINT ck_{table}_slots_array CHECK (jsonb_typeof(slots) = 'array'),
        CONSTRAINT ck_{table}_payment_method CHECK (payment_method IN ('CASH', 'ONLINE', 'MEMBERSHIP')),
        CONSTRAINT ck_{table}_booking_type CHECK (booking_type IN ('Normal', 'Special', 'Individual'))
    """


def upgrade() -> None:
    op.execute(f"""
        CREATE TABLE bookings (
            {_COMMON}
            user_id         VARCHAR(64),
            user_email      VARCHAR(255),
            user_name       VARCHAR(255),
            {_checks("bookings")}
        );
    """)
    op.execute(f"""
        CREATE TABLE guest_bookings (
            {_COMMON}
            guest_name      VARCHAR(255)    NOT NULL,
            guest_phone     VARCHAR(32),
            {_checks("guest_bookings")}
        );
    """)
    for table in ("bookings", "guest_bookings"):
        op.execute(f"CREATE INDEX idx_{table}_date ON {table} (date);")
        op.execute(f"CREATE INDEX idx_{table}_order ON {table} (order_id) WHERE order_id IS NOT NULL;")
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
        """)
    op.execute("CREATE INDEX idx_bookings_user ON bookings (user_id);")
    op.execute("COMMENT ON COLUMN bookings.slots IS 'JSON array of {court_id, start, end}; never empty while the row exists';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS guest_bookings CASCADE;")
    op.execute("DROP TABLE IF EXISTS bookings CASCADE;")
