"""004: create refunds ledger

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE refunds (
            id                          VARCHAR(64)     PRIMARY KEY,
            kind                        VARCHAR(32)     NOT NULL,
            booking_id                  VARCHAR(64),
            booking_variant             VARCHAR(16),
            registration_id             VARCHAR(64),
            user_id                     VARCHAR(64),
            user_email                  VARCHAR(255),
            user_name                   VARCHAR(255),
            amount_cents                BIGINT          NOT NULL,
            currency                    VARCHAR(3)      NOT NULL DEFAULT 'INR',
            reason                      VARCHAR(255),
            order_id                    VARCHAR(128),
            gateway                     VARCHAR(16)     NOT NULL DEFAULT 'NONE',
            refund_id                   VARCHAR(64),
            gateway_refund_id           VARCHAR(64),
            gateway_payment_id          VARCHAR(64),
            status                      VARCHAR(32)     NOT NULL,
            status_description          VARCHAR(500),
            slot_signature              VARCHAR(64),
            membership_credit_restored  BOOLEAN         NOT NULL DEFAULT FALSE,
            meta                        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_refunds_kind CHECK (
                kind IN ('SLOT_CANCEL', 'BOOKING_CANCEL', 'REGISTRATION_CANCEL')
            ),
            CONSTRAINT ck_refunds_gateway CHECK (gateway IN ('NONE', 'GATEWAY')),
            CONSTRAINT ck_refunds_status CHECK (
                status IN ('NO_REFUND_REQUIRED', 'PENDING', 'SUCCESS', 'FAILED')
            ),
            CONSTRAINT ck_refunds_amount_gte_0 CHECK (amount_cents >= 0),
            CONSTRAINT ck_refunds_reference CHECK (
                booking_id IS NOT NULL OR registration_id IS NOT NULL
            ),
            CONSTRAINT ck_refunds_signature_variant CHECK (
                slot_signature IS NULL OR booking_variant IS NOT NULL
            )
        );
    """)
    # Retried no-gateway cancellations hit this index instead of inserting twice.
    # Account and guest bookings may share an id, so the variant is part of the key.
    op.execute("""
        CREATE UNIQUE INDEX uq_refunds_booking_slot
        ON refunds (booking_variant, booking_id, slot_signature)
        WHERE slot_signature IS NOT NULL;
    """)
    op.execute("CREATE INDEX idx_refunds_time ON refunds (created_at DESC, id DESC);")
    op.execute("CREATE INDEX idx_refunds_pending ON refunds (status) WHERE status = 'PENDING';")
    op.execute("COMMENT ON TABLE refunds IS 'Refund ledger: append-only, rows are never deleted';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS refunds CASCADE;")
