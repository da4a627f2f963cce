"""003: create events and registrations

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE events (
            id              VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            title           VARCHAR(255)    NOT NULL,
            start_date      DATE            NOT NULL,
            end_date        DATE            NOT NULL,
            entry_fee_cents BIGINT,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_events_fee_gte_0 CHECK (entry_fee_cents IS NULL OR entry_fee_cents >= 0)
        );
    """)
    op.execute("""
        CREATE TABLE registrations (
            id              VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            event_id        VARCHAR(64)     NOT NULL REFERENCES events (id),
            event_title     VARCHAR(255),
            user_id         VARCHAR(64),
            user_email      VARCHAR(255),
            user_name       VARCHAR(255),
            order_id        VARCHAR(128),
            amount_cents    BIGINT,
            currency        VARCHAR(3)      NOT NULL DEFAULT 'INR',
            admin_paid      BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_registrations_amount_gte_0 CHECK (amount_cents IS NULL OR amount_cents >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_registrations_event ON registrations (event_id);")
    for table in ("events", "registrations"):
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
        """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS registrations CASCADE;")
    op.execute("DROP TABLE IF EXISTS events CASCADE;")
