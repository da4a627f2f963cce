"""001: common functions, users and memberships

Revision ID: 001
Revises: 
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE users (
            id              VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            username        VARCHAR(64)     NOT NULL,
            email           VARCHAR(255)    NOT NULL,
            name            VARCHAR(255),
            phone           VARCHAR(32),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_users_username UNIQUE (username)
        );
    """)
    op.execute("CREATE UNIQUE INDEX uq_users_email_lower ON users (LOWER(email));")
    op.execute("""
        CREATE TRIGGER trg_users_updated_at
            BEFORE UPDATE ON users
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE memberships (
            id              VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            user_id         VARCHAR(64)     NOT NULL REFERENCES users (id) ON DELETE CASCADE,
            games           INTEGER         NOT NULL,
            games_used      INTEGER         NOT NULL DEFAULT 0,
            status          VARCHAR(16)     NOT NULL DEFAULT 'PENDING',
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_memberships_games_gte_0 CHECK (games >= 0),
            CONSTRAINT ck_memberships_games_used_range CHECK (games_used >= 0 AND games_used <= games),
            CONSTRAINT ck_memberships_status CHECK (status IN ('PENDING', 'PAID', 'FAILED'))
        );
    """)
    op.execute("""
        CREATE INDEX idx_memberships_user_paid
        ON memberships (user_id, created_at DESC)
        WHERE status = 'PAID';
    """)
    op.execute("""
        CREATE TRIGGER trg_memberships_updated_at
            BEFORE UPDATE ON memberships
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON COLUMN memberships.games_used IS 'Written only by MembershipCreditService';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS memberships CASCADE;")
    op.execute("DROP TABLE IF EXISTS users CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
