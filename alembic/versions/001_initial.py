"""Initial schema: users and articles.

Startup also runs Base.metadata.create_all, so every statement is guarded
with IF NOT EXISTS and is safe on an already-provisioned database.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # ----- users -----
    conn.execute(sa.text(
        """
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(36) PRIMARY KEY,
            email VARCHAR NOT NULL UNIQUE,
            hashed_password VARCHAR,
            name VARCHAR,
            image VARCHAR,
            tier VARCHAR(16) NOT NULL DEFAULT 'trial',
            tokens_used INTEGER NOT NULL DEFAULT 0,
            token_limit INTEGER NOT NULL,
            subscription_status VARCHAR(16),
            subscription_expires_at TIMESTAMP WITH TIME ZONE,
            payment_reference VARCHAR,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP WITH TIME ZONE
        )
        """
    ))
    conn.execute(sa.text("CREATE INDEX IF NOT EXISTS ix_users_email ON users(email)"))

    # ----- articles -----
    conn.execute(sa.text(
        """
        CREATE TABLE IF NOT EXISTS articles (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(36) NOT NULL REFERENCES users (id) ON DELETE CASCADE,
            title VARCHAR(256) NOT NULL,
            original_content TEXT NOT NULL,
            translated_content TEXT NOT NULL,
            insights TEXT NOT NULL,
            input_type VARCHAR(8) NOT NULL,
            source_url VARCHAR,
            style VARCHAR(32) NOT NULL,
            tokens_used INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    ))
    conn.execute(sa.text("CREATE INDEX IF NOT EXISTS ix_articles_user_id ON articles(user_id)"))
    conn.execute(sa.text("CREATE INDEX IF NOT EXISTS ix_articles_created_at ON articles(created_at)"))
    # History listing filters by owner and sorts newest first
    conn.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS ix_articles_user_created ON articles(user_id, created_at)"
    ))


def downgrade() -> None:
    """Keep user data; no-op downgrade."""
    pass
