"""
Password reset tables.

- users: minimal credential store behind SqlUserDirectory.
- otp_tokens: bcrypt-hashed 6-digit codes with attempt accounting.
- reset_tokens: single-use opaque tokens minted after OTP verification.
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic.
revision = "20261017_01_password_reset_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("email_confirmed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("length(email) > 0", name="ck_users_email_not_blank"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "otp_tokens",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("otp_hash", sa.String(length=255), nullable=False),
        sa.Column("purpose", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("max_attempts", sa.Integer(), server_default=sa.text("5"), nullable=False),
        sa.Column("used", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_otp_tokens"),
    )
    op.create_index(
        "ix_otp_tokens_active_by_email_purpose",
        "otp_tokens",
        ["email", "purpose"],
        postgresql_where=sa.text("used = false"),
    )
    op.create_index("ix_otp_tokens_expires_at", "otp_tokens", ["expires_at"])

    op.create_table(
        "reset_tokens",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("token", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_reset_tokens"),
        sa.UniqueConstraint("token", name="uq_reset_tokens_token"),
    )
    op.create_index("ix_reset_tokens_email", "reset_tokens", ["email"])
    op.create_index("ix_reset_tokens_expires_at", "reset_tokens", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_reset_tokens_expires_at", table_name="reset_tokens")
    op.drop_index("ix_reset_tokens_email", table_name="reset_tokens")
    op.drop_table("reset_tokens")
    op.drop_index("ix_otp_tokens_expires_at", table_name="otp_tokens")
    op.drop_index("ix_otp_tokens_active_by_email_purpose", table_name="otp_tokens")
    op.drop_table("otp_tokens")
    op.drop_table("users")
