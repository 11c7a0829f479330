"""Pass engine core tables.

Revision ID: 20260115_01
Revises:
Create Date: 2026-01-15
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20260115_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(name=name, create_type=False)


def upgrade() -> None:
    op.execute("CREATE TYPE pass_tier_enum AS ENUM ('free', 'pixel', 'silicon', 'quantum')")
    op.execute("CREATE TYPE pass_status_enum AS ENUM ('active', 'cancelled', 'refunded')")
    op.execute("CREATE TYPE pass_claim_status_enum AS ENUM ('pending', 'verified', 'expired', 'cancelled')")
    op.execute("CREATE TYPE pass_upgrade_status_enum AS ENUM ('completed')")
    op.execute("CREATE TYPE pass_transaction_kind_enum AS ENUM ('purchase', 'upgrade')")
    op.execute(
        "CREATE TYPE pass_transaction_status_enum AS ENUM "
        "('pending', 'completed', 'failed', 'refund_pending', 'refunded')"
    )
    op.execute("CREATE TYPE webhook_provider_enum AS ENUM ('ticketing', 'identity')")

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.String(length=128), nullable=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("affiliation", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "passes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("pass_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("tier", _enum("pass_tier_enum"), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("status", _enum("pass_status_enum"), nullable=False, server_default="active"),
        sa.Column("booking_id", sa.String(length=128), nullable=True),
        sa.Column("external_order_id", sa.String(length=128), nullable=True),
        sa.Column("external_ticket_id", sa.String(length=128), nullable=True),
        sa.Column("qr_payload", sa.String(), nullable=True),
        sa.Column("ticket_details", sa.JSON(), nullable=True),
        sa.Column("document_url", sa.String(), nullable=True),
        sa.Column("original_tier", _enum("pass_tier_enum"), nullable=True),
        sa.Column("upgraded_from", _enum("pass_tier_enum"), nullable=True),
        sa.Column("upgraded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_passes_user_id", "passes", ["user_id"])
    op.create_index("ix_passes_booking_id", "passes", ["booking_id"])
    op.create_index("ix_passes_external_order_id", "passes", ["external_order_id"])
    op.create_index("ix_passes_external_ticket_id", "passes", ["external_ticket_id"])
    op.create_index(
        "uq_passes_one_active_per_user",
        "passes",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "pass_upgrades",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "pass_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("passes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("from_tier", _enum("pass_tier_enum"), nullable=False),
        sa.Column("to_tier", _enum("pass_tier_enum"), nullable=False),
        sa.Column("fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("original_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("new_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", _enum("pass_upgrade_status_enum"), nullable=False, server_default="completed"),
        sa.Column("payment_reference", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_pass_upgrades_pass_id", "pass_upgrades", ["pass_id"])

    op.create_table(
        "pass_claims",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("requested_tier", sa.String(length=64), nullable=True),
        sa.Column("booking_id", sa.String(length=128), nullable=True),
        sa.Column("external_order_id", sa.String(length=128), nullable=True),
        sa.Column("ticket_number", sa.String(length=128), nullable=True),
        sa.Column("qr_payload", sa.String(), nullable=True),
        sa.Column("document_url", sa.String(), nullable=True),
        sa.Column("extracted_data", sa.JSON(), nullable=True),
        sa.Column("status", _enum("pass_claim_status_enum"), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "verified_pass_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("passes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_pass_claims_user_id", "pass_claims", ["user_id"])
    op.create_index("ix_pass_claims_expires_at", "pass_claims", ["expires_at"])
    op.create_index(
        "uq_pass_claims_pending_booking",
        "pass_claims",
        ["user_id", "booking_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending' AND booking_id IS NOT NULL"),
    )

    op.create_table(
        "pass_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "pass_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("passes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "upgrade_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("pass_upgrades.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("kind", _enum("pass_transaction_kind_enum"), nullable=False),
        sa.Column("tier", _enum("pass_tier_enum"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="INR"),
        sa.Column("provider_order_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("provider_payment_id", sa.String(length=128), nullable=True),
        sa.Column("status", _enum("pass_transaction_status_enum"), nullable=False, server_default="pending"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_pass_transactions_user_id", "pass_transactions", ["user_id"])
    op.create_index("ix_pass_transactions_provider_payment_id", "pass_transactions", ["provider_payment_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider", _enum("webhook_provider_enum"), nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("provider", "external_id", name="uq_webhook_events_provider_external"),
    )


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_index("ix_pass_transactions_provider_payment_id", table_name="pass_transactions")
    op.drop_index("ix_pass_transactions_user_id", table_name="pass_transactions")
    op.drop_table("pass_transactions")
    op.drop_index("uq_pass_claims_pending_booking", table_name="pass_claims")
    op.drop_index("ix_pass_claims_expires_at", table_name="pass_claims")
    op.drop_index("ix_pass_claims_user_id", table_name="pass_claims")
    op.drop_table("pass_claims")
    op.drop_index("ix_pass_upgrades_pass_id", table_name="pass_upgrades")
    op.drop_table("pass_upgrades")
    op.drop_index("uq_passes_one_active_per_user", table_name="passes")
    op.drop_index("ix_passes_external_ticket_id", table_name="passes")
    op.drop_index("ix_passes_external_order_id", table_name="passes")
    op.drop_index("ix_passes_booking_id", table_name="passes")
    op.drop_index("ix_passes_user_id", table_name="passes")
    op.drop_table("passes")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_external_id", table_name="users")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS webhook_provider_enum")
    op.execute("DROP TYPE IF EXISTS pass_transaction_status_enum")
    op.execute("DROP TYPE IF EXISTS pass_transaction_kind_enum")
    op.execute("DROP TYPE IF EXISTS pass_upgrade_status_enum")
    op.execute("DROP TYPE IF EXISTS pass_claim_status_enum")
    op.execute("DROP TYPE IF EXISTS pass_status_enum")
    op.execute("DROP TYPE IF EXISTS pass_tier_enum")
