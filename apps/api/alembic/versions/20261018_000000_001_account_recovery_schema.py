"""Inventory, order and account recovery schema.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def _marketplace_order_table(name: str) -> None:
    op.create_table(
        name,
        *_base_columns(),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("assigned_code_id", sa.Integer(), nullable=True),
        sa.Column("assigned_code", sa.String(64), nullable=True),
        sa.Column("order_status", sa.String(32), nullable=True),
        sa.Column("order_time", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f(f"pk_{name}")),
        sa.UniqueConstraint("order_id", name=op.f(f"uq_{name}_order_id")),
    )
    op.create_index(op.f(f"ix_{name}_assigned_code_id"), name, ["assigned_code_id"])
    op.create_index(op.f(f"ix_{name}_assigned_code"), name, ["assigned_code"])


def upgrade() -> None:
    # Activation codes
    op.create_table(
        "redemption_codes",
        *_base_columns(),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("channel", sa.String(50), nullable=True),
        sa.Column("order_type", sa.String(32), nullable=True),
        sa.Column("is_redeemed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_by", sa.String(255), nullable=True),
        sa.Column("account_email", sa.String(255), nullable=True),
        sa.Column("reserved_for_entry_id", sa.Integer(), nullable=True),
        sa.Column("reserved_for_order_no", sa.String(64), nullable=True),
        sa.Column("reserved_for_uid", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_redemption_codes")),
        sa.UniqueConstraint("code", name=op.f("uq_redemption_codes_code")),
    )
    op.create_index(op.f("ix_redemption_codes_channel"), "redemption_codes", ["channel"])
    op.create_index(op.f("ix_redemption_codes_is_redeemed"), "redemption_codes", ["is_redeemed"])
    op.create_index(op.f("ix_redemption_codes_redeemed_at"), "redemption_codes", ["redeemed_at"])
    op.create_index(
        op.f("ix_redemption_codes_account_email"), "redemption_codes", ["account_email"]
    )

    # Provisioned accounts
    op.create_table(
        "gpt_accounts",
        *_base_columns(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("chatgpt_account_id", sa.String(255), nullable=True),
        sa.Column("expire_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("invite_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_banned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ban_processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_gpt_accounts")),
        sa.UniqueConstraint("email", name=op.f("uq_gpt_accounts_email")),
    )
    op.create_index(op.f("ix_gpt_accounts_is_banned"), "gpt_accounts", ["is_banned"])

    # Orders
    op.create_table(
        "purchase_orders",
        *_base_columns(),
        sa.Column("order_no", sa.String(64), nullable=False),
        sa.Column("code_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(64), nullable=True),
        sa.Column("order_type", sa.String(32), nullable=True),
        sa.Column("service_days", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="paid"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_purchase_orders")),
        sa.UniqueConstraint("order_no", name=op.f("uq_purchase_orders_order_no")),
    )
    op.create_index(op.f("ix_purchase_orders_code_id"), "purchase_orders", ["code_id"])
    op.create_index(op.f("ix_purchase_orders_code"), "purchase_orders", ["code"])

    op.create_table(
        "credit_orders",
        *_base_columns(),
        sa.Column("order_no", sa.String(64), nullable=False),
        sa.Column("code_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(64), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="paid"),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_credit_orders")),
        sa.UniqueConstraint("order_no", name=op.f("uq_credit_orders_order_no")),
    )
    op.create_index(op.f("ix_credit_orders_code_id"), "credit_orders", ["code_id"])
    op.create_index(op.f("ix_credit_orders_code"), "credit_orders", ["code"])

    _marketplace_order_table("xianyu_orders")
    _marketplace_order_table("xhs_orders")

    # Recovery ledger (append-only)
    op.create_table(
        "account_recovery_logs",
        *_base_columns(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("original_code_id", sa.Integer(), nullable=False),
        sa.Column("original_redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("original_account_email", sa.String(255), nullable=True),
        sa.Column("recovery_mode", sa.String(32), nullable=True),
        sa.Column("recovery_code_id", sa.Integer(), nullable=True),
        sa.Column("recovery_code", sa.String(64), nullable=True),
        sa.Column("recovery_account_email", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_account_recovery_logs")),
    )
    op.create_index(
        op.f("ix_account_recovery_logs_email"), "account_recovery_logs", ["email"]
    )
    op.create_index(
        op.f("ix_account_recovery_logs_original_code_id"),
        "account_recovery_logs",
        ["original_code_id"],
    )
    op.create_index(
        op.f("ix_account_recovery_logs_recovery_code_id"),
        "account_recovery_logs",
        ["recovery_code_id"],
    )

    # Settings documents
    op.create_table(
        "system_config",
        *_base_columns(),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_system_config")),
        sa.UniqueConstraint("key", name=op.f("uq_system_config_key")),
    )


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("system_config")
    op.drop_table("account_recovery_logs")
    op.drop_table("xhs_orders")
    op.drop_table("xianyu_orders")
    op.drop_table("credit_orders")
    op.drop_table("purchase_orders")
    op.drop_table("gpt_accounts")
    op.drop_table("redemption_codes")
