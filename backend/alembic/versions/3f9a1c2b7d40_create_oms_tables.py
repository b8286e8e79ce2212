"""create oms tables

Revision ID: 3f9a1c2b7d40
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2b7d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLE = sa.Enum("retailer", "wholesaler", "distributor", "customer", name="role")
ORDER_STATUS = sa.Enum(
    "pending",
    "confirmed",
    "preparing",
    "ready",
    "completed",
    "rejected",
    "cancelled",
    "expired",
    name="order_status",
)
PAYMENT_STATUS = sa.Enum("unpaid", "paid", "refunded", name="payment_status")
PAYMENT_METHOD = sa.Enum("cash", "upi", "card", "online", name="payment_method")


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("username", sa.String(200), nullable=False, unique=True),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        sa.CheckConstraint("total_quantity >= 0", name="ck_product_total_qty_nonneg"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_product_tenant_name"),
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"])

    op.create_table(
        "stock_batches",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_number", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_batch_qty_nonneg"),
    )
    op.create_index("ix_stock_batches_product_id", "stock_batches", ["product_id"])
    op.create_index("ix_stock_batches_fefo", "stock_batches", ["tenant_id", "product_id", "expiry_date"])

    op.create_table(
        "orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("customer_tenant_id", sa.String(64), nullable=True),
        sa.Column("customer_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("customer_name", sa.String(200), nullable=True),
        sa.Column("customer_phone", sa.String(32), nullable=True),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", ORDER_STATUS, nullable=False, server_default="pending"),
        sa.Column("payment_status", PAYMENT_STATUS, nullable=False, server_default="unpaid"),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=True),
        sa.Column("store_name", sa.String(255), nullable=True),
        sa.Column("store_address", sa.Text(), nullable=True),
        sa.Column("estimated_ready_minutes", sa.Integer(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _ts("expires_at", nullable=True),
        _ts("pickup_time", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("total >= 0", name="ck_order_total_nonneg"),
    )
    op.create_index("ix_orders_tenant_status", "orders", ["tenant_id", "status", "created_at"])
    op.create_index("ix_orders_status_expires", "orders", ["status", "expires_at"])
    op.create_index("ix_orders_customer", "orders", ["customer_id", "created_at"])

    op.create_table(
        "order_lines",
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("position", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_line_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_order_line_unit_price_nonneg"),
    )

    op.create_table(
        "batch_allocations",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("stock_batches.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _ts("released_at", nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("quantity > 0", name="ck_batch_allocation_qty_pos"),
    )
    op.create_index("ix_batch_allocations_order_id", "batch_allocations", ["order_id"])

    op.create_table(
        "order_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("actor_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_role", sa.String(32), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_order_events_order_time", "order_events", ["order_id", "created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("ix_notifications_tenant_user", "notifications", ["tenant_id", "user_id", "read"])
    op.create_index("ix_notifications_created", "notifications", ["created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("order_events")
    op.drop_table("batch_allocations")
    op.drop_table("order_lines")
    op.drop_table("orders")
    op.drop_table("stock_batches")
    op.drop_table("products")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (PAYMENT_METHOD, PAYMENT_STATUS, ORDER_STATUS, ROLE):
        enum.drop(bind, checkfirst=True)
