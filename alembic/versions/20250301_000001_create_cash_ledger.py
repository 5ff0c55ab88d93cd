"""Crear tablas de sesiones de caja, órdenes, bitácora y gastos

Revision ID: 20250301_000001
Revises:
Create Date: 2025-03-01 00:00:01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20250301_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _tenant_columns():
    return [
        sa.Column("tenant_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _tenant_indexes(table: str) -> None:
    op.create_index(f"ix_{table}_tenant_id", table, ["tenant_id"])
    op.create_index(f"ix_{table}_created_at", table, ["created_at"])


def upgrade() -> None:
    # ── cash_sessions ─────────────────────────────────
    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("employee_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("status", sa.Enum("OPEN", "CLOSED", name="sessionstatus"), nullable=False),
        sa.Column("initial_float", sa.Numeric(12, 2), nullable=False),
        sa.Column("expected_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("declared_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("difference", sa.Numeric(12, 2), nullable=True),
        sa.Column("opened_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("closed_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("closed_by_name", sa.String(150), nullable=True),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_tenant_columns(),
    )
    _tenant_indexes("cash_sessions")
    op.create_index("ix_cash_sessions_employee_id", "cash_sessions", ["employee_id"])
    op.create_index("ix_cash_sessions_status", "cash_sessions", ["status"])
    op.create_index("ix_cash_sessions_opened_at", "cash_sessions", ["opened_at"])
    op.create_index("ix_cash_sessions_closed_at", "cash_sessions", ["closed_at"])

    # ── orders ────────────────────────────────────────
    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("session_id", sa.Uuid(as_uuid=True), sa.ForeignKey("cash_sessions.id"), nullable=True),
        sa.Column("folio", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "CONFIRMED", "PREPARING", "READY", "ON_THE_WAY",
                    "DELIVERED", "COMPLETED", "CANCELLED", name="orderstatus"),
            nullable=False,
        ),
        sa.Column("order_type", sa.Enum("DINE_IN", "PICKUP", "DELIVERY", name="ordertype"), nullable=False),
        sa.Column("payment_method", sa.Enum("CASH", "CARD", "TRANSFER", name="paymentmethod"), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("customer_name", sa.String(150), nullable=True),
        sa.Column("table_number", sa.String(20), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("cash_cut_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        *_tenant_columns(),
        sa.UniqueConstraint("tenant_id", "folio", name="uq_order_tenant_folio"),
    )
    _tenant_indexes("orders")
    op.create_index("ix_orders_session_id", "orders", ["session_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_payment_method", "orders", ["payment_method"])
    op.create_index("ix_orders_cash_cut_id", "orders", ["cash_cut_id"])

    # ── order_audit_entries ───────────────────────────
    op.create_table(
        "order_audit_entries",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("order_id", sa.Uuid(as_uuid=True), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "action",
            sa.Enum("CREATED", "STATUS_CHANGE", "EDITED", "REOPENED", name="auditaction"),
            nullable=False,
        ),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("user", sa.String(150), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("order_id", "position", name="uq_audit_order_position"),
    )
    op.create_index("ix_order_audit_entries_order_id", "order_audit_entries", ["order_id"])

    # ── expenses ──────────────────────────────────────
    op.create_table(
        "expenses",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("session_id", sa.Uuid(as_uuid=True), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=True),
        *_tenant_columns(),
    )
    _tenant_indexes("expenses")
    op.create_index("ix_expenses_session_id", "expenses", ["session_id"])


def downgrade() -> None:
    op.drop_table("expenses")
    op.drop_table("order_audit_entries")
    op.drop_table("orders")
    op.drop_table("cash_sessions")
    if op.get_bind().dialect.name != "postgresql":
        return
    for enum_name in ("auditaction", "paymentmethod", "ordertype", "orderstatus", "sessionstatus"):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
