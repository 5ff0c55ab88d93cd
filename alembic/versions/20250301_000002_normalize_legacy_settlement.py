"""Normalizar órdenes entregadas que ya tienen corte heredado

Revision ID: 20250301_000002
Revises: 20250301_000001
Create Date: 2025-03-01 00:00:02

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy.orm import Session

from app.modules.orders.maintenance import normalize_legacy_settlement

# revision identifiers, used by Alembic.
revision: str = "20250301_000002"
down_revision: Union[str, None] = "20250301_000001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Migración de datos; la clasificación de las órdenes no cambia
    db = Session(bind=op.get_bind())
    try:
        normalize_legacy_settlement(db)
    finally:
        db.close()


def downgrade() -> None:
    # Irreversible: no se distingue qué órdenes estaban en delivered
    pass
