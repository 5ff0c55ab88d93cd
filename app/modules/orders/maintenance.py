"""
Normalización única de marcadores de liquidación heredados.

Las órdenes que quedaron dentro de un corte heredado (`cash_cut_id`) pero
siguen en `delivered` se pasan a `completed`, de modo que ambos marcadores
coincidan. La clasificación no cambia: ya estaban liquidadas.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.common.mixins import utcnow
from app.modules.orders.audit import AuditTrail, status_change_details
from app.modules.orders.models import AuditAction, Order, OrderStatus

logger = logging.getLogger(__name__)


def normalize_legacy_settlement(db: Session, tenant_id: Optional[UUID] = None) -> int:
    """Retorna cuántas órdenes se normalizaron."""
    query = db.query(Order).filter(
        Order.cash_cut_id.isnot(None),
        Order.status == OrderStatus.DELIVERED
    )
    if tenant_id:
        query = query.filter(Order.tenant_id == tenant_id)

    now = utcnow()
    trail = AuditTrail(db)
    count = 0
    for order in query.all():
        order.status = OrderStatus.COMPLETED
        order.completed_at = order.completed_at or now
        # Órdenes heredadas sin bitácora se dejan sin entradas
        if order.audit_log:
            trail.append_entry(
                order, AuditAction.STATUS_CHANGE,
                f"{status_change_details(OrderStatus.DELIVERED, OrderStatus.COMPLETED)} (normalización de corte)",
                "Sistema"
            )
        count += 1

    db.commit()
    logger.info(f"Normalized {count} legacy settled order(s)")
    return count
