"""
Bitácora de auditoría de órdenes (append-only).

`append_entry` es la única primitiva de escritura. La entrada 0 de cada orden
es siempre CREATED y se muestra como "Apertura".
"""
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.common.mixins import utcnow
from app.modules.orders.models import Order, OrderAuditEntry, AuditAction, OrderStatus

ACTION_LABELS = {
    AuditAction.CREATED: "Apertura",
    AuditAction.STATUS_CHANGE: "Cambio de estado",
    AuditAction.EDITED: "Edición",
    AuditAction.REOPENED: "Reapertura",
}

STATUS_LABELS = {
    OrderStatus.PENDING: "Pendiente",
    OrderStatus.CONFIRMED: "Confirmado",
    OrderStatus.PREPARING: "En preparación",
    OrderStatus.READY: "Listo",
    OrderStatus.ON_THE_WAY: "En camino",
    OrderStatus.DELIVERED: "Entregado",
    OrderStatus.COMPLETED: "Liquidado",
    OrderStatus.CANCELLED: "Cancelado",
}


class AuditTrail:
    """Escritura y lectura de la bitácora de una orden"""

    def __init__(self, db: Session):
        self.db = db

    def append_entry(self, order: Order, action: AuditAction, details: Optional[str],
                     user: str) -> OrderAuditEntry:
        """
        Agrega una entrada al final de la bitácora. No hace commit; la entrada
        viaja en la misma transacción que el cambio que documenta.
        """
        position = len(order.audit_log)
        if position == 0 and action != AuditAction.CREATED:
            raise ValueError("La primera entrada de la bitácora debe ser CREATED")
        if position > 0 and action == AuditAction.CREATED:
            raise ValueError("CREATED solo puede ser la primera entrada de la bitácora")

        entry = OrderAuditEntry(
            position=position,
            action=action,
            details=details,
            user=user or "Sistema",
            timestamp=utcnow()
        )
        order.audit_log.append(entry)
        self.db.add(entry)
        return entry


def status_change_details(previous: OrderStatus, new: OrderStatus) -> str:
    return f"Estado cambiado de {STATUS_LABELS[previous]} a {STATUS_LABELS[new]}"


def render_entries(entries: List[OrderAuditEntry]) -> List[Dict]:
    """Entradas listas para mostrar al operador, en orden de inserción."""
    return [
        {
            "position": entry.position,
            "action": entry.action.value,
            "label": ACTION_LABELS[entry.action],
            "details": entry.details,
            "user": entry.user,
            "timestamp": entry.timestamp,
        }
        for entry in sorted(entries, key=lambda e: e.position)
    ]
