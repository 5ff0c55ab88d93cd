"""
Clasificación de liquidación de órdenes.

Una orden está en uno de tres estados derivados:

- ACTIVE: en operación (no entregada, no cancelada, sin marcador de cierre)
- PENDING_SETTLEMENT: entregada o cancelada, todavía sin liquidar ("Por liquidar")
- SETTLED: liquidada, ya sea por un corte heredado (`cash_cut_id`) o por el
  cierre de su sesión (`status = completed`)

Es la única fuente de verdad para todas las vistas que listan órdenes y se
recalcula en cada lectura porque ambos marcadores cambian por separado.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import and_, not_, or_

from app.modules.orders.models import Order, OrderStatus

_FINISHED_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class SettlementStage(str, Enum):
    ACTIVE = "active"
    PENDING_SETTLEMENT = "pending_settlement"
    SETTLED = "settled"


@dataclass(frozen=True)
class Settlement:
    stage: SettlementStage
    reference: Optional[UUID] = None  # corte o sesión que liquidó la orden

    @property
    def is_settled(self) -> bool:
        return self.stage == SettlementStage.SETTLED


def _present(value: Any) -> bool:
    """None, cadena vacía y campo ausente cuentan igual: sin marcador."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _status_of(order) -> Optional[OrderStatus]:
    raw = getattr(order, "status", None)
    if raw is None or isinstance(raw, OrderStatus):
        return raw
    try:
        return OrderStatus(raw)
    except ValueError:
        return None


def classify_order(order) -> Settlement:
    """Resuelve la etapa de liquidación y la sesión/corte dueña de la orden."""
    cash_cut_id = getattr(order, "cash_cut_id", None)
    if _present(cash_cut_id):
        return Settlement(SettlementStage.SETTLED, cash_cut_id)

    status = _status_of(order)
    if status == OrderStatus.COMPLETED:
        session_id = getattr(order, "session_id", None)
        return Settlement(SettlementStage.SETTLED, session_id if _present(session_id) else None)

    if status in _FINISHED_STATUSES:
        return Settlement(SettlementStage.PENDING_SETTLEMENT)

    return Settlement(SettlementStage.ACTIVE)


def resolve_owning_session(order) -> Optional[UUID]:
    """
    Referencia a la sesión (o corte heredado) dueña de la orden.

    Órdenes liquidadas devuelven su referencia de liquidación; el resto
    devuelve la sesión a la que se ligaron al crearse.
    """
    settlement = classify_order(order)
    if settlement.reference is not None:
        return settlement.reference
    session_id = getattr(order, "session_id", None)
    return session_id if _present(session_id) else None


def stage_filter(stage: SettlementStage):
    """Expresión SQL equivalente a classify_order para una etapa."""
    settled = or_(Order.cash_cut_id.isnot(None), Order.status == OrderStatus.COMPLETED)
    if stage == SettlementStage.SETTLED:
        return settled
    if stage == SettlementStage.PENDING_SETTLEMENT:
        return and_(not_(settled), Order.status.in_(_FINISHED_STATUSES))
    return and_(not_(settled), Order.status.notin_(_FINISHED_STATUSES))
