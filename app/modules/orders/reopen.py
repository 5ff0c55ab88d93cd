"""
Reapertura administrativa de órdenes liquidadas.

Reabrir quita los marcadores de liquidación de la orden y la devuelve a
"Por liquidar". Nunca modifica la sesión dueña: los montos registrados en su
cierre se conservan tal cual, y la diferencia se reporta como aviso.
"""
import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.common.exceptions import InvalidOrderState, NotAuthorized
from app.modules.cash_sessions.models import CashSession, SessionStatus
from app.modules.events import EventType, publish_event
from app.modules.orders.audit import AuditTrail
from app.modules.orders.models import AuditAction, OrderStatus
from app.modules.orders.service import OrderService
from app.modules.orders.settlement import SettlementStage, classify_order, resolve_owning_session

logger = logging.getLogger(__name__)


class OrderReopenService:

    def __init__(self, db: Session):
        self.db = db

    def reopen_order(self, order_id: UUID, tenant_id: UUID, actor_name: str,
                     is_admin: bool) -> Dict[str, Any]:
        if not is_admin:
            raise NotAuthorized(
                "Solo un administrador puede reabrir órdenes",
                tenant_id=tenant_id,
                action="reopen_order",
                order_id=order_id
            )

        try:
            order = OrderService(self.db).get_order(order_id, tenant_id)
            settlement = classify_order(order)
            if settlement.stage == SettlementStage.ACTIVE:
                raise InvalidOrderState(
                    "La orden sigue en operación; no hay nada que reabrir",
                    tenant_id=tenant_id,
                    action="reopen_order",
                    order_id=order_id,
                    status=order.status.value
                )

            owning_session_id = resolve_owning_session(order)
            previous_status = order.status

            order.cash_cut_id = None
            if order.status == OrderStatus.COMPLETED:
                order.status = OrderStatus.DELIVERED
                order.completed_at = None

            AuditTrail(self.db).append_entry(
                order, AuditAction.REOPENED, "Orden reabierta por administrador", actor_name
            )
            self.db.commit()
            self.db.refresh(order)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )

        warning = None
        session = None
        if order.session_id:
            session = self.db.query(CashSession).filter(
                CashSession.id == order.session_id,
                CashSession.tenant_id == tenant_id
            ).first()
        if session and session.status == SessionStatus.CLOSED and settlement.is_settled:
            warning = (
                f"La orden #{order.folio} pertenece a una sesión cerrada; "
                f"el arqueo registrado de esa sesión ya no coincide con sus órdenes liquidadas"
            )
            logger.warning(
                f"Reopened order {order.id} of closed session {session.id} (tenant {tenant_id})"
            )
        else:
            logger.info(f"Reopened order {order.id} (tenant {tenant_id})")

        publish_event(EventType.ORDER_REOPENED, tenant_id, {
            "order_id": order.id,
            "previous_status": previous_status,
            "owning_session_id": owning_session_id,
        })

        return {
            "order": order,
            "session_id": owning_session_id,
            "warning": warning,
        }
