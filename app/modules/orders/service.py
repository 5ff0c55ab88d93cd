"""
Servicio de órdenes (Order Binder)

- Creación ligada al turno abierto del tenant, con snapshot de precios/costos
- Flujo de estados con bitácora
- Listados por etapa de liquidación y órdenes por liquidar

Una orden nunca se crea sin turno abierto: toda venta queda atribuida a una
sesión.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.common.exceptions import InvalidOrderState, NoOpenSession, OrderNotFound
from app.common.mixins import utcnow
from app.modules.cash_sessions.locking import tenant_session_lock
from app.modules.cash_sessions.service import CashSessionService
from app.modules.events import EventType, publish_event
from app.modules.orders.audit import AuditTrail, render_entries, status_change_details
from app.modules.orders.models import AuditAction, Order, OrderStatus, PaymentMethod
from app.modules.orders.schemas import OrderCreate, OrderUpdate
from app.modules.orders.settlement import SettlementStage, classify_order, stage_filter
from app.modules.reports.utils import normalize_date_range

logger = logging.getLogger(__name__)

# Flujo operativo; `completed` solo lo asigna el cierre de turno
STATUS_FLOW = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED],
    OrderStatus.CONFIRMED: [OrderStatus.PREPARING],
    OrderStatus.PREPARING: [OrderStatus.READY],
    OrderStatus.READY: [OrderStatus.ON_THE_WAY, OrderStatus.DELIVERED],
    OrderStatus.ON_THE_WAY: [OrderStatus.DELIVERED],
}

_CANCELLABLE = (
    OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING,
    OrderStatus.READY, OrderStatus.ON_THE_WAY,
)


def next_statuses(current: OrderStatus) -> List[OrderStatus]:
    allowed = list(STATUS_FLOW.get(current, []))
    if current in _CANCELLABLE:
        allowed.append(OrderStatus.CANCELLED)
    return allowed


def serialize_order(order: Order, include_audit: bool = False) -> Dict[str, Any]:
    """Orden con su clasificación de liquidación derivada en esta lectura."""
    settlement = classify_order(order)
    data = {
        "id": order.id,
        "folio": order.folio,
        "session_id": order.session_id,
        "status": order.status,
        "order_type": order.order_type,
        "payment_method": order.payment_method,
        "total": order.total,
        "items": order.items or [],
        "customer_name": order.customer_name,
        "table_number": order.table_number,
        "notes": order.notes,
        "cash_cut_id": order.cash_cut_id,
        "closed_at": order.closed_at,
        "completed_at": order.completed_at,
        "created_at": order.created_at,
        "settlement_stage": settlement.stage,
        "settlement_reference": settlement.reference,
    }
    if include_audit:
        data["audit_log"] = render_entries(order.audit_log)
    return data


class OrderService:
    """Servicio para ventas ligadas a sesiones de caja"""

    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order_data: OrderCreate, tenant_id: UUID,
                     user_id: Optional[UUID] = None, actor_name: str = "Sistema/Staff") -> Order:
        """
        Crear orden en el turno abierto.

        El folio se asigna bajo el lock del tenant, el mismo que serializa
        apertura y cierre, de modo que dos terminales no obtengan el mismo.
        """
        items = [item.snapshot() for item in order_data.items]
        total = sum((item.subtotal for item in order_data.items), Decimal("0.00"))

        try:
            with tenant_session_lock(self.db, tenant_id):
                session = CashSessionService(self.db).get_open_session(tenant_id)
                if not session:
                    raise NoOpenSession(
                        "No es posible crear la orden: no hay un turno de caja abierto. Abre la caja primero.",
                        tenant_id=tenant_id,
                        action="create_order",
                        order_type=order_data.order_type.value
                    )

                folio = (self.db.query(func.max(Order.folio)).filter(
                    Order.tenant_id == tenant_id
                ).scalar() or 0) + 1

                order = Order(
                    tenant_id=tenant_id,
                    session_id=session.id,
                    folio=folio,
                    status=order_data.status,
                    order_type=order_data.order_type,
                    payment_method=order_data.payment_method,
                    total=total,
                    items=items,
                    customer_name=order_data.customer_name,
                    table_number=order_data.table_number,
                    notes=order_data.notes,
                    created_by=user_id
                )
                if order_data.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
                    order.closed_at = utcnow()

                self.db.add(order)
                AuditTrail(self.db).append_entry(order, AuditAction.CREATED, "Orden creada", actor_name)
                self.db.commit()

            self.db.refresh(order)

            logger.info(f"Created order #{order.folio} ({order.id}) in session {session.id} total={total}")
            publish_event(EventType.ORDER_CREATED, tenant_id, {
                "order_id": order.id,
                "folio": order.folio,
                "session_id": session.id,
                "total": order.total,
                "payment_method": order.payment_method,
            })
            return order

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Error de integridad al crear la orden"
            )
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )

    def get_order(self, order_id: UUID, tenant_id: UUID) -> Order:
        order = self.db.query(Order).options(
            selectinload(Order.audit_log)
        ).filter(
            Order.id == order_id,
            Order.tenant_id == tenant_id
        ).first()

        if not order:
            raise OrderNotFound(
                "Orden no encontrada",
                tenant_id=tenant_id,
                action="get_order",
                order_id=order_id
            )
        return order

    def update_status(self, order_id: UUID, new_status: OrderStatus, tenant_id: UUID,
                      actor_name: str = "Sistema") -> Order:
        """Avanzar la orden en su flujo; entregar o cancelar marca la fecha de cierre."""
        try:
            order = self.get_order(order_id, tenant_id)
            if classify_order(order).is_settled:
                raise InvalidOrderState(
                    "La orden ya está liquidada; solo un administrador puede reabrirla",
                    tenant_id=tenant_id,
                    action="update_status",
                    order_id=order_id,
                    status=order.status.value
                )

            previous = order.status
            if new_status not in next_statuses(previous):
                raise InvalidOrderState(
                    f"Transición no permitida de {previous.value} a {new_status.value}",
                    tenant_id=tenant_id,
                    action="update_status",
                    order_id=order_id,
                    allowed=[s.value for s in next_statuses(previous)]
                )

            order.status = new_status
            if new_status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
                order.closed_at = utcnow()
            AuditTrail(self.db).append_entry(
                order, AuditAction.STATUS_CHANGE, status_change_details(previous, new_status), actor_name
            )

            self.db.commit()
            self.db.refresh(order)

            publish_event(EventType.ORDER_STATUS_CHANGED, tenant_id, {
                "order_id": order.id,
                "from": previous,
                "to": new_status,
            })
            return order

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )

    def update_order(self, order_id: UUID, order_data: OrderUpdate, tenant_id: UUID,
                     actor_name: str = "Sistema") -> Order:
        """Editar notas, cliente, mesa o tipo. El snapshot monetario no se toca."""
        try:
            order = self.get_order(order_id, tenant_id)
            if classify_order(order).is_settled:
                raise InvalidOrderState(
                    "No se puede editar una orden liquidada",
                    tenant_id=tenant_id,
                    action="update_order",
                    order_id=order_id
                )

            update_data = order_data.model_dump(exclude_unset=True)
            changed = [field for field, value in update_data.items() if getattr(order, field) != value]
            for field in changed:
                setattr(order, field, update_data[field])

            if changed:
                AuditTrail(self.db).append_entry(
                    order, AuditAction.EDITED, f"Orden editada ({', '.join(changed)})", actor_name
                )
            self.db.commit()
            self.db.refresh(order)
            return order

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )

    def get_orders(self, tenant_id: UUID, stage: Optional[SettlementStage] = None,
                   session_id: Optional[UUID] = None, start_date: Optional[date] = None,
                   end_date: Optional[date] = None, payment_method: Optional[PaymentMethod] = None,
                   limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        """
        Listado de órdenes por etapa:
        - active: operación en curso
        - pending_settlement: por liquidar
        - settled: historial liquidado
        """
        query = self.db.query(Order).filter(Order.tenant_id == tenant_id)

        if stage:
            query = query.filter(stage_filter(stage))
        if session_id:
            query = query.filter(Order.session_id == session_id)
        if start_date or end_date:
            start, end = normalize_date_range(start_date or end_date, end_date or start_date)
            query = query.filter(Order.created_at >= start, Order.created_at <= end)
        if payment_method:
            query = query.filter(Order.payment_method == payment_method)

        query = query.order_by(desc(Order.created_at))
        total = query.count()
        orders = query.offset(offset).limit(limit).all()

        return {
            "orders": orders,
            "total": total,
            "limit": limit,
            "offset": offset
        }

    def get_unsettled_orders(self, tenant_id: UUID) -> List[Order]:
        """
        Órdenes entregadas sin ningún marcador de liquidación.

        Tras un cierre con liquidación parcial, aquí reaparecen las órdenes que
        quedaron sin completar.
        """
        candidates = self.db.query(Order).filter(
            Order.tenant_id == tenant_id,
            Order.status == OrderStatus.DELIVERED,
            Order.cash_cut_id.is_(None)
        ).order_by(desc(Order.created_at)).all()

        return [
            order for order in candidates
            if classify_order(order).stage == SettlementStage.PENDING_SETTLEMENT
        ]

    def get_audit_log(self, order_id: UUID, tenant_id: UUID) -> List[Dict[str, Any]]:
        order = self.get_order(order_id, tenant_id)
        return render_entries(order.audit_log)
