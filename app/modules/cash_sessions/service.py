"""
Servicio de sesiones de caja (Session Manager)

- Apertura con la regla de una sola sesión abierta por tenant
- Cierre con arqueo: esperado = fondo inicial + ventas entregadas en efectivo - gastos
- Liquidación best-effort de las órdenes contadas y de las canceladas del turno
- Historial, detalle con deriva y vista previa del arqueo ciego

Apertura y cierre corren bajo tenant_session_lock; la sesión abierta se lee en
cada operación, nunca se guarda en memoria.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.common.exceptions import (
    InvalidAmount, NoOpenSession, SessionClosed, SessionConflict, SessionNotFound
)
from app.common.mixins import utcnow
from app.modules.cash_sessions.locking import tenant_session_lock
from app.modules.cash_sessions.models import CashSession, SessionStatus
from app.modules.events import EventType, publish_event
from app.modules.expenses.models import Expense
from app.modules.orders.audit import AuditTrail, status_change_details
from app.modules.orders.models import AuditAction, Order, OrderStatus
from app.modules.reports.services.reconciliation import (
    ReconciliationService, expected_balance, summarize, to_money
)

logger = logging.getLogger(__name__)

# Montos que el cajero no ve mientras el turno está abierto
BLIND_FIELDS = (
    "initial_float", "expected_amount", "total_sales", "total_expenses",
    "net_profit", "by_payment", "avg_ticket",
)


def blind_summary(summary: Dict[str, Any]) -> Dict[str, Any]:
    masked = dict(summary)
    for field in BLIND_FIELDS:
        masked[field] = None
    return masked


class CashSessionService:
    """Servicio para gestión de turnos de caja"""

    def __init__(self, db: Session):
        self.db = db

    # ===== LECTURAS =====

    def get_open_session(self, tenant_id: UUID) -> Optional[CashSession]:
        """
        Sesión abierta actual del tenant, o None si no hay turno abierto.

        Con datos heredados puede haber más de una; se toma la más reciente.
        """
        sessions = self.db.query(CashSession).filter(
            CashSession.tenant_id == tenant_id,
            CashSession.status == SessionStatus.OPEN
        ).order_by(desc(CashSession.opened_at)).all()

        if len(sessions) > 1:
            logger.warning(
                f"Tenant {tenant_id} has {len(sessions)} open sessions; "
                f"using most recent {sessions[0].id}"
            )
        return sessions[0] if sessions else None

    def get_session(self, session_id: UUID, tenant_id: UUID) -> CashSession:
        session = self.db.query(CashSession).filter(
            CashSession.id == session_id,
            CashSession.tenant_id == tenant_id
        ).first()
        if not session:
            raise SessionNotFound(
                "Sesión de caja no encontrada",
                tenant_id=tenant_id,
                action="get_session",
                session_id=session_id
            )
        return session

    def get_sessions(self, tenant_id: UUID, status: Optional[SessionStatus] = None,
                     limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        """Historial de sesiones, más recientes primero"""
        query = self.db.query(CashSession).filter(CashSession.tenant_id == tenant_id)
        if status:
            query = query.filter(CashSession.status == status)

        query = query.order_by(desc(CashSession.opened_at))
        total = query.count()
        sessions = query.offset(offset).limit(limit).all()

        return {
            "sessions": sessions,
            "total": total,
            "limit": limit,
            "offset": offset
        }

    # ===== APERTURA =====

    def open_session(self, tenant_id: UUID, user_id: Optional[UUID], initial_float: Decimal,
                     employee_id: Optional[UUID] = None, notes: Optional[str] = None) -> CashSession:
        """Abrir turno de caja"""
        if initial_float is None or Decimal(str(initial_float)) < 0:
            raise InvalidAmount(
                "El fondo inicial no puede ser negativo",
                tenant_id=tenant_id,
                action="open_session",
                initial_float=str(initial_float)
            )

        try:
            with tenant_session_lock(self.db, tenant_id):
                existing_open = self.get_open_session(tenant_id)
                if existing_open:
                    raise SessionConflict(
                        "Ya hay un turno abierto; ciérralo antes de abrir otro",
                        tenant_id=tenant_id,
                        action="open_session",
                        open_session_id=existing_open.id
                    )

                now = utcnow()
                new_session = CashSession(
                    tenant_id=tenant_id,
                    employee_id=employee_id,
                    status=SessionStatus.OPEN,
                    initial_float=to_money(initial_float),
                    opened_by=user_id,
                    opened_at=now,
                    notes=notes
                )
                self.db.add(new_session)
                self.db.commit()

            self.db.refresh(new_session)
            logger.info(f"Opened cash session {new_session.id} for tenant {tenant_id}")
            publish_event(EventType.SESSION_OPENED, tenant_id, {
                "session_id": new_session.id,
                "employee_id": employee_id,
                "initial_float": new_session.initial_float,
            })
            return new_session

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Error de integridad al abrir la sesión"
            )
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )

    # ===== CIERRE =====

    def close_session(self, session_id: UUID, tenant_id: UUID, declared_amount: Decimal,
                      user_id: Optional[UUID] = None, closed_by_name: Optional[str] = None,
                      notes: Optional[str] = None) -> CashSession:
        """
        Cerrar turno con arqueo.

        El cierre de la sesión se confirma antes de liquidar las órdenes; si la
        liquidación falla para algunas, el cierre no se revierte (quedan en
        `delivered` y vuelven a aparecer en las órdenes por liquidar).
        """
        if declared_amount is None or Decimal(str(declared_amount)) < 0:
            raise InvalidAmount(
                "El monto declarado no puede ser negativo",
                tenant_id=tenant_id,
                action="close_session",
                session_id=session_id,
                declared_amount=str(declared_amount)
            )

        try:
            with tenant_session_lock(self.db, tenant_id):
                session = self.get_session(session_id, tenant_id)
                if session.status != SessionStatus.OPEN:
                    raise SessionClosed(
                        "La sesión ya está cerrada",
                        tenant_id=tenant_id,
                        action="close_session",
                        session_id=session_id,
                        closed_at=session.closed_at.isoformat() if session.closed_at else None
                    )

                orders = self.db.query(Order).filter(
                    Order.tenant_id == tenant_id,
                    Order.session_id == session_id,
                    Order.status == OrderStatus.DELIVERED
                ).all()
                expenses = self.db.query(Expense).filter(
                    Expense.tenant_id == tenant_id,
                    Expense.session_id == session_id
                ).all()

                cancelled_ids = [row.id for row in self.db.query(Order.id).filter(
                    Order.tenant_id == tenant_id,
                    Order.session_id == session_id,
                    Order.status == OrderStatus.CANCELLED,
                    Order.cash_cut_id.is_(None)
                ).all()]

                summary = summarize(orders, expenses)
                expected = expected_balance(session.initial_float, summary)
                declared = to_money(declared_amount)

                session.status = SessionStatus.CLOSED
                session.expected_amount = expected
                session.declared_amount = declared
                session.difference = declared - expected
                session.closed_at = utcnow()
                session.closed_by = user_id
                session.closed_by_name = closed_by_name
                if notes:
                    session.notes = f"{session.notes}\n{notes}" if session.notes else notes

                counted_order_ids = list(summary["order_ids"])
                self.db.commit()

            logger.info(
                f"Closed cash session {session_id} for tenant {tenant_id}: "
                f"expected={expected} declared={declared} difference={declared - expected}"
            )

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )

        failed = self._settle_counted_orders(session_id, tenant_id, counted_order_ids + cancelled_ids,
                                             closed_by_name or "Sistema")

        session = self.get_session(session_id, tenant_id)
        publish_event(EventType.SESSION_CLOSED, tenant_id, {
            "session_id": session.id,
            "expected_amount": session.expected_amount,
            "declared_amount": session.declared_amount,
            "difference": session.difference,
            "order_count": len(counted_order_ids),
            "cancelled_count": len(cancelled_ids),
            "unsettled_order_ids": failed,
        })
        return session

    def _settle_counted_orders(self, session_id: UUID, tenant_id: UUID,
                               order_ids: List[UUID], actor: str) -> List[UUID]:
        """
        Liquida las órdenes del cierre: las entregadas pasan a `completed` y las
        canceladas quedan marcadas con la sesión en `cash_cut_id`.

        Primero intenta todo en una transacción; si falla, reintenta orden por
        orden. Retorna los ids que no se pudieron liquidar.
        """
        if not order_ids:
            return []

        now = utcnow()
        try:
            for order in self._counted_orders(tenant_id, order_ids):
                self._settle_order(order, now, actor)
            self.db.commit()
            return []
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Batch settlement failed for session {session_id}, retrying per order: {e}")

        failed = []
        for order_id in order_ids:
            try:
                for order in self._counted_orders(tenant_id, [order_id]):
                    self._settle_order(order, now, actor)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Could not settle order {order_id} of session {session_id}: {e}")
                failed.append(order_id)

        if failed:
            logger.warning(
                f"PartialCloseFailure: session {session_id} (tenant {tenant_id}) is closed but "
                f"{len(failed)} order(s) remain unsettled: {', '.join(str(i) for i in failed)}"
            )
        return failed

    def _counted_orders(self, tenant_id: UUID, order_ids: List[UUID]) -> List[Order]:
        return self.db.query(Order).filter(
            Order.tenant_id == tenant_id,
            Order.id.in_(order_ids),
            Order.status.in_((OrderStatus.DELIVERED, OrderStatus.CANCELLED))
        ).all()

    def _settle_order(self, order: Order, settled_at: datetime, actor: str) -> None:
        if order.status == OrderStatus.CANCELLED:
            # Cancelada: no suma al arqueo, solo sale de "Por liquidar"
            order.cash_cut_id = order.session_id
            AuditTrail(self.db).append_entry(
                order, AuditAction.STATUS_CHANGE, "Orden cancelada liquidada (cierre de turno)", actor
            )
            return

        previous = order.status
        order.status = OrderStatus.COMPLETED
        order.completed_at = settled_at
        AuditTrail(self.db).append_entry(
            order, AuditAction.STATUS_CHANGE,
            f"{status_change_details(previous, OrderStatus.COMPLETED)} (cierre de turno)",
            actor
        )

    # ===== VISTAS =====

    def get_session_detail(self, session_id: UUID, tenant_id: UUID,
                           reveal_expected: bool = True) -> Dict[str, Any]:
        """
        Sesión con su resumen vivo.

        En sesiones cerradas, `drift` compara lo registrado al cierre contra lo
        que hoy está liquidado; una orden reabierta lo hace distinto de cero.
        Mientras la sesión está abierta, sin `reveal_expected` el resumen va
        sin montos (arqueo ciego).
        """
        session = self.get_session(session_id, tenant_id)
        reconciliation = ReconciliationService(self.db, tenant_id)
        live = reconciliation.summarize_session(session_id)
        blind = session.status == SessionStatus.OPEN and not reveal_expected
        if blind:
            live = blind_summary(live)

        detail = {
            "session": session,
            "summary": live,
            "live_expected_amount": live["expected_amount"],
            "drift": None,
            "warning": None,
            "blind": blind,
        }

        if session.status == SessionStatus.CLOSED and session.expected_amount is not None:
            settled_orders = reconciliation.session_orders(session_id, statuses=(OrderStatus.COMPLETED,))
            settled = summarize(settled_orders, reconciliation.session_expenses(session_id))
            drift = expected_balance(session.initial_float, settled) - to_money(session.expected_amount)
            detail["drift"] = drift
            unsettled = reconciliation.session_orders(session_id, statuses=(OrderStatus.DELIVERED,))
            if drift != 0 or unsettled:
                detail["warning"] = (
                    f"El arqueo registrado no coincide con las órdenes liquidadas actuales "
                    f"(diferencia {drift}); {len(unsettled)} orden(es) de esta sesión "
                    f"están reabiertas o sin liquidar"
                )
        return detail

    def get_blind_cut_preview(self, tenant_id: UUID, reveal_expected: bool) -> Dict[str, Any]:
        """
        Resumen del turno abierto para el arqueo.

        Fondo, ventas, gastos y esperado solo se muestran a admins; el cajero
        ve cuántas órdenes hay, no cuánto suman.
        """
        session = self.get_open_session(tenant_id)
        if not session:
            raise NoOpenSession(
                "No hay un turno abierto para arquear",
                tenant_id=tenant_id,
                action="blind_cut_preview"
            )

        live = ReconciliationService(self.db, tenant_id).summarize_session(session.id)
        if not reveal_expected:
            live = blind_summary(live)
        return {
            "session_id": session.id,
            "initial_float": live["initial_float"],
            "summary": live,
            "expected_amount": live["expected_amount"],
            "expected_revealed": reveal_expected,
        }
