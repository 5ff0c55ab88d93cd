"""
Servicio de gastos de caja.

Un gasto siempre se registra contra la sesión abierta del tenant y resta del
efectivo esperado en el cierre.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from app.common.exceptions import InvalidAmount, NoOpenSession
from app.modules.cash_sessions.service import CashSessionService
from app.modules.events import EventType, publish_event
from app.modules.expenses.models import Expense
from app.modules.expenses.schemas import ExpenseCreate
from app.modules.reports.services.reconciliation import to_money
from app.modules.reports.utils import normalize_date_range

logger = logging.getLogger(__name__)


class ExpenseService:

    def __init__(self, db: Session):
        self.db = db

    def create_expense(self, expense_data: ExpenseCreate, tenant_id: UUID,
                       user_id: Optional[UUID] = None) -> Expense:
        if expense_data.amount is None or expense_data.amount <= 0:
            raise InvalidAmount(
                "El monto del gasto debe ser mayor a cero",
                tenant_id=tenant_id,
                action="create_expense",
                amount=str(expense_data.amount)
            )

        try:
            session = CashSessionService(self.db).get_open_session(tenant_id)
            if not session:
                raise NoOpenSession(
                    "No es posible registrar el gasto: no hay un turno de caja abierto",
                    tenant_id=tenant_id,
                    action="create_expense"
                )

            expense = Expense(
                tenant_id=tenant_id,
                session_id=session.id,
                amount=to_money(expense_data.amount),
                category=expense_data.category,
                description=expense_data.description,
                created_by=user_id
            )
            self.db.add(expense)
            self.db.commit()
            self.db.refresh(expense)

            logger.info(f"Registered expense {expense.id} ({expense.amount}) in session {session.id}")
            publish_event(EventType.EXPENSE_CREATED, tenant_id, {
                "expense_id": expense.id,
                "session_id": session.id,
                "amount": expense.amount,
                "category": expense.category,
            })
            return expense

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error interno del servidor: {str(e)}"
            )

    def get_expenses(self, tenant_id: UUID, session_id: Optional[UUID] = None,
                     start_date: Optional[date] = None, end_date: Optional[date] = None,
                     category: Optional[str] = None, limit: int = 50,
                     offset: int = 0) -> Dict[str, Any]:
        query = self.db.query(Expense).filter(Expense.tenant_id == tenant_id)

        if session_id:
            query = query.filter(Expense.session_id == session_id)
        if start_date or end_date:
            start, end = normalize_date_range(start_date or end_date, end_date or start_date)
            query = query.filter(Expense.created_at >= start, Expense.created_at <= end)
        if category:
            query = query.filter(Expense.category == category)

        total = query.count()
        total_amount = query.with_entities(func.coalesce(func.sum(Expense.amount), 0)).scalar()
        expenses = query.order_by(desc(Expense.created_at)).offset(offset).limit(limit).all()

        return {
            "expenses": expenses,
            "total": total,
            "total_amount": to_money(total_amount or Decimal("0")),
            "limit": limit,
            "offset": offset
        }
