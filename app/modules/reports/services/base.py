"""
Base service class for Reports module

Provides common functionality for all report services including
database session management, tenant filtering, and common queries.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.modules.cash_sessions.models import CashSession
from app.modules.orders.models import Order
from app.modules.expenses.models import Expense


class BaseReportService:
    """Base service class for all report services"""

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _get_base_order_query(self):
        """Get base query for orders with tenant filtering"""
        return self.db.query(Order).filter(
            Order.tenant_id == self.tenant_id
        )

    def _get_base_expense_query(self):
        """Get base query for expenses with tenant filtering"""
        return self.db.query(Expense).filter(
            Expense.tenant_id == self.tenant_id
        )

    def _get_base_session_query(self):
        """Get base query for cash sessions with tenant filtering"""
        return self.db.query(CashSession).filter(
            CashSession.tenant_id == self.tenant_id
        )

    def _apply_date_filter(self, query, date_field, start: datetime, end: datetime):
        """Apply an inclusive datetime range filter to a query"""
        return query.filter(
            and_(
                date_field >= start,
                date_field <= end
            )
        )
