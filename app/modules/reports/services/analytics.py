"""
Analytics Reports Service

Reportes por rango de fechas para el back-office: ventas por día, gastos por
categoría y auditoría de cortes de caja (sesiones cerradas).
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List

from app.modules.cash_sessions.models import CashSession, SessionStatus
from app.modules.orders.models import Order, OrderStatus
from app.modules.expenses.models import Expense
from .base import BaseReportService
from .reconciliation import REVENUE_STATUSES, summarize, to_money
from ..utils import normalize_date_range, to_local


class AnalyticsReportService(BaseReportService):
    """Service for generating back-office analytics"""

    def get_sales_analytics(self, start_date: date, end_date: date) -> Dict:
        """
        Ventas del periodo: KPIs y serie diaria.

        Solo ventas entregadas o liquidadas cuentan como ingreso.
        """
        start, end = normalize_date_range(start_date, end_date)
        orders = self._apply_date_filter(
            self._get_base_order_query(), Order.created_at, start, end
        ).order_by(Order.created_at.desc()).all()

        revenue_orders = [o for o in orders if o.status in REVENUE_STATUSES]
        cancelled = [o for o in orders if o.status == OrderStatus.CANCELLED]
        summary = summarize(revenue_orders, [])

        sales_by_day: Dict[str, Decimal] = defaultdict(lambda: Decimal("0.00"))
        for order in revenue_orders:
            day = to_local(order.created_at).date().isoformat()
            sales_by_day[day] += to_money(order.total)

        return {
            "period_start": start_date,
            "period_end": end_date,
            "total_revenue": summary["total_sales"],
            "average_ticket": summary["avg_ticket"],
            "delivered_count": len(revenue_orders),
            "cancelled_count": len(cancelled),
            "by_payment": summary["by_payment"],
            "top_payment_method": summary["top_payment_method"],
            "daily": [{"date": day, "total": total} for day, total in sorted(sales_by_day.items())],
        }

    def get_expense_analytics(self, start_date: date, end_date: date) -> Dict:
        """Gastos del periodo agrupados por categoría (mayor a menor)."""
        start, end = normalize_date_range(start_date, end_date)
        expenses = self._apply_date_filter(
            self._get_base_expense_query(), Expense.created_at, start, end
        ).order_by(Expense.created_at.desc()).all()

        by_category: Dict[str, Decimal] = defaultdict(lambda: Decimal("0.00"))
        for expense in expenses:
            by_category[expense.category or "Otros"] += to_money(expense.amount)

        categories = sorted(by_category.items(), key=lambda item: item[1], reverse=True)
        return {
            "period_start": start_date,
            "period_end": end_date,
            "total_expenses": sum(by_category.values(), Decimal("0.00")),
            "expense_count": len(expenses),
            "by_category": [{"category": name, "total": total} for name, total in categories],
        }

    def get_cash_cut_analytics(self, start_date: date, end_date: date) -> Dict:
        """Auditoría de cortes: sesiones cerradas dentro del periodo."""
        start, end = normalize_date_range(start_date, end_date)
        sessions: List[CashSession] = self._apply_date_filter(
            self._get_base_session_query().filter(CashSession.status == SessionStatus.CLOSED),
            CashSession.closed_at, start, end
        ).order_by(CashSession.closed_at.desc()).all()

        total_declared = sum((to_money(s.declared_amount) for s in sessions), Decimal("0.00"))
        total_difference = sum((to_money(s.difference) for s in sessions), Decimal("0.00"))
        perfect_cuts = sum(1 for s in sessions if to_money(s.difference) == 0)

        return {
            "period_start": start_date,
            "period_end": end_date,
            "total_cuts": len(sessions),
            "total_declared": total_declared,
            "total_difference": total_difference,
            "perfect_cuts": perfect_cuts,
            "sessions": sessions,
        }
