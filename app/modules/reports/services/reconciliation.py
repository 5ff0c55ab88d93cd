"""
Reconciliation Calculator

Agrega órdenes y gastos en un resumen financiero. El resumen nunca se guarda:
siempre se recalcula desde las filas fuente para evitar desvíos.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List
from uuid import UUID

from app.common.exceptions import SessionNotFound
from app.modules.cash_sessions.models import CashSession
from app.modules.orders.models import Order, OrderStatus, PaymentMethod
from app.modules.expenses.models import Expense
from .base import BaseReportService
from ..utils import normalize_date_range

CENT = Decimal("0.01")

# Estados que cuentan como venta real: entregada, o ya liquidada al cerrar turno
REVENUE_STATUSES = (OrderStatus.DELIVERED, OrderStatus.COMPLETED)


def to_money(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _payment_key(order) -> str:
    method = getattr(order, "payment_method", None)
    if method is None:
        return PaymentMethod.CASH.value
    return method.value if isinstance(method, PaymentMethod) else str(method)


def summarize(orders: Iterable, expenses: Iterable) -> Dict:
    """
    Resumen financiero de un conjunto de órdenes y gastos.

    `by_payment` siempre trae todos los métodos conocidos (en 0 si no hubo
    ventas con ese método). El ticket promedio divide entre max(n, 1).
    """
    orders = list(orders)
    expenses = list(expenses)

    by_payment = {method.value: Decimal("0.00") for method in PaymentMethod}
    total_sales = Decimal("0.00")
    for order in orders:
        amount = to_money(getattr(order, "total", None))
        total_sales += amount
        key = _payment_key(order)
        by_payment[key] = by_payment.get(key, Decimal("0.00")) + amount

    total_expenses = sum((to_money(getattr(e, "amount", None)) for e in expenses), Decimal("0.00"))
    order_count = len(orders)

    top_payment_method = None
    if order_count:
        # max() conserva el primero en caso de empate: cash, card, transfer
        top_payment_method = max(by_payment, key=lambda method: by_payment[method])

    return {
        "total_sales": total_sales,
        "total_expenses": total_expenses,
        "net_profit": total_sales - total_expenses,
        "by_payment": by_payment,
        "order_count": order_count,
        "order_ids": [order.id for order in orders],
        "avg_ticket": (total_sales / max(order_count, 1)).quantize(CENT, rounding=ROUND_HALF_UP),
        "top_payment_method": top_payment_method,
    }


def expected_balance(initial_float, summary: Dict) -> Decimal:
    """
    Efectivo que debe haber en caja: fondo inicial + ventas en efectivo - gastos.

    Tarjeta y transferencia no entran al cajón; los gastos se pagan de caja.
    """
    cash_sales = summary["by_payment"].get(PaymentMethod.CASH.value, Decimal("0.00"))
    return to_money(initial_float) + cash_sales - summary["total_expenses"]


class ReconciliationService(BaseReportService):
    """Resúmenes financieros por sesión o por rango de fechas"""

    def get_session(self, session_id: UUID) -> CashSession:
        session = self._get_base_session_query().filter(CashSession.id == session_id).first()
        if not session:
            raise SessionNotFound(
                "Sesión de caja no encontrada",
                tenant_id=self.tenant_id,
                action="summarize_session",
                session_id=session_id
            )
        return session

    def session_orders(self, session_id: UUID, statuses=REVENUE_STATUSES) -> List[Order]:
        return self._get_base_order_query().filter(
            Order.session_id == session_id,
            Order.status.in_(statuses)
        ).order_by(Order.created_at.desc()).all()

    def session_expenses(self, session_id: UUID) -> List[Expense]:
        return self._get_base_expense_query().filter(
            Expense.session_id == session_id
        ).order_by(Expense.created_at.desc()).all()

    def summarize_session(self, session_id: UUID) -> Dict:
        """Resumen vivo de una sesión, con el esperado recalculado."""
        session = self.get_session(session_id)
        summary = summarize(self.session_orders(session_id), self.session_expenses(session_id))
        summary["session_id"] = session.id
        summary["initial_float"] = to_money(session.initial_float)
        summary["expected_amount"] = expected_balance(session.initial_float, summary)
        return summary

    def summarize_range(self, start_date: date, end_date: date) -> Dict:
        """Resumen por rango de días completos en la zona horaria del negocio."""
        start, end = normalize_date_range(start_date, end_date)

        orders_query = self._apply_date_filter(
            self._get_base_order_query().filter(Order.status.in_(REVENUE_STATUSES)),
            Order.created_at, start, end
        )
        expenses_query = self._apply_date_filter(
            self._get_base_expense_query(), Expense.created_at, start, end
        )

        summary = summarize(orders_query.all(), expenses_query.all())
        summary["period_start"] = start_date
        summary["period_end"] = end_date
        return summary
