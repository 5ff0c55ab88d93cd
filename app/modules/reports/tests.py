"""
Tests para el módulo de reportes

Cubren:
- Resumen financiero: métodos de pago completos, ticket promedio, método principal
- Normalización de rangos de fechas a la zona del negocio
- Reportes de ventas, gastos y auditoría de cortes (incluida exportación CSV)
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException

from app.common.mixins import utcnow
from app.modules.cash_sessions.service import CashSessionService
from app.modules.expenses.schemas import ExpenseCreate
from app.modules.expenses.service import ExpenseService
from app.modules.orders.models import OrderStatus, PaymentMethod
from app.modules.orders.schemas import OrderCreate
from app.modules.orders.service import OrderService
from app.modules.reports.services import AnalyticsReportService, ReconciliationService, summarize
from app.modules.reports.utils import normalize_date_range, to_local


def order(total, method=PaymentMethod.CASH):
    return SimpleNamespace(id=uuid4(), total=Decimal(total), payment_method=method)


def sell(db, tenant_id, total, method=PaymentMethod.CASH, status=OrderStatus.DELIVERED):
    return OrderService(db).create_order(OrderCreate(
        items=[{"name": "Combo", "quantity": 1, "unit_price": total}],
        payment_method=method,
        status=status
    ), tenant_id)


def today():
    return to_local(utcnow()).date()


# ===== RESUMEN =====

class TestSummarize:
    """Resumen financiero puro"""

    def test_every_payment_method_present(self):
        summary = summarize([order("100")], [])
        assert set(summary["by_payment"]) == {"cash", "card", "transfer"}
        assert summary["by_payment"]["card"] == Decimal("0.00")

    def test_empty_input(self):
        summary = summarize([], [])
        assert summary["total_sales"] == Decimal("0.00")
        assert summary["avg_ticket"] == Decimal("0.00")
        assert summary["top_payment_method"] is None
        assert summary["order_count"] == 0

    def test_totals_and_ticket(self):
        expenses = [SimpleNamespace(amount=Decimal("50"))]
        summary = summarize([order("100"), order("200", PaymentMethod.CARD)], expenses)
        assert summary["total_sales"] == Decimal("300.00")
        assert summary["net_profit"] == Decimal("250.00")
        assert summary["avg_ticket"] == Decimal("150.00")
        assert summary["top_payment_method"] == "card"

    def test_tie_keeps_declaration_order(self):
        summary = summarize([order("100", PaymentMethod.TRANSFER), order("100", PaymentMethod.CASH)], [])
        assert summary["top_payment_method"] == "cash"

    def test_missing_method_counts_as_cash(self):
        summary = summarize([SimpleNamespace(id=uuid4(), total=Decimal("10"), payment_method=None)], [])
        assert summary["by_payment"]["cash"] == Decimal("10.00")


class TestDateRangeNormalization:

    def test_covers_whole_local_days(self):
        start, end = normalize_date_range(date(2024, 3, 1), date(2024, 3, 1), tz_name="America/Mexico_City")
        # UTC-6 en marzo de 2024
        assert start == datetime(2024, 3, 1, 6, 0, 0)
        assert end == datetime(2024, 3, 2, 5, 59, 59, 999000)

    def test_utc_zone(self):
        start, end = normalize_date_range(date(2024, 1, 1), date(2024, 1, 31), tz_name="UTC")
        assert start == datetime(2024, 1, 1)
        assert end == datetime(2024, 1, 31, 23, 59, 59, 999000)

    def test_inverted_range_rejected(self):
        with pytest.raises(HTTPException) as exc:
            normalize_date_range(date(2024, 1, 2), date(2024, 1, 1))
        assert exc.value.status_code == 422


# ===== SERVICIOS =====

class TestReconciliationService:

    def test_session_summary(self, db_session, tenant_id, open_session):
        sell(db_session, tenant_id, "120.00", PaymentMethod.CASH)
        sell(db_session, tenant_id, "80.00", PaymentMethod.TRANSFER)
        sell(db_session, tenant_id, "999.00", status=OrderStatus.PREPARING)
        ExpenseService(db_session).create_expense(ExpenseCreate(amount=Decimal("20")), tenant_id)

        summary = ReconciliationService(db_session, tenant_id).summarize_session(open_session.id)
        assert summary["total_sales"] == Decimal("200.00")
        assert summary["order_count"] == 2
        # 500 de fondo + 120 en efectivo - 20 de gastos; la transferencia no entra a caja
        assert summary["expected_amount"] == Decimal("600.00")
        assert summary["by_payment"]["transfer"] == Decimal("80.00")

    def test_range_summary_includes_settled_orders(self, db_session, tenant_id, open_session):
        sell(db_session, tenant_id, "100.00")
        CashSessionService(db_session).close_session(open_session.id, tenant_id, Decimal("600"))

        summary = ReconciliationService(db_session, tenant_id).summarize_range(today(), today())
        assert summary["total_sales"] == Decimal("100.00")

    def test_range_outside_has_nothing(self, db_session, tenant_id, open_session):
        sell(db_session, tenant_id, "100.00")
        past = today() - timedelta(days=30)
        summary = ReconciliationService(db_session, tenant_id).summarize_range(past, past)
        assert summary["order_count"] == 0


class TestAnalyticsReportService:

    def test_sales_analytics(self, db_session, tenant_id, open_session):
        sell(db_session, tenant_id, "100.00")
        sell(db_session, tenant_id, "50.00", PaymentMethod.CARD)
        sell(db_session, tenant_id, "70.00", status=OrderStatus.CANCELLED)

        report = AnalyticsReportService(db_session, tenant_id).get_sales_analytics(today(), today())
        assert report["total_revenue"] == Decimal("150.00")
        assert report["delivered_count"] == 2
        assert report["cancelled_count"] == 1
        assert report["average_ticket"] == Decimal("75.00")
        assert report["daily"] == [{"date": today().isoformat(), "total": Decimal("150.00")}]

    def test_expense_analytics(self, db_session, tenant_id, open_session):
        service = ExpenseService(db_session)
        service.create_expense(ExpenseCreate(amount=Decimal("10"), category="Marketing"), tenant_id)
        service.create_expense(ExpenseCreate(amount=Decimal("40"), category="Nómina"), tenant_id)

        report = AnalyticsReportService(db_session, tenant_id).get_expense_analytics(today(), today())
        assert report["total_expenses"] == Decimal("50.00")
        assert [c["category"] for c in report["by_category"]] == ["Nómina", "Marketing"]

    def test_cash_cut_analytics(self, db_session, tenant_id, user_id):
        sessions = CashSessionService(db_session)
        first = sessions.open_session(tenant_id, user_id, Decimal("100"))
        sessions.close_session(first.id, tenant_id, Decimal("100"))
        second = sessions.open_session(tenant_id, user_id, Decimal("100"))
        sessions.close_session(second.id, tenant_id, Decimal("90"))
        sessions.open_session(tenant_id, user_id, Decimal("100"))

        report = AnalyticsReportService(db_session, tenant_id).get_cash_cut_analytics(today(), today())
        assert report["total_cuts"] == 2
        assert report["perfect_cuts"] == 1
        assert report["total_declared"] == Decimal("190.00")
        assert report["total_difference"] == Decimal("-10.00")


# ===== API =====

class TestReportsAPI:

    def test_summary_requires_report_role(self, client, cashier_headers):
        response = client.get("/api/v1/reports/summary", params={
            "start_date": today().isoformat(), "end_date": today().isoformat()
        }, headers=cashier_headers)
        assert response.status_code == 403

    def test_summary(self, client, cashier_headers, accountant_headers):
        client.post("/api/v1/cash-sessions/open", json={"initial_float": "0"}, headers=cashier_headers)
        client.post("/api/v1/orders", json={
            "items": [{"name": "Agua", "quantity": 1, "unit_price": "40"}],
            "status": "delivered"
        }, headers=cashier_headers)

        response = client.get("/api/v1/reports/summary", params={
            "start_date": today().isoformat(), "end_date": today().isoformat()
        }, headers=accountant_headers)
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["total_sales"]) == Decimal("40")
        assert set(data["by_payment"]) == {"cash", "card", "transfer"}

    def test_cash_cuts_csv(self, client, cashier_headers, admin_headers):
        session = client.post("/api/v1/cash-sessions/open", json={"initial_float": "50"},
                              headers=cashier_headers).json()
        client.post(f"/api/v1/cash-sessions/{session['id']}/close",
                    json={"declared_amount": "50"}, headers=cashier_headers)

        response = client.get("/api/v1/reports/cash-cuts", params={
            "start_date": today().isoformat(), "end_date": today().isoformat(), "export": "csv"
        }, headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Sesión,Apertura,Cierre")
        assert session["id"] in lines[1]

        report = client.get("/api/v1/reports/cash-cuts", params={
            "start_date": today().isoformat(), "end_date": today().isoformat()
        }, headers=admin_headers)
        assert report.json()["total_cuts"] == 1
        assert report.json()["perfect_cuts"] == 1
