"""
Tests para el módulo de gastos
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.common.exceptions import InvalidAmount, NoOpenSession
from app.modules.expenses.models import Expense
from app.modules.expenses.schemas import ExpenseCreate
from app.modules.expenses.service import ExpenseService


class TestExpenseSchema:

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(amount=Decimal("10"), category="Viajes")

    def test_zero_amount_rejected(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(amount=Decimal("0"))


class TestExpenseService:
    """Gastos ligados al turno abierto"""

    def test_expense_bound_to_open_session(self, db_session, tenant_id, user_id, open_session):
        expense = ExpenseService(db_session).create_expense(
            ExpenseCreate(amount=Decimal("150"), category="Insumos", description="Tortillas"),
            tenant_id, user_id
        )
        assert expense.session_id == open_session.id
        assert expense.amount == Decimal("150.00")

    def test_no_open_session(self, db_session, tenant_id):
        with pytest.raises(NoOpenSession):
            ExpenseService(db_session).create_expense(ExpenseCreate(amount=Decimal("10")), tenant_id)
        assert db_session.query(Expense).count() == 0

    def test_service_revalidates_amount(self, db_session, tenant_id, open_session):
        """Llamadas directas sin pasar por el esquema también se validan"""
        data = ExpenseCreate.model_construct(amount=Decimal("-5"), category="Otros", description=None)
        with pytest.raises(InvalidAmount):
            ExpenseService(db_session).create_expense(data, tenant_id)

    def test_list_by_session(self, db_session, tenant_id, open_session):
        service = ExpenseService(db_session)
        service.create_expense(ExpenseCreate(amount=Decimal("20"), category="Operación"), tenant_id)
        service.create_expense(ExpenseCreate(amount=Decimal("30"), category="Otros"), tenant_id)

        result = service.get_expenses(tenant_id, session_id=open_session.id)
        assert result["total"] == 2
        assert result["total_amount"] == Decimal("50.00")

        only_other = service.get_expenses(tenant_id, category="Otros")
        assert only_other["total"] == 1


class TestExpensesAPI:

    def test_create_expense(self, client, cashier_headers):
        client.post("/api/v1/cash-sessions/open", json={"initial_float": "100"}, headers=cashier_headers)
        response = client.post("/api/v1/expenses", json={"amount": "25.50", "category": "Insumos"},
                               headers=cashier_headers)
        assert response.status_code == 201
        assert Decimal(response.json()["amount"]) == Decimal("25.50")

        listing = client.get("/api/v1/expenses", headers=cashier_headers)
        assert listing.json()["total"] == 1

    def test_create_without_session(self, client, cashier_headers):
        response = client.post("/api/v1/expenses", json={"amount": "10"}, headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "NoOpenSession"
