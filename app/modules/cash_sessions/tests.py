"""
Tests para el módulo de sesiones de caja

Cubren:
- Regla de un solo turno abierto por empresa (incluida apertura concurrente)
- Cierre con arqueo determinista y liquidación de órdenes contadas
- Fallo parcial al liquidar órdenes en el cierre
- Vista previa del arqueo ciego por rol
- Detalle con deriva tras reaperturas
"""

import gc
import threading
from decimal import Decimal
from uuid import uuid4

import pytest

from app.common.exceptions import (
    InvalidAmount, NoOpenSession, SessionClosed, SessionConflict, SessionNotFound
)
from app.modules.cash_sessions import locking
from app.modules.cash_sessions.models import CashSession, SessionStatus
from app.modules.cash_sessions.service import CashSessionService
from app.modules.expenses.schemas import ExpenseCreate
from app.modules.expenses.service import ExpenseService
from app.modules.orders.models import Order, OrderStatus, PaymentMethod
from app.modules.orders.reopen import OrderReopenService
from app.modules.orders.schemas import OrderCreate
from app.modules.orders.service import OrderService
from app.modules.orders.settlement import SettlementStage, classify_order


def make_order(db, tenant_id, total, payment_method=PaymentMethod.CASH,
               status=OrderStatus.DELIVERED):
    order_data = OrderCreate(
        items=[{"name": "Platillo", "quantity": 1, "unit_price": str(total)}],
        payment_method=payment_method,
        status=status
    )
    return OrderService(db).create_order(order_data, tenant_id, actor_name="Carlos Cajero")


def make_expense(db, tenant_id, amount, category="Insumos"):
    return ExpenseService(db).create_expense(
        ExpenseCreate(amount=Decimal(amount), category=category), tenant_id
    )


# ===== APERTURA =====

class TestOpenSession:
    """Tests de apertura de turno"""

    def test_open_session(self, db_session, tenant_id, user_id):
        """Abrir turno deja la sesión abierta con su fondo"""
        session = CashSessionService(db_session).open_session(
            tenant_id=tenant_id, user_id=user_id, initial_float=Decimal("500")
        )
        assert session.status == SessionStatus.OPEN
        assert session.initial_float == Decimal("500.00")
        assert session.expected_amount is None
        assert CashSessionService(db_session).get_open_session(tenant_id).id == session.id

    def test_second_open_conflicts(self, db_session, tenant_id, user_id, open_session):
        """Un segundo turno abierto responde SessionConflict con el id del abierto"""
        with pytest.raises(SessionConflict) as exc:
            CashSessionService(db_session).open_session(
                tenant_id=tenant_id, user_id=user_id, initial_float=Decimal("100")
            )
        assert exc.value.status_code == 409
        assert exc.value.detail["open_session_id"] == str(open_session.id)
        assert exc.value.detail["tenant_id"] == str(tenant_id)

    def test_negative_float_rejected(self, db_session, tenant_id, user_id):
        with pytest.raises(InvalidAmount):
            CashSessionService(db_session).open_session(
                tenant_id=tenant_id, user_id=user_id, initial_float=Decimal("-1")
            )
        assert db_session.query(CashSession).count() == 0

    def test_tenants_are_independent(self, db_session, user_id, open_session):
        """Otra empresa puede abrir su propio turno"""
        other = CashSessionService(db_session).open_session(
            tenant_id=uuid4(), user_id=user_id, initial_float=Decimal("0")
        )
        assert other.status == SessionStatus.OPEN

    def test_concurrent_open_only_one_succeeds(self, session_factory, tenant_id, user_id):
        """Aperturas concurrentes: exactamente una gana, el resto recibe SessionConflict"""
        results = []
        barrier = threading.Barrier(5)

        def attempt():
            db = session_factory()
            try:
                barrier.wait()
                CashSessionService(db).open_session(
                    tenant_id=tenant_id, user_id=user_id, initial_float=Decimal("100")
                )
                results.append("ok")
            except SessionConflict:
                results.append("conflict")
            finally:
                db.close()

        threads = [threading.Thread(target=attempt) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("ok") == 1
        assert results.count("conflict") == 4

        db = session_factory()
        try:
            open_count = db.query(CashSession).filter(
                CashSession.tenant_id == tenant_id,
                CashSession.status == SessionStatus.OPEN
            ).count()
        finally:
            db.close()
        assert open_count == 1

    def test_process_lock_registry_releases_tenants(self, db_session):
        """El registro de locks no crece con cada tenant atendido"""
        tenant = uuid4()
        with locking.tenant_session_lock(db_session, tenant):
            assert tenant in locking._process_locks
        gc.collect()
        assert tenant not in locking._process_locks

    def test_legacy_duplicate_open_returns_most_recent(self, db_session, tenant_id):
        """Con datos heredados duplicados se toma el turno más reciente sin escribir"""
        from datetime import timedelta
        from app.common.mixins import utcnow

        older = CashSession(tenant_id=tenant_id, status=SessionStatus.OPEN,
                            initial_float=Decimal("0"), opened_at=utcnow() - timedelta(hours=2))
        newer = CashSession(tenant_id=tenant_id, status=SessionStatus.OPEN,
                            initial_float=Decimal("0"), opened_at=utcnow())
        db_session.add_all([older, newer])
        db_session.commit()

        assert CashSessionService(db_session).get_open_session(tenant_id).id == newer.id
        db_session.refresh(older)
        assert older.status == SessionStatus.OPEN


# ===== CIERRE =====

class TestCloseSession:
    """Tests de cierre con arqueo"""

    def test_close_is_deterministic(self, db_session, tenant_id, open_session):
        """500 de fondo + 1200 en ventas - 150 de gastos = 1550; declarar 1540 da -10"""
        make_order(db_session, tenant_id, "700.00", PaymentMethod.CASH)
        make_order(db_session, tenant_id, "500.00", PaymentMethod.CASH)
        make_expense(db_session, tenant_id, "150.00")

        session = CashSessionService(db_session).close_session(
            open_session.id, tenant_id, Decimal("1540.00"), closed_by_name="Ana"
        )

        assert session.status == SessionStatus.CLOSED
        assert session.expected_amount == Decimal("1550.00")
        assert session.declared_amount == Decimal("1540.00")
        assert session.difference == Decimal("-10.00")
        assert session.outcome == "shortage"
        assert session.closed_at is not None
        assert CashSessionService(db_session).get_open_session(tenant_id) is None

    def test_card_and_transfer_do_not_count_as_cash(self, db_session, tenant_id, open_session):
        """Solo el efectivo entra al cajón: declarar el efectivo exacto cuadra"""
        make_order(db_session, tenant_id, "100.00", PaymentMethod.CASH)
        make_order(db_session, tenant_id, "100.00", PaymentMethod.CARD)
        make_order(db_session, tenant_id, "40.00", PaymentMethod.TRANSFER)

        session = CashSessionService(db_session).close_session(
            open_session.id, tenant_id, Decimal("600.00")
        )

        assert session.expected_amount == Decimal("600.00")
        assert session.difference == Decimal("0.00")
        assert session.outcome == "exact"

        db_session.expire_all()
        completed = db_session.query(Order).filter(Order.status == OrderStatus.COMPLETED).count()
        assert completed == 3

    def test_close_settles_only_delivered_orders(self, db_session, tenant_id, open_session):
        """Las entregadas pasan a completed; activas y canceladas no suman al arqueo"""
        delivered = make_order(db_session, tenant_id, "100.00")
        active = make_order(db_session, tenant_id, "80.00", status=OrderStatus.PENDING)
        cancelled = make_order(db_session, tenant_id, "60.00", status=OrderStatus.CANCELLED)

        session = CashSessionService(db_session).close_session(
            open_session.id, tenant_id, Decimal("600.00")
        )
        assert session.expected_amount == Decimal("600.00")

        db_session.expire_all()
        assert db_session.get(Order, delivered.id).status == OrderStatus.COMPLETED
        assert db_session.get(Order, delivered.id).completed_at is not None
        assert db_session.get(Order, active.id).status == OrderStatus.PENDING
        assert db_session.get(Order, cancelled.id).status == OrderStatus.CANCELLED

    def test_close_settles_cancelled_orders(self, db_session, tenant_id, open_session):
        """Las canceladas del turno salen de "Por liquidar" sin sumar al esperado"""
        cancelled = make_order(db_session, tenant_id, "60.00", status=OrderStatus.CANCELLED)
        assert classify_order(cancelled).stage == SettlementStage.PENDING_SETTLEMENT

        session = CashSessionService(db_session).close_session(
            open_session.id, tenant_id, Decimal("500.00")
        )
        assert session.expected_amount == Decimal("500.00")

        db_session.expire_all()
        cancelled = db_session.get(Order, cancelled.id)
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cash_cut_id == open_session.id
        settlement = classify_order(cancelled)
        assert settlement.stage == SettlementStage.SETTLED
        assert settlement.reference == open_session.id
        assert "cancelada" in cancelled.audit_log[-1].details

        pending = OrderService(db_session).get_orders(tenant_id, stage=SettlementStage.PENDING_SETTLEMENT)
        assert pending["total"] == 0

    def test_settled_order_gets_audit_entry(self, db_session, tenant_id, open_session):
        order = make_order(db_session, tenant_id, "100.00")
        CashSessionService(db_session).close_session(open_session.id, tenant_id, Decimal("600"))

        db_session.expire_all()
        entries = db_session.get(Order, order.id).audit_log
        assert entries[0].action.value == "CREATED"
        assert entries[-1].action.value == "STATUS_CHANGE"
        assert "cierre de turno" in entries[-1].details

    def test_close_twice_fails(self, db_session, tenant_id, open_session):
        service = CashSessionService(db_session)
        service.close_session(open_session.id, tenant_id, Decimal("500"))
        with pytest.raises(SessionClosed):
            service.close_session(open_session.id, tenant_id, Decimal("500"))

    def test_close_unknown_session(self, db_session, tenant_id):
        with pytest.raises(SessionNotFound):
            CashSessionService(db_session).close_session(uuid4(), tenant_id, Decimal("0"))

    def test_negative_declared_rejected(self, db_session, tenant_id, open_session):
        with pytest.raises(InvalidAmount):
            CashSessionService(db_session).close_session(open_session.id, tenant_id, Decimal("-5"))
        db_session.refresh(open_session)
        assert open_session.status == SessionStatus.OPEN

    def test_exact_close(self, db_session, tenant_id, open_session):
        session = CashSessionService(db_session).close_session(
            open_session.id, tenant_id, Decimal("500.00")
        )
        assert session.difference == Decimal("0.00")
        assert session.outcome == "exact"

    def test_orders_require_new_session_after_close(self, db_session, tenant_id, open_session):
        CashSessionService(db_session).close_session(open_session.id, tenant_id, Decimal("500"))
        with pytest.raises(NoOpenSession):
            make_order(db_session, tenant_id, "50.00")


class TestPartialCloseFailure:
    """Liquidación best-effort de las órdenes contadas"""

    def test_session_closes_even_if_some_orders_fail(self, db_session, tenant_id, open_session,
                                                     monkeypatch, caplog):
        """El cierre persiste; la orden que falla queda entregada y por liquidar"""
        ok_order = make_order(db_session, tenant_id, "100.00")
        bad_order = make_order(db_session, tenant_id, "200.00")

        original = CashSessionService._settle_order

        def flaky_settle(self, order, settled_at, actor):
            if order.id == bad_order.id:
                raise RuntimeError("write failed")
            return original(self, order, settled_at, actor)

        monkeypatch.setattr(CashSessionService, "_settle_order", flaky_settle)

        with caplog.at_level("WARNING"):
            session = CashSessionService(db_session).close_session(
                open_session.id, tenant_id, Decimal("800.00")
            )

        assert session.status == SessionStatus.CLOSED
        assert session.expected_amount == Decimal("800.00")

        db_session.expire_all()
        assert db_session.get(Order, ok_order.id).status == OrderStatus.COMPLETED
        assert db_session.get(Order, bad_order.id).status == OrderStatus.DELIVERED

        unsettled = OrderService(db_session).get_unsettled_orders(tenant_id)
        assert [o.id for o in unsettled] == [bad_order.id]
        assert "PartialCloseFailure" in caplog.text
        assert str(bad_order.id) in caplog.text


# ===== VISTAS =====

class TestSessionViews:
    """Detalle, historial y arqueo ciego"""

    def test_blind_preview_hides_expected_for_cashier(self, db_session, tenant_id, open_session):
        make_order(db_session, tenant_id, "100.00")
        preview = CashSessionService(db_session).get_blind_cut_preview(tenant_id, reveal_expected=False)
        assert preview["expected_amount"] is None
        assert preview["expected_revealed"] is False
        assert preview["initial_float"] is None
        for field in ("total_sales", "total_expenses", "net_profit", "by_payment", "avg_ticket"):
            assert preview["summary"][field] is None
        assert preview["summary"]["order_count"] == 1

    def test_blind_preview_reveals_expected_for_admin(self, db_session, tenant_id, open_session):
        make_order(db_session, tenant_id, "100.00")
        preview = CashSessionService(db_session).get_blind_cut_preview(tenant_id, reveal_expected=True)
        assert preview["expected_amount"] == Decimal("600.00")
        assert preview["initial_float"] == Decimal("500.00")
        assert preview["summary"]["total_sales"] == Decimal("100.00")

    def test_open_detail_is_blind_without_reveal(self, db_session, tenant_id, open_session):
        make_order(db_session, tenant_id, "300.00")
        service = CashSessionService(db_session)

        blind = service.get_session_detail(open_session.id, tenant_id, reveal_expected=False)
        assert blind["blind"] is True
        assert blind["live_expected_amount"] is None
        assert blind["summary"]["total_sales"] is None
        assert blind["summary"]["initial_float"] is None

        revealed = service.get_session_detail(open_session.id, tenant_id, reveal_expected=True)
        assert revealed["blind"] is False
        assert revealed["live_expected_amount"] == Decimal("800.00")

    def test_closed_detail_is_not_blind(self, db_session, tenant_id, open_session):
        make_order(db_session, tenant_id, "300.00")
        service = CashSessionService(db_session)
        service.close_session(open_session.id, tenant_id, Decimal("800.00"))

        detail = service.get_session_detail(open_session.id, tenant_id, reveal_expected=False)
        assert detail["blind"] is False
        assert detail["summary"]["total_sales"] == Decimal("300.00")

    def test_blind_preview_without_open_session(self, db_session, tenant_id):
        with pytest.raises(NoOpenSession):
            CashSessionService(db_session).get_blind_cut_preview(tenant_id, reveal_expected=True)

    def test_detail_drift_after_reopen(self, db_session, tenant_id, open_session):
        """Reabrir una orden no toca lo registrado; el detalle reporta la deriva"""
        order = make_order(db_session, tenant_id, "100.00")
        make_order(db_session, tenant_id, "50.00")
        service = CashSessionService(db_session)
        service.close_session(open_session.id, tenant_id, Decimal("650.00"))

        detail = service.get_session_detail(open_session.id, tenant_id)
        assert detail["drift"] == Decimal("0.00")
        assert detail["warning"] is None

        OrderReopenService(db_session).reopen_order(order.id, tenant_id, "Ana Admin", is_admin=True)

        detail = service.get_session_detail(open_session.id, tenant_id)
        assert detail["session"].expected_amount == Decimal("650.00")
        assert detail["session"].declared_amount == Decimal("650.00")
        assert detail["session"].difference == Decimal("0.00")
        assert detail["drift"] == Decimal("-100.00")
        assert detail["warning"] is not None

    def test_history_newest_first(self, db_session, tenant_id, user_id):
        service = CashSessionService(db_session)
        first = service.open_session(tenant_id, user_id, Decimal("100"))
        service.close_session(first.id, tenant_id, Decimal("100"))
        second = service.open_session(tenant_id, user_id, Decimal("200"))

        result = service.get_sessions(tenant_id)
        assert result["total"] == 2
        assert [s.id for s in result["sessions"]] == [second.id, first.id]

        closed = service.get_sessions(tenant_id, status=SessionStatus.CLOSED)
        assert [s.id for s in closed["sessions"]] == [first.id]


# ===== API =====

class TestCashSessionAPI:
    """Tests de endpoints de sesiones de caja"""

    def test_open_and_close_flow(self, client, cashier_headers):
        response = client.post("/api/v1/cash-sessions/open", json={"initial_float": "500"},
                               headers=cashier_headers)
        assert response.status_code == 201
        session_id = response.json()["id"]
        assert response.json()["status"] == "open"

        response = client.get("/api/v1/cash-sessions/current", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["id"] == session_id

        response = client.post(f"/api/v1/cash-sessions/{session_id}/close",
                               json={"declared_amount": "480"}, headers=cashier_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "closed"
        assert Decimal(data["difference"]) == Decimal("-20")
        assert data["closed_by_name"] == "Carlos Cajero"

        response = client.get("/api/v1/cash-sessions/current", headers=cashier_headers)
        assert response.status_code == 404

    def test_open_conflict_returns_context(self, client, cashier_headers, tenant_id):
        first = client.post("/api/v1/cash-sessions/open", json={"initial_float": "0"},
                            headers=cashier_headers)
        response = client.post("/api/v1/cash-sessions/open", json={"initial_float": "0"},
                               headers=cashier_headers)
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error"] == "SessionConflict"
        assert detail["open_session_id"] == first.json()["id"]
        assert detail["tenant_id"] == str(tenant_id)

    def test_negative_float_is_422(self, client, cashier_headers):
        response = client.post("/api/v1/cash-sessions/open", json={"initial_float": "-10"},
                               headers=cashier_headers)
        assert response.status_code == 422

    def test_preview_masks_by_role(self, client, cashier_headers, admin_headers):
        client.post("/api/v1/cash-sessions/open", json={"initial_float": "300"}, headers=cashier_headers)

        client.post("/api/v1/orders", json={
            "items": [{"name": "Torta", "quantity": 1, "unit_price": "300"}],
            "status": "delivered"
        }, headers=cashier_headers)

        cashier_view = client.get("/api/v1/cash-sessions/current/preview", headers=cashier_headers)
        assert cashier_view.status_code == 200
        data = cashier_view.json()
        assert data["expected_amount"] is None
        assert data["initial_float"] is None
        assert data["summary"]["total_sales"] is None
        assert data["summary"]["total_expenses"] is None
        assert data["summary"]["by_payment"] is None
        assert data["summary"]["order_count"] == 1

        admin_view = client.get("/api/v1/cash-sessions/current/preview", headers=admin_headers)
        assert Decimal(admin_view.json()["expected_amount"]) == Decimal("600")
        assert Decimal(admin_view.json()["summary"]["total_sales"]) == Decimal("300")

    def test_open_session_detail_is_blind_for_cashier(self, client, cashier_headers, admin_headers):
        opened = client.post("/api/v1/cash-sessions/open", json={"initial_float": "500"},
                             headers=cashier_headers).json()
        client.post("/api/v1/orders", json={
            "items": [{"name": "Torta", "quantity": 1, "unit_price": "300"}],
            "status": "delivered"
        }, headers=cashier_headers)

        cashier_detail = client.get(f"/api/v1/cash-sessions/{opened['id']}", headers=cashier_headers)
        assert cashier_detail.status_code == 200
        data = cashier_detail.json()
        assert data["status"] == "open"
        assert data["live_expected_amount"] is None
        assert data["initial_float"] is None
        assert data["summary"]["total_sales"] is None

        current = client.get("/api/v1/cash-sessions/current", headers=cashier_headers).json()
        assert current["initial_float"] is None
        history = client.get("/api/v1/cash-sessions", headers=cashier_headers).json()
        assert history["sessions"][0]["initial_float"] is None

        admin_detail = client.get(f"/api/v1/cash-sessions/{opened['id']}", headers=admin_headers).json()
        assert Decimal(admin_detail["live_expected_amount"]) == Decimal("800")
        assert Decimal(admin_detail["initial_float"]) == Decimal("500")

    def test_detail_and_history(self, client, cashier_headers, admin_headers):
        opened = client.post("/api/v1/cash-sessions/open", json={"initial_float": "100"},
                             headers=cashier_headers).json()

        detail = client.get(f"/api/v1/cash-sessions/{opened['id']}", headers=admin_headers)
        assert detail.status_code == 200
        assert Decimal(detail.json()["live_expected_amount"]) == Decimal("100")
        assert detail.json()["summary"]["order_count"] == 0

        history = client.get("/api/v1/cash-sessions", headers=cashier_headers)
        assert history.json()["total"] == 1

    def test_missing_company_header(self, client, cashier_headers):
        headers = {"Authorization": cashier_headers["Authorization"]}
        response = client.get("/api/v1/cash-sessions/current", headers=headers)
        assert response.status_code == 400
