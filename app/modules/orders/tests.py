"""
Tests para el módulo de órdenes

Cubren:
- Creación ligada al turno abierto (sin turno no se guarda nada)
- Snapshot de precios y normalización de líneas
- Clasificación de liquidación con ambos marcadores
- Flujo de estados, edición y bitácora
- Reapertura administrativa sin tocar los montos de la sesión
- Normalización de cortes heredados
"""

import threading
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from app.common.exceptions import InvalidOrderState, NoOpenSession, NotAuthorized, OrderNotFound
from app.modules.cash_sessions.service import CashSessionService
from app.modules.orders.audit import AuditTrail
from app.modules.orders.maintenance import normalize_legacy_settlement
from app.modules.orders.models import AuditAction, Order, OrderStatus, PaymentMethod
from app.modules.orders.reopen import OrderReopenService
from app.modules.orders.schemas import OrderCreate, OrderItemCreate, OrderUpdate
from app.modules.orders.service import OrderService
from app.modules.orders.settlement import (
    SettlementStage, classify_order, resolve_owning_session
)


def create(db, tenant_id, status=OrderStatus.PENDING, price="100.00",
           payment_method=PaymentMethod.CASH):
    order_data = OrderCreate(
        items=[{"name": "Tacos", "quantity": 2, "unit_price": price, "unit_cost": "30.00"}],
        payment_method=payment_method,
        status=status
    )
    return OrderService(db).create_order(order_data, tenant_id, actor_name="Carlos Cajero")


# ===== ESQUEMAS =====

class TestLineItems:
    """Normalización de líneas de orden"""

    def test_modifier_aliases_are_merged(self):
        item = OrderItemCreate(**{
            "name": "Café",
            "quantity": 1,
            "price": "30.00",
            "extras": [{"nombre": "Leche de almendra", "precio": "8.00"}],
            "variantes": ["Grande"],
        })
        assert item.unit_price == Decimal("30.00")
        assert [m.name for m in item.modifiers] == ["Leche de almendra", "Grande"]
        assert item.subtotal == Decimal("38.00")

    def test_snapshot_shape(self):
        item = OrderItemCreate(name="Pan", quantity=3, unit_price="10.50", costo="4.00")
        snapshot = item.snapshot()
        assert snapshot["unit_cost"] == "4.00"
        assert snapshot["subtotal"] == "31.50"
        assert snapshot["modifiers"] == []

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError):
            OrderCreate(items=[])

    def test_cannot_create_completed(self):
        with pytest.raises(ValidationError):
            OrderCreate(items=[{"name": "Pan", "quantity": 1, "unit_price": "1"}],
                        status=OrderStatus.COMPLETED)


# ===== CLASIFICACIÓN =====

class TestSettlementClassification:
    """Clasificación derivada con los dos marcadores"""

    def test_legacy_cut_marker_wins(self):
        cut = uuid4()
        order = SimpleNamespace(cash_cut_id=cut, status=OrderStatus.DELIVERED, session_id=uuid4())
        result = classify_order(order)
        assert result.stage == SettlementStage.SETTLED
        assert result.reference == cut

    def test_completed_is_settled_by_session(self):
        session_id = uuid4()
        order = SimpleNamespace(cash_cut_id=None, status=OrderStatus.COMPLETED, session_id=session_id)
        result = classify_order(order)
        assert result.is_settled
        assert result.reference == session_id

    def test_delivered_and_cancelled_pending(self):
        for status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            order = SimpleNamespace(cash_cut_id=None, status=status, session_id=uuid4())
            assert classify_order(order).stage == SettlementStage.PENDING_SETTLEMENT

    def test_empty_marker_counts_as_absent(self):
        """Null, cadena vacía o campo ausente significan lo mismo"""
        for order in (
            SimpleNamespace(cash_cut_id="", status="delivered"),
            SimpleNamespace(cash_cut_id=None, status="delivered"),
            SimpleNamespace(status="delivered"),
        ):
            assert classify_order(order).stage == SettlementStage.PENDING_SETTLEMENT

    def test_active_statuses(self):
        for status in ("pending", "confirmed", "preparing", "ready", "on_the_way"):
            assert classify_order(SimpleNamespace(status=status)).stage == SettlementStage.ACTIVE

    def test_classification_is_idempotent(self):
        order = SimpleNamespace(cash_cut_id=None, status=OrderStatus.COMPLETED, session_id=uuid4())
        assert classify_order(order) == classify_order(order)

    def test_owning_session_of_unsettled_order(self):
        session_id = uuid4()
        order = SimpleNamespace(cash_cut_id=None, status=OrderStatus.PREPARING, session_id=session_id)
        assert resolve_owning_session(order) == session_id


# ===== CREACIÓN =====

class TestCreateOrder:
    """Order Binder: toda orden nace ligada al turno abierto"""

    def test_order_bound_to_open_session(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id)
        assert order.session_id == open_session.id
        assert order.total == Decimal("200.00")
        assert order.items[0]["unit_price"] == "100.00"
        assert order.folio == 1
        assert create(db_session, tenant_id).folio == 2

    def test_concurrent_creates_get_distinct_folios(self, session_factory, tenant_id, open_session):
        """Ventas simultáneas desde varias terminales: todas se guardan con folios distintos"""
        results = []
        barrier = threading.Barrier(5)

        def attempt():
            db = session_factory()
            try:
                barrier.wait()
                order = create(db, tenant_id)
                results.append(order.folio)
            except HTTPException as e:
                results.append(e.status_code)
            finally:
                db.close()

        threads = [threading.Thread(target=attempt) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == [1, 2, 3, 4, 5]

    def test_no_open_session_persists_nothing(self, db_session, tenant_id):
        with pytest.raises(NoOpenSession) as exc:
            create(db_session, tenant_id)
        assert exc.value.status_code == 409
        assert exc.value.detail["action"] == "create_order"
        assert db_session.query(Order).count() == 0

    def test_no_orphan_orders(self, db_session, tenant_id, open_session):
        for _ in range(3):
            create(db_session, tenant_id)
        assert db_session.query(Order).filter(Order.session_id.is_(None)).count() == 0

    def test_audit_head_is_created(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id)
        entries = OrderService(db_session).get_audit_log(order.id, tenant_id)
        assert len(entries) == 1
        assert entries[0]["action"] == "CREATED"
        assert entries[0]["label"] == "Apertura"
        assert entries[0]["user"] == "Carlos Cajero"

    def test_snapshot_is_frozen(self, db_session, tenant_id, open_session):
        """Los precios guardados no dependen del catálogo después de crear"""
        order = create(db_session, tenant_id, price="55.00")
        db_session.expire_all()
        reloaded = db_session.get(Order, order.id)
        assert reloaded.items[0]["unit_price"] == "55.00"
        assert reloaded.items[0]["unit_cost"] == "30.00"


# ===== FLUJO DE ESTADOS =====

class TestStatusWorkflow:

    def test_full_flow_to_delivered(self, db_session, tenant_id, open_session):
        service = OrderService(db_session)
        order = create(db_session, tenant_id)
        for status in (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY,
                       OrderStatus.ON_THE_WAY, OrderStatus.DELIVERED):
            order = service.update_status(order.id, status, tenant_id, actor_name="Mesero")

        assert order.status == OrderStatus.DELIVERED
        assert order.closed_at is not None
        entries = service.get_audit_log(order.id, tenant_id)
        assert [e["position"] for e in entries] == list(range(6))
        assert entries[-1]["details"] == "Estado cambiado de En camino a Entregado"

    def test_skipping_steps_rejected(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id)
        with pytest.raises(InvalidOrderState):
            OrderService(db_session).update_status(order.id, OrderStatus.DELIVERED, tenant_id)

    def test_completed_not_reachable_manually(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        with pytest.raises(InvalidOrderState):
            OrderService(db_session).update_status(order.id, OrderStatus.COMPLETED, tenant_id)

    def test_cancel_from_active(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id)
        order = OrderService(db_session).update_status(order.id, OrderStatus.CANCELLED, tenant_id)
        assert order.closed_at is not None
        assert classify_order(order).stage == SettlementStage.PENDING_SETTLEMENT

    def test_settled_order_is_immutable(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        CashSessionService(db_session).close_session(open_session.id, tenant_id, Decimal("700"))
        with pytest.raises(InvalidOrderState):
            OrderService(db_session).update_status(order.id, OrderStatus.CANCELLED, tenant_id)
        with pytest.raises(InvalidOrderState):
            OrderService(db_session).update_order(order.id, OrderUpdate(notes="x"), tenant_id)

    def test_edit_appends_entry(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id)
        order = OrderService(db_session).update_order(
            order.id, OrderUpdate(customer_name="María", table_number="4"), tenant_id, "Mesero"
        )
        assert order.customer_name == "María"
        assert order.audit_log[-1].action == AuditAction.EDITED
        assert order.total == Decimal("200.00")

    def test_unknown_order(self, db_session, tenant_id):
        with pytest.raises(OrderNotFound):
            OrderService(db_session).get_order(uuid4(), tenant_id)


# ===== LISTADOS =====

class TestOrderListing:

    def test_stage_filters_match_classification(self, db_session, tenant_id, open_session):
        active = create(db_session, tenant_id)
        pending = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        legacy = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        legacy.cash_cut_id = uuid4()
        db_session.commit()

        service = OrderService(db_session)
        by_stage = {
            stage: {o.id for o in service.get_orders(tenant_id, stage=stage)["orders"]}
            for stage in SettlementStage
        }
        assert by_stage[SettlementStage.ACTIVE] == {active.id}
        assert by_stage[SettlementStage.PENDING_SETTLEMENT] == {pending.id}
        assert by_stage[SettlementStage.SETTLED] == {legacy.id}

        unsettled = service.get_unsettled_orders(tenant_id)
        assert [o.id for o in unsettled] == [pending.id]

    def test_filter_by_payment_method(self, db_session, tenant_id, open_session):
        create(db_session, tenant_id, payment_method=PaymentMethod.CARD)
        create(db_session, tenant_id, payment_method=PaymentMethod.CASH)
        result = OrderService(db_session).get_orders(tenant_id, payment_method=PaymentMethod.CARD)
        assert result["total"] == 1


# ===== BITÁCORA =====

class TestAuditTrail:

    def test_first_entry_must_be_created(self, db_session, tenant_id):
        order = Order(tenant_id=tenant_id, folio=99, total=Decimal("0"), items=[])
        with pytest.raises(ValueError):
            AuditTrail(db_session).append_entry(order, AuditAction.STATUS_CHANGE, "x", "Sistema")

    def test_created_only_once(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id)
        with pytest.raises(ValueError):
            AuditTrail(db_session).append_entry(order, AuditAction.CREATED, "otra", "Sistema")


# ===== REAPERTURA =====

class TestReopenOrder:
    """Reapertura administrativa"""

    def _closed_with_order(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        CashSessionService(db_session).close_session(open_session.id, tenant_id, Decimal("700.00"))
        db_session.expire_all()
        return db_session.get(Order, order.id)

    def test_reopen_completed_order(self, db_session, tenant_id, open_session):
        order = self._closed_with_order(db_session, tenant_id, open_session)
        assert order.status == OrderStatus.COMPLETED

        result = OrderReopenService(db_session).reopen_order(order.id, tenant_id, "Ana Admin", is_admin=True)
        reopened = result["order"]
        assert reopened.status == OrderStatus.DELIVERED
        assert reopened.completed_at is None
        assert classify_order(reopened).stage == SettlementStage.PENDING_SETTLEMENT
        assert reopened.audit_log[-1].action == AuditAction.REOPENED
        assert result["session_id"] == open_session.id
        assert result["warning"] is not None

    def test_reopen_preserves_session_totals(self, db_session, tenant_id, open_session):
        order = self._closed_with_order(db_session, tenant_id, open_session)
        OrderReopenService(db_session).reopen_order(order.id, tenant_id, "Ana Admin", is_admin=True)

        session = CashSessionService(db_session).get_session(open_session.id, tenant_id)
        db_session.refresh(session)
        assert session.expected_amount == Decimal("700.00")
        assert session.declared_amount == Decimal("700.00")
        assert session.difference == Decimal("0.00")

    def test_reopen_legacy_cut_order(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        order.cash_cut_id = uuid4()
        db_session.commit()

        result = OrderReopenService(db_session).reopen_order(order.id, tenant_id, "Ana Admin", is_admin=True)
        assert result["order"].cash_cut_id is None
        assert result["order"].status == OrderStatus.DELIVERED

    def test_non_admin_cannot_reopen(self, db_session, tenant_id, open_session):
        order = self._closed_with_order(db_session, tenant_id, open_session)
        with pytest.raises(NotAuthorized):
            OrderReopenService(db_session).reopen_order(order.id, tenant_id, "Carlos", is_admin=False)
        db_session.refresh(order)
        assert order.status == OrderStatus.COMPLETED

    def test_reopen_active_order_rejected(self, db_session, tenant_id, open_session):
        order = create(db_session, tenant_id)
        with pytest.raises(InvalidOrderState):
            OrderReopenService(db_session).reopen_order(order.id, tenant_id, "Ana", is_admin=True)

    def test_reopen_pending_order_only_logs(self, db_session, tenant_id, open_session):
        """Una orden por liquidar se puede reabrir; no regresa a activa"""
        order = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        result = OrderReopenService(db_session).reopen_order(order.id, tenant_id, "Ana", is_admin=True)
        assert result["order"].status == OrderStatus.DELIVERED
        assert result["warning"] is None
        assert result["order"].audit_log[-1].action == AuditAction.REOPENED


# ===== MIGRACIÓN =====

class TestLegacyNormalization:

    def test_delivered_with_cut_becomes_completed(self, db_session, tenant_id, open_session):
        legacy = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        legacy.cash_cut_id = uuid4()
        untouched = create(db_session, tenant_id, status=OrderStatus.DELIVERED)
        db_session.commit()

        assert normalize_legacy_settlement(db_session) == 1

        db_session.expire_all()
        legacy = db_session.get(Order, legacy.id)
        assert legacy.status == OrderStatus.COMPLETED
        assert legacy.completed_at is not None
        assert classify_order(legacy).is_settled
        assert db_session.get(Order, untouched.id).status == OrderStatus.DELIVERED


class TestSchemaMigrations:
    """Migraciones Alembic sobre una base vacía"""

    def test_upgrade_head_builds_schema_and_normalizes(self, tmp_path):
        from alembic import command
        from sqlalchemy import create_engine, inspect

        import migrate

        url = f"sqlite:///{tmp_path}/migrated.db"
        cfg = migrate.get_alembic_config()
        cfg.set_main_option("sqlalchemy.url", url)
        cfg.attributes["configure_logger"] = False

        command.upgrade(cfg, "head")

        engine = create_engine(url)
        try:
            tables = set(inspect(engine).get_table_names())
            assert {"cash_sessions", "orders", "order_audit_entries", "expenses"} <= tables
            folio_constraints = {
                c["name"] for c in inspect(engine).get_unique_constraints("orders")
            }
            assert "uq_order_tenant_folio" in folio_constraints
        finally:
            engine.dispose()

        command.downgrade(cfg, "base")
        engine = create_engine(url)
        try:
            assert "orders" not in inspect(engine).get_table_names()
        finally:
            engine.dispose()


# ===== API =====

class TestOrdersAPI:

    def test_create_without_session_is_409(self, client, cashier_headers):
        response = client.post("/api/v1/orders", json={
            "items": [{"name": "Agua", "quantity": 1, "unit_price": "15"}]
        }, headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "NoOpenSession"

    def test_create_and_read(self, client, cashier_headers):
        client.post("/api/v1/cash-sessions/open", json={"initial_float": "0"}, headers=cashier_headers)
        response = client.post("/api/v1/orders", json={
            "items": [{"name": "Agua", "quantity": 2, "price": "15", "modifiers": ["Fría"]}],
            "payment_method": "card"
        }, headers=cashier_headers)
        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["total"]) == Decimal("30")
        assert data["settlement_stage"] == "active"
        assert data["audit_log"][0]["label"] == "Apertura"

        detail = client.get(f"/api/v1/orders/{data['id']}", headers=cashier_headers)
        assert detail.json()["folio"] == data["folio"]

        listing = client.get("/api/v1/orders", params={"stage": "active"}, headers=cashier_headers)
        assert listing.json()["total"] == 1

    def test_reopen_requires_admin(self, client, cashier_headers, admin_headers):
        session = client.post("/api/v1/cash-sessions/open", json={"initial_float": "0"},
                              headers=cashier_headers).json()
        order = client.post("/api/v1/orders", json={
            "items": [{"name": "Agua", "quantity": 1, "unit_price": "15"}],
            "status": "delivered"
        }, headers=cashier_headers).json()
        client.post(f"/api/v1/cash-sessions/{session['id']}/close",
                    json={"declared_amount": "15"}, headers=cashier_headers)

        denied = client.post(f"/api/v1/orders/{order['id']}/reopen", headers=cashier_headers)
        assert denied.status_code == 403

        allowed = client.post(f"/api/v1/orders/{order['id']}/reopen", headers=admin_headers)
        assert allowed.status_code == 200
        assert allowed.json()["order"]["settlement_stage"] == "pending_settlement"
        assert allowed.json()["warning"] is not None

        audit = client.get(f"/api/v1/orders/{order['id']}/audit", headers=admin_headers).json()
        assert [e["action"] for e in audit] == ["CREATED", "STATUS_CHANGE", "REOPENED"]
