"""
Tests para el relay de eventos de dominio
"""

from decimal import Decimal
from uuid import uuid4

from app.core.config import settings
from app.modules.events import EventType, publish_event
from app.modules.events import tasks
from app.modules.events.publisher import _serialize
from app.modules.orders.models import PaymentMethod


class TestPublishEvent:

    def test_disabled_relay_drops_event(self, monkeypatch):
        monkeypatch.setattr(settings, "EVENT_RELAY_ENABLED", False)
        assert publish_event(EventType.SESSION_OPENED, uuid4(), {"session_id": uuid4()}) is False

    def test_message_shape(self, monkeypatch):
        sent = []
        monkeypatch.setattr(settings, "EVENT_RELAY_ENABLED", True)
        monkeypatch.setattr(tasks.relay_domain_event, "delay", lambda message: sent.append(message))

        tenant_id = uuid4()
        assert publish_event(EventType.ORDER_CREATED, tenant_id, {
            "total": Decimal("10.50"), "payment_method": PaymentMethod.CARD
        }) is True
        assert sent == [{
            "type": "order.created",
            "tenant_id": str(tenant_id),
            "payload": {"total": "10.50", "payment_method": "card"},
        }]

    def test_broker_failure_is_swallowed(self, monkeypatch, caplog):
        """Un broker caído nunca bloquea la operación principal"""
        def broken(message):
            raise ConnectionError("redis unavailable")

        monkeypatch.setattr(settings, "EVENT_RELAY_ENABLED", True)
        monkeypatch.setattr(tasks.relay_domain_event, "delay", broken)

        with caplog.at_level("WARNING"):
            assert publish_event(EventType.SESSION_CLOSED, uuid4()) is False
        assert "redis unavailable" in caplog.text

    def test_serialize_nested(self):
        session_id = uuid4()
        assert _serialize({"ids": [session_id]}) == {"ids": [str(session_id)]}
