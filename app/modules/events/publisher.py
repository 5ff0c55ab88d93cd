import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from app.core.config import settings

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    SESSION_OPENED = "session.opened"
    SESSION_CLOSED = "session.closed"
    ORDER_CREATED = "order.created"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_REOPENED = "order.reopened"
    EXPENSE_CREATED = "expense.created"


def _serialize(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


def publish_event(event_type: EventType, tenant_id: UUID,
                  payload: Optional[Dict[str, Any]] = None) -> bool:
    """
    Encola el evento para el relay de notificaciones.

    Nunca lanza: un broker caído o ausente solo se registra en el log.
    Retorna True si el evento fue encolado.
    """
    if not settings.EVENT_RELAY_ENABLED:
        logger.debug(f"Event relay disabled, dropping {event_type.value} for tenant {tenant_id}")
        return False

    message = {
        "type": event_type.value,
        "tenant_id": str(tenant_id),
        "payload": _serialize(payload or {}),
    }

    try:
        from app.modules.events.tasks import relay_domain_event
        relay_domain_event.delay(message)
        return True
    except Exception as e:
        logger.warning(f"Could not relay event {event_type.value} for tenant {tenant_id}: {e}")
        return False
