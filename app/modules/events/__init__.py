"""
Eventos de dominio del ledger de caja.

Los servicios emiten `session.opened`, `session.closed`, `order.created`,
`order.status_changed`, `order.reopened` y `expense.created`. Una capa de
notificación (dashboards en vivo) puede consumirlos; si no hay suscriptor ni
broker, la operación de negocio no se bloquea.
"""

from .publisher import publish_event, EventType

__all__ = ["publish_event", "EventType"]
