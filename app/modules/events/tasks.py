"""
Background tasks for domain event relay
"""
from kombu import Exchange

from app.core.celery import celery_app
import logging

logger = logging.getLogger(__name__)

events_exchange = Exchange("domain_events", type="topic", durable=False)


@celery_app.task(bind=True, max_retries=3)
def relay_domain_event(self, message: dict):
    """
    Entrega un evento de dominio a la capa de notificaciones en vivo.

    El canal es por tenant (`tenant:<id>:events`) sobre el mismo Redis del broker.
    """
    channel = f"tenant:{message['tenant_id']}:events"
    try:
        with self.app.connection_for_write() as conn:
            producer = conn.Producer(serializer="json")
            producer.publish(
                message,
                exchange=events_exchange,
                routing_key=channel,
                declare=[events_exchange],
                retry=True
            )
        logger.info(f"Relayed {message['type']} on {channel}")
        return {"status": "relayed", "channel": channel}
    except Exception as e:
        logger.error(f"Failed to relay {message['type']} on {channel}: {str(e)}")
        raise self.retry(exc=e, countdown=5)
