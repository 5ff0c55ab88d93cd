"""
Lock serializador por tenant para abrir y cerrar sesiones y asignar folios
de órdenes.

En PostgreSQL se usa un advisory lock transaccional, que se libera solo al
hacer commit/rollback. En otros motores (SQLite en desarrollo y tests) se usa
un lock de proceso por tenant, que solo protege dentro de un mismo worker.
"""
import logging
import threading
import weakref
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# La entrada desaparece cuando ningún hilo conserva el lock del tenant
_process_locks: "weakref.WeakValueDictionary[UUID, threading.Lock]" = weakref.WeakValueDictionary()
_registry_guard = threading.Lock()


def _process_lock(tenant_id: UUID) -> threading.Lock:
    with _registry_guard:
        lock = _process_locks.get(tenant_id)
        if lock is None:
            lock = threading.Lock()
            _process_locks[tenant_id] = lock
        return lock


@contextmanager
def tenant_session_lock(db: Session, tenant_id: UUID):
    """
    Mantiene exclusión mutua sobre el conjunto de sesiones del tenant.

    El bloque protegido debe terminar con commit o rollback dentro del `with`.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        db.execute(
            text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))"),
            {"key": f"cash_sessions:{tenant_id}"}
        )
        yield
        return

    lock = _process_lock(tenant_id)
    with lock:
        logger.debug(f"Acquired process lock for tenant {tenant_id}")
        yield
