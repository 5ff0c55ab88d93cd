"""
Errores de dominio del ledger de caja.

Todos heredan de HTTPException para que los servicios los lancen igual que
cualquier otro error HTTP; el `detail` es un dict con el contexto suficiente
para que el operador se corrija sin soporte (tenant, acción intentada,
sesión abierta si existe).
"""
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    return value


class LedgerError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, tenant_id: Optional[UUID] = None,
                 action: Optional[str] = None, **context):
        self.message = message
        self.tenant_id = tenant_id
        self.action = action
        self.context = context
        detail = {
            "error": type(self).__name__,
            "message": message,
            "tenant_id": _jsonable(tenant_id),
            "action": action,
        }
        detail.update({key: _jsonable(value) for key, value in context.items()})
        super().__init__(status_code=self.status_code, detail=detail)


class SessionConflict(LedgerError):
    """Ya existe una sesión abierta para el tenant."""
    status_code = status.HTTP_409_CONFLICT


class NoOpenSession(LedgerError):
    """Se intentó registrar una venta o gasto sin turno abierto."""
    status_code = status.HTTP_409_CONFLICT


class InvalidAmount(LedgerError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotAuthorized(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidOrderState(LedgerError):
    status_code = status.HTTP_409_CONFLICT


class SessionNotFound(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND


class OrderNotFound(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND


class SessionClosed(LedgerError):
    """La sesión ya fue cerrada; el cierre es terminal."""
    status_code = status.HTTP_409_CONFLICT
