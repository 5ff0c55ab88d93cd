"""
Módulo de sesiones de caja (turnos)

ENTIDADES PRINCIPALES:
- CashSession: turno con fondo inicial, monto esperado, declarado y diferencia

REGLAS DE NEGOCIO:
- A lo sumo un turno abierto por empresa (lock por tenant en apertura/cierre)
- El cierre es terminal; sus montos registrados nunca se recalculan
- Arqueo ciego: el esperado solo se revela a owner/admin antes de declarar

El servicio y el router se importan desde sus módulos (service, router).
"""

from .models import CashSession, SessionStatus
from .schemas import (
    CashSessionOpen, CashSessionClose, CashSessionOut,
    CashSessionDetail, CashSessionList, BlindCutPreview
)

__all__ = [
    # Models
    "CashSession", "SessionStatus",

    # Schemas
    "CashSessionOpen", "CashSessionClose", "CashSessionOut",
    "CashSessionDetail", "CashSessionList", "BlindCutPreview",
]
