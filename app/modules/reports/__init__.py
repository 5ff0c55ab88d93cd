"""
Reports Module

Reportes de conciliación y análisis sobre las tablas del ledger de caja
(sesiones, órdenes y gastos). No crea tablas propias: todo resumen se
recalcula desde las filas fuente.

Architecture Pattern: Service Layer
- routers/ -> Define FastAPI endpoints con validaciones
- services/ -> Lógica de agregación y consultas SQL
- schemas/ -> Modelos Pydantic para responses
- utils/ -> Rangos de fechas y exportación CSV
"""

from .routers import reconciliation_router, analytics_router

__all__ = [
    "reconciliation_router",
    "analytics_router",
]
