"""
Reconciliation Reports Router

Resumen financiero por sesión de caja o por rango de fechas.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, REPORT_ROLES
from app.modules.auth.schemas import AuthContext
from ..services.reconciliation import ReconciliationService
from ..schemas import SessionFinancialSummary, RangeFinancialSummary


router = APIRouter(prefix="/reports/summary", tags=["Reports"])


@router.get("", response_model=RangeFinancialSummary)
async def get_range_summary(
    start_date: date = Query(..., description="Primer día del periodo (zona del negocio)"),
    end_date: date = Query(..., description="Último día del periodo, inclusive"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(REPORT_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Resumen ejecutivo del periodo.

    - Ventas entregadas o liquidadas creadas dentro del rango
    - Gastos registrados dentro del rango
    - Desglose por método de pago, ticket promedio y método principal
    """
    service = ReconciliationService(db, auth_context.tenant_id)
    return service.summarize_range(start_date, end_date)


@router.get("/sessions/{session_id}", response_model=SessionFinancialSummary)
async def get_session_summary(
    session_id: UUID = Path(..., description="ID de la sesión de caja"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(REPORT_ROLES)),
    db: Session = Depends(get_db)
):
    """Resumen vivo de una sesión, con el monto esperado recalculado."""
    service = ReconciliationService(db, auth_context.tenant_id)
    return service.summarize_session(session_id)
