"""
Analytics Reports Router

Ventas, gastos y auditoría de cortes por rango de fechas.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, REPORT_ROLES
from app.modules.auth.schemas import AuthContext
from ..services.analytics import AnalyticsReportService
from ..schemas import (
    SalesAnalyticsResponse,
    ExpenseAnalyticsResponse,
    CashCutAnalyticsResponse
)
from ..utils import create_csv_response, prepare_cash_cuts_csv, CSV_HEADERS


router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/sales", response_model=SalesAnalyticsResponse)
async def get_sales_analytics(
    start_date: date = Query(..., description="Start date for the report period"),
    end_date: date = Query(..., description="End date for the report period"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(REPORT_ROLES)),
    db: Session = Depends(get_db)
):
    """KPIs de ventas y serie diaria del periodo."""
    service = AnalyticsReportService(db, auth_context.tenant_id)
    return service.get_sales_analytics(start_date, end_date)


@router.get("/expenses", response_model=ExpenseAnalyticsResponse)
async def get_expense_analytics(
    start_date: date = Query(..., description="Start date for the report period"),
    end_date: date = Query(..., description="End date for the report period"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(REPORT_ROLES)),
    db: Session = Depends(get_db)
):
    """Gastos del periodo por categoría."""
    service = AnalyticsReportService(db, auth_context.tenant_id)
    return service.get_expense_analytics(start_date, end_date)


@router.get("/cash-cuts", response_model=None)
async def get_cash_cut_analytics(
    start_date: date = Query(..., description="Start date for the report period"),
    end_date: date = Query(..., description="End date for the report period"),
    export: Optional[str] = Query(None, pattern="^(csv)$", description="Export format: csv"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(REPORT_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Auditoría de cortes de caja: sesiones cerradas en el periodo con su
    monto declarado, diferencia y cantidad de cortes perfectos.
    """
    service = AnalyticsReportService(db, auth_context.tenant_id)
    report_data = service.get_cash_cut_analytics(start_date, end_date)

    if export == "csv":
        csv_data = prepare_cash_cuts_csv(report_data)
        filename = f"cortes_caja_{start_date}_{end_date}.csv"
        return create_csv_response(csv_data, filename, CSV_HEADERS["cash_cuts"])

    return CashCutAnalyticsResponse.model_validate(report_data, from_attributes=True)
