"""
Pydantic schemas for Reports module

Defines response models for the reconciliation and analytics endpoints.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class FinancialSummary(BaseModel):
    """Resumen financiero derivado (nunca persistido)"""
    total_sales: Decimal = Field(description="Suma de totales de las órdenes")
    total_expenses: Decimal = Field(description="Suma de gastos")
    net_profit: Decimal = Field(description="Ventas - gastos")
    by_payment: Dict[str, Decimal] = Field(description="Ventas por método; todos los métodos presentes")
    order_count: int
    order_ids: List[UUID]
    avg_ticket: Decimal = Field(description="Ventas / max(órdenes, 1)")
    top_payment_method: Optional[str] = Field(None, description="Método con más ventas")


class SessionFinancialSummary(FinancialSummary):
    session_id: UUID
    initial_float: Decimal
    expected_amount: Decimal = Field(description="Fondo inicial + ventas - gastos, recalculado")


class RangeFinancialSummary(FinancialSummary):
    period_start: date
    period_end: date


class DailySales(BaseModel):
    date: str
    total: Decimal


class SalesAnalyticsResponse(BaseModel):
    period_start: date
    period_end: date
    total_revenue: Decimal
    average_ticket: Decimal
    delivered_count: int
    cancelled_count: int
    by_payment: Dict[str, Decimal]
    top_payment_method: Optional[str] = None
    daily: List[DailySales]


class CategoryExpense(BaseModel):
    category: str
    total: Decimal


class ExpenseAnalyticsResponse(BaseModel):
    period_start: date
    period_end: date
    total_expenses: Decimal
    expense_count: int
    by_category: List[CategoryExpense]


class CashCutItem(BaseModel):
    """Sesión cerrada en el reporte de auditoría de cortes"""
    id: UUID
    employee_id: Optional[UUID] = None
    closed_by_name: Optional[str] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
    initial_float: Decimal
    expected_amount: Optional[Decimal] = None
    declared_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None

    model_config = {"from_attributes": True}


class CashCutAnalyticsResponse(BaseModel):
    period_start: date
    period_end: date
    total_cuts: int
    total_declared: Decimal
    total_difference: Decimal
    perfect_cuts: int = Field(description="Cortes con diferencia exactamente 0")
    sessions: List[CashCutItem]
