"""
Esquemas Pydantic para sesiones de caja

Apertura, cierre (arqueo ciego) y vistas de historial/detalle.
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import datetime

from app.modules.cash_sessions.models import SessionStatus


class CashSessionOpen(BaseModel):
    """Esquema para abrir un turno de caja"""
    initial_float: Decimal = Field(..., ge=0, description="Fondo inicial en efectivo")
    employee_id: Optional[UUID] = Field(None, description="Empleado asignado; vacío si opera el dueño")
    notes: Optional[str] = Field(None, max_length=500, description="Notas de apertura")


class CashSessionClose(BaseModel):
    """Esquema para cerrar un turno con el monto contado físicamente"""
    declared_amount: Decimal = Field(..., ge=0, description="Efectivo contado por el operador")
    closed_by_name: Optional[str] = Field(None, max_length=150, description="Nombre de quien cierra")
    notes: Optional[str] = Field(None, max_length=500, description="Notas de cierre")


class CashSessionOut(BaseModel):
    """Esquema de salida para sesión de caja"""
    id: UUID
    employee_id: Optional[UUID] = None
    status: SessionStatus
    initial_float: Optional[Decimal] = Field(None, description="Oculto a cajeros mientras el turno está abierto")
    expected_amount: Optional[Decimal] = None
    declared_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    outcome: Optional[str] = Field(None, description="shortage | surplus | exact")
    opened_by: Optional[UUID] = None
    closed_by: Optional[UUID] = None
    closed_by_name: Optional[str] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class SessionSummaryOut(BaseModel):
    """
    Resumen financiero vivo de una sesión. En el arqueo ciego los montos van
    en null y solo se conservan los conteos.
    """
    total_sales: Optional[Decimal] = None
    total_expenses: Optional[Decimal] = None
    net_profit: Optional[Decimal] = None
    by_payment: Optional[Dict[str, Decimal]] = None
    order_count: int
    order_ids: List[UUID]
    avg_ticket: Optional[Decimal] = None
    top_payment_method: Optional[str] = None


class CashSessionDetail(CashSessionOut):
    """Sesión con su resumen vivo y la deriva respecto a lo registrado al cierre"""
    summary: SessionSummaryOut
    live_expected_amount: Optional[Decimal] = Field(
        None, description="Esperado recalculado con las órdenes actuales; null en arqueo ciego"
    )
    drift: Optional[Decimal] = Field(
        None, description="live_expected_amount - expected_amount; distinto de 0 tras reaperturas"
    )
    warning: Optional[str] = None


class BlindCutPreview(BaseModel):
    """
    Vista previa del arqueo. Fondo, montos y `expected_amount` solo se revelan
    a administradores; los cajeros declaran sin conocer la meta.
    """
    session_id: UUID
    initial_float: Optional[Decimal] = None
    summary: SessionSummaryOut
    expected_amount: Optional[Decimal] = None
    expected_revealed: bool


class CashSessionList(BaseModel):
    """Esquema para historial de sesiones"""
    sessions: List[CashSessionOut]
    total: int
    limit: int
    offset: int
