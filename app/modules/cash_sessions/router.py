"""
Routers FastAPI para sesiones de caja (turnos)

- Apertura y cierre con arqueo
- Turno actual y vista previa del arqueo ciego
- Historial y detalle con resumen vivo
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.cash_sessions.models import SessionStatus
from app.modules.cash_sessions.schemas import (
    BlindCutPreview, CashSessionClose, CashSessionDetail, CashSessionList,
    CashSessionOpen, CashSessionOut
)
from app.modules.cash_sessions.service import CashSessionService


router = APIRouter(prefix="/cash-sessions", tags=["Cash Sessions"])

_VIEW_ROLES = STAFF_ROLES + ["accountant"]


def _session_out(session, auth_context: AuthContext) -> CashSessionOut:
    """El fondo de un turno abierto solo lo ven admins, igual que el esperado."""
    data = CashSessionOut.model_validate(session)
    if session.status == SessionStatus.OPEN and not auth_context.is_admin:
        data.initial_float = None
    return data


@router.post("/open", response_model=CashSessionOut, status_code=status.HTTP_201_CREATED)
async def open_cash_session(
    session_data: CashSessionOpen,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Abrir turno de caja.

    - **initial_float**: fondo inicial (>= 0)
    - **employee_id**: empleado asignado (opcional)

    Solo puede haber un turno abierto por empresa; un segundo intento
    responde 409 con el id del turno abierto.
    """
    service = CashSessionService(db)
    return service.open_session(
        tenant_id=auth_context.tenant_id,
        user_id=auth_context.user_id,
        initial_float=session_data.initial_float,
        employee_id=session_data.employee_id,
        notes=session_data.notes
    )


@router.get("/current", response_model=CashSessionOut)
async def get_current_cash_session(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(_VIEW_ROLES)),
    db: Session = Depends(get_db)
):
    """Turno abierto actual; 404 si no hay ninguno."""
    service = CashSessionService(db)
    session = service.get_open_session(auth_context.tenant_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No hay un turno de caja abierto")
    return _session_out(session, auth_context)


@router.get("/current/preview", response_model=BlindCutPreview)
async def get_blind_cut_preview(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Resumen del turno abierto antes del arqueo.

    Fondo, ventas, gastos y esperado solo se muestran a owner/admin; el
    cajero declara sin conocerlos.
    """
    service = CashSessionService(db)
    return service.get_blind_cut_preview(
        tenant_id=auth_context.tenant_id,
        reveal_expected=auth_context.is_admin
    )


@router.post("/{session_id}/close", response_model=CashSessionOut)
async def close_cash_session(
    close_data: CashSessionClose,
    session_id: UUID = Path(..., description="ID de la sesión de caja"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Cerrar turno con arqueo.

    - **declared_amount**: efectivo contado físicamente

    Calcula esperado = fondo inicial + ventas en efectivo - gastos y la
    diferencia declarada - esperada. Las órdenes contadas pasan a liquidadas.
    """
    service = CashSessionService(db)
    return service.close_session(
        session_id=session_id,
        tenant_id=auth_context.tenant_id,
        declared_amount=close_data.declared_amount,
        user_id=auth_context.user_id,
        closed_by_name=close_data.closed_by_name or auth_context.actor_name,
        notes=close_data.notes
    )


@router.get("", response_model=CashSessionList)
async def get_cash_sessions(
    status: Optional[SessionStatus] = Query(None, description="Filtrar por estado (open/closed)"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(_VIEW_ROLES)),
    db: Session = Depends(get_db)
):
    """Historial de turnos, más recientes primero."""
    service = CashSessionService(db)
    result = service.get_sessions(
        tenant_id=auth_context.tenant_id,
        status=status,
        limit=limit,
        offset=offset
    )
    return CashSessionList(
        sessions=[_session_out(s, auth_context) for s in result["sessions"]],
        total=result["total"],
        limit=result["limit"],
        offset=result["offset"]
    )


@router.get("/{session_id}", response_model=CashSessionDetail)
async def get_cash_session_detail(
    session_id: UUID = Path(..., description="ID de la sesión de caja"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(_VIEW_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Detalle del turno con su resumen vivo.

    En turnos cerrados, `drift` distinto de 0 indica órdenes reabiertas
    después del cierre. En un turno abierto los montos solo se muestran a
    owner/admin.
    """
    service = CashSessionService(db)
    detail = service.get_session_detail(
        session_id, auth_context.tenant_id, reveal_expected=auth_context.is_admin
    )
    session_data = _session_out(detail["session"], auth_context).model_dump()
    return CashSessionDetail(
        **session_data,
        summary=detail["summary"],
        live_expected_amount=detail["live_expected_amount"],
        drift=detail["drift"],
        warning=detail["warning"]
    )
