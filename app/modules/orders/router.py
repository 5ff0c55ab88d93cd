"""
Routers FastAPI para órdenes

Define los endpoints REST para:
- Creación de órdenes en el turno abierto
- Flujo de estados y edición
- Listado por etapa de liquidación y órdenes por liquidar
- Reapertura administrativa y bitácora

Todos los endpoints filtran por el tenant del contexto JWT.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.orders.models import PaymentMethod
from app.modules.orders.reopen import OrderReopenService
from app.modules.orders.schemas import (
    AuditEntryOut, OrderCreate, OrderDetail, OrderList, OrderOut,
    OrderStatusUpdate, OrderUpdate, ReopenResult
)
from app.modules.orders.service import OrderService, serialize_order
from app.modules.orders.settlement import SettlementStage


router = APIRouter(prefix="/orders", tags=["Orders"])

_VIEW_ROLES = STAFF_ROLES + ["accountant"]


@router.post("", response_model=OrderDetail, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Crear una orden ligada al turno abierto.

    - **items**: líneas con precio y costo al momento de la venta
    - **payment_method**: cash, card o transfer
    - **order_type**: dine_in, pickup o delivery

    Sin turno abierto responde 409 (NoOpenSession) y no se guarda nada.
    """
    service = OrderService(db)
    order = service.create_order(
        order_data=order_data,
        tenant_id=auth_context.tenant_id,
        user_id=auth_context.user_id,
        actor_name=auth_context.actor_name
    )
    return serialize_order(order, include_audit=True)


@router.get("", response_model=OrderList)
async def get_orders(
    stage: Optional[SettlementStage] = Query(None, description="active, pending_settlement o settled"),
    session_id: Optional[UUID] = Query(None, description="Filtrar por sesión de caja"),
    start_date: Optional[date] = Query(None, description="Fecha inicial (zona del negocio)"),
    end_date: Optional[date] = Query(None, description="Fecha final, inclusive"),
    payment_method: Optional[PaymentMethod] = Query(None, description="Filtrar por método de pago"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(_VIEW_ROLES)),
    db: Session = Depends(get_db)
):
    """Listar órdenes por etapa de liquidación, más recientes primero."""
    service = OrderService(db)
    result = service.get_orders(
        tenant_id=auth_context.tenant_id,
        stage=stage,
        session_id=session_id,
        start_date=start_date,
        end_date=end_date,
        payment_method=payment_method,
        limit=limit,
        offset=offset
    )
    return OrderList(
        orders=[serialize_order(order) for order in result["orders"]],
        total=result["total"],
        limit=result["limit"],
        offset=result["offset"]
    )


@router.get("/unsettled", response_model=List[OrderOut])
async def get_unsettled_orders(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(_VIEW_ROLES)),
    db: Session = Depends(get_db)
):
    """Órdenes entregadas que ningún cierre ha liquidado ("Por liquidar")."""
    service = OrderService(db)
    return [serialize_order(order) for order in service.get_unsettled_orders(auth_context.tenant_id)]


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order(
    order_id: UUID = Path(..., description="ID de la orden"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(_VIEW_ROLES)),
    db: Session = Depends(get_db)
):
    service = OrderService(db)
    return serialize_order(service.get_order(order_id, auth_context.tenant_id), include_audit=True)


@router.patch("/{order_id}/status", response_model=OrderDetail)
async def update_order_status(
    status_data: OrderStatusUpdate,
    order_id: UUID = Path(..., description="ID de la orden"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Avanzar la orden: pending → confirmed → preparing → ready → (on_the_way) → delivered.

    Se puede cancelar desde cualquier estado operativo. `completed` solo lo
    asigna el cierre de turno.
    """
    service = OrderService(db)
    order = service.update_status(
        order_id=order_id,
        new_status=status_data.status,
        tenant_id=auth_context.tenant_id,
        actor_name=auth_context.actor_name
    )
    return serialize_order(order, include_audit=True)


@router.patch("/{order_id}", response_model=OrderDetail)
async def update_order(
    order_data: OrderUpdate,
    order_id: UUID = Path(..., description="ID de la orden"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    service = OrderService(db)
    order = service.update_order(
        order_id=order_id,
        order_data=order_data,
        tenant_id=auth_context.tenant_id,
        actor_name=auth_context.actor_name
    )
    return serialize_order(order, include_audit=True)


@router.post("/{order_id}/reopen", response_model=ReopenResult)
async def reopen_order(
    order_id: UUID = Path(..., description="ID de la orden"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Reabrir una orden liquidada (solo owner/admin).

    La orden vuelve a "Por liquidar". Los montos del cierre de su sesión no se
    modifican; si la sesión ya cerró se devuelve un aviso.
    """
    service = OrderReopenService(db)
    result = service.reopen_order(
        order_id=order_id,
        tenant_id=auth_context.tenant_id,
        actor_name=auth_context.actor_name,
        is_admin=auth_context.is_admin
    )
    return ReopenResult(
        order=serialize_order(result["order"], include_audit=True),
        session_id=result["session_id"],
        warning=result["warning"]
    )


@router.get("/{order_id}/audit", response_model=List[AuditEntryOut])
async def get_order_audit_log(
    order_id: UUID = Path(..., description="ID de la orden"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(_VIEW_ROLES)),
    db: Session = Depends(get_db)
):
    """Bitácora de la orden en orden de inserción; la primera entrada es "Apertura"."""
    service = OrderService(db)
    return service.get_audit_log(order_id, auth_context.tenant_id)
