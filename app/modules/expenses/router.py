from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.expenses.schemas import ExpenseCreate, ExpenseList, ExpenseOut
from app.modules.expenses.service import ExpenseService


router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.post("", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense_data: ExpenseCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Registrar un gasto pagado con efectivo de la caja.

    Se liga al turno abierto; sin turno abierto responde 409.
    """
    service = ExpenseService(db)
    return service.create_expense(
        expense_data=expense_data,
        tenant_id=auth_context.tenant_id,
        user_id=auth_context.user_id
    )


@router.get("", response_model=ExpenseList)
async def get_expenses(
    session_id: Optional[UUID] = Query(None, description="Filtrar por sesión de caja"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    category: Optional[str] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES + ["accountant"])),
    db: Session = Depends(get_db)
):
    service = ExpenseService(db)
    return service.get_expenses(
        tenant_id=auth_context.tenant_id,
        session_id=session_id,
        start_date=start_date,
        end_date=end_date,
        category=category,
        limit=limit,
        offset=offset
    )
