"""
Esquemas Pydantic para gastos de caja
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.modules.expenses.models import EXPENSE_CATEGORIES


class ExpenseCreate(BaseModel):
    """Gasto pagado desde la caja del turno abierto"""
    amount: Decimal = Field(..., gt=0, description="Monto del gasto")
    category: str = Field("Otros", description=f"Una de: {', '.join(EXPENSE_CATEGORIES)}")
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        if v not in EXPENSE_CATEGORIES:
            raise ValueError(f"Categoría inválida. Opciones: {', '.join(EXPENSE_CATEGORIES)}")
        return v


class ExpenseOut(BaseModel):
    id: UUID
    session_id: UUID
    amount: Decimal
    category: str
    description: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ExpenseList(BaseModel):
    expenses: List[ExpenseOut]
    total: int
    total_amount: Decimal
    limit: int
    offset: int
