"""
Modelos SQLAlchemy para gastos pagados desde caja
"""

from app.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin

EXPENSE_CATEGORIES = ["Operación", "Insumos", "Nómina", "Mantenimiento", "Marketing", "Otros"]


class Expense(Base, TenantMixin, TimestampMixin):
    """
    Gasto de caja. Siempre pertenece a una sesión y es inmutable.
    """
    __tablename__ = "expenses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("cash_sessions.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(String(50), nullable=False, default="Otros")
    description = Column(Text, nullable=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)

    session = relationship("CashSession", back_populates="expenses")
