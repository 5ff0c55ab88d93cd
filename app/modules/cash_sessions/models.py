"""
Modelos SQLAlchemy para sesiones de caja (turnos)

- CashSession: turno de caja con fondo inicial, arqueo y diferencia

La regla "a lo sumo una sesión abierta por tenant" no es una restricción de la
base de datos: la aplica CashSessionService bajo un lock por tenant.
"""

from app.database.database import Base
from sqlalchemy import Column, String, DateTime, Numeric, Enum, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, utcnow
import enum


class SessionStatus(enum.Enum):
    """Estados de una sesión de caja"""
    OPEN = "open"       # Turno abierto
    CLOSED = "closed"   # Turno cerrado (terminal)


class CashSession(Base, TenantMixin, TimestampMixin):
    """
    Turno de caja registradora.

    `expected_amount`, `declared_amount` y `difference` se escriben una sola vez
    al cerrar y no se recalculan nunca; la reapertura de órdenes no los toca.
    """
    __tablename__ = "cash_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    employee_id = Column(Uuid(as_uuid=True), nullable=True, index=True)  # None = opera el dueño
    status = Column(Enum(SessionStatus), nullable=False, default=SessionStatus.OPEN, index=True)

    initial_float = Column(Numeric(12, 2), nullable=False, default=0)
    expected_amount = Column(Numeric(12, 2), nullable=True)
    declared_amount = Column(Numeric(12, 2), nullable=True)
    difference = Column(Numeric(12, 2), nullable=True)  # declarado - esperado

    opened_by = Column(Uuid(as_uuid=True), nullable=True)
    closed_by = Column(Uuid(as_uuid=True), nullable=True)
    closed_by_name = Column(String(150), nullable=True)
    opened_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    closed_at = Column(DateTime, nullable=True, index=True)

    notes = Column(Text, nullable=True)

    orders = relationship("Order", back_populates="session")
    expenses = relationship("Expense", back_populates="session")

    @property
    def is_open(self) -> bool:
        return self.status == SessionStatus.OPEN

    @property
    def outcome(self):
        """faltante / sobrante / exacto según la diferencia del arqueo"""
        if self.difference is None:
            return None
        if self.difference < 0:
            return "shortage"
        if self.difference > 0:
            return "surplus"
        return "exact"
