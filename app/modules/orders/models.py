"""
Modelos SQLAlchemy para órdenes (ventas) y su bitácora de auditoría

- Order: venta con snapshot monetario (total, método de pago, líneas con
  precio/costo congelados al momento de crearla)
- OrderAuditEntry: bitácora append-only por orden; la primera entrada
  siempre es CREATED ("Apertura")

Marcadores de liquidación: `cash_cut_id` (legado, corte histórico) y el
estado `completed` (cierre de sesión). La clasificación se deriva en
app.modules.orders.settlement, nunca se guarda.
"""

from app.database.database import Base
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Numeric, Enum, Text, JSON, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, utcnow
import enum


# ===== ENUMS =====

class OrderStatus(enum.Enum):
    """Flujo de estados de una orden"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    COMPLETED = "completed"     # Solo al cerrar la sesión
    CANCELLED = "cancelled"


class PaymentMethod(enum.Enum):
    """Métodos de pago; el orden define el desempate en reportes"""
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


class OrderType(enum.Enum):
    DINE_IN = "dine_in"
    PICKUP = "pickup"
    DELIVERY = "delivery"


class AuditAction(enum.Enum):
    CREATED = "CREATED"
    STATUS_CHANGE = "STATUS_CHANGE"
    EDITED = "EDITED"
    REOPENED = "REOPENED"


# ===== MODELOS =====

class Order(Base, TenantMixin, TimestampMixin):
    """
    Orden de venta ligada a exactamente una sesión de caja.

    `session_id` puede ser NULL solo en filas heredadas.
    """
    __tablename__ = "orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("cash_sessions.id"), nullable=True, index=True)
    folio = Column(Integer, nullable=False)

    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)
    order_type = Column(Enum(OrderType), nullable=False, default=OrderType.DINE_IN)
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH, index=True)

    total = Column(Numeric(12, 2), nullable=False, default=0)
    items = Column(JSON, nullable=False, default=list)  # Líneas canónicas congeladas

    customer_name = Column(String(150), nullable=True)
    table_number = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)

    # Marcadores de cierre
    cash_cut_id = Column(Uuid(as_uuid=True), nullable=True, index=True)  # Legado
    closed_at = Column(DateTime, nullable=True)      # Entregada/cancelada
    completed_at = Column(DateTime, nullable=True)   # Liquidada al cerrar sesión

    session = relationship("CashSession", back_populates="orders")
    audit_log = relationship(
        "OrderAuditEntry",
        back_populates="order",
        order_by="OrderAuditEntry.position",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "folio", name="uq_order_tenant_folio"),
    )


class OrderAuditEntry(Base):
    """
    Entrada de bitácora de una orden.

    Solo se insertan; no hay camino de edición ni borrado.
    """
    __tablename__ = "order_audit_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    action = Column(Enum(AuditAction), nullable=False)
    details = Column(Text, nullable=True)
    user = Column(String(150), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    order = relationship("Order", back_populates="audit_log")

    __table_args__ = (
        UniqueConstraint("order_id", "position", name="uq_audit_order_position"),
    )
