"""
Esquemas Pydantic para órdenes

Las líneas de la orden se normalizan en la frontera a una sola forma
canónica: los modificadores pueden llegar como `modifiers`, `extras` o
`variantes`, y el precio como `unit_price` o `price`.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime

from app.modules.orders.models import OrderStatus, OrderType, PaymentMethod
from app.modules.orders.settlement import SettlementStage

_MODIFIER_KEYS = ("modifiers", "extras", "variantes")
CENT = Decimal("0.01")


class OrderModifier(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    price: Decimal = Field(default=Decimal("0"), ge=0)

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_shapes(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data, "price": Decimal("0")}
        if isinstance(data, dict):
            data = dict(data)
            data.setdefault("name", data.pop("nombre", None) or data.get("label"))
            if "price" not in data:
                data["price"] = data.pop("precio", None) or data.pop("extra_price", None) or Decimal("0")
        return data


class OrderItemCreate(BaseModel):
    """Línea de orden canónica"""
    product_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0, description="Precio unitario al momento de la venta")
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0, description="Costo unitario al momento de la venta")
    modifiers: List[OrderModifier] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize_line_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        modifiers = []
        for key in _MODIFIER_KEYS:
            value = data.pop(key, None)
            if value:
                modifiers.extend(value)
        data["modifiers"] = modifiers

        if data.get("unit_price") is None:
            data["unit_price"] = data.get("price")
        data.pop("price", None)

        if data.get("unit_cost") is None:
            data["unit_cost"] = data.pop("cost", None) or data.pop("costo", None) or Decimal("0")

        product = data.pop("product", None)
        if isinstance(product, dict):
            data.setdefault("product_id", product.get("id"))
            if not data.get("name"):
                data["name"] = product.get("name")
        return data

    @property
    def subtotal(self) -> Decimal:
        modifiers_total = sum((m.price for m in self.modifiers), Decimal("0"))
        return ((self.unit_price + modifiers_total) * self.quantity).quantize(CENT, rounding=ROUND_HALF_UP)

    def snapshot(self) -> Dict[str, Any]:
        """Forma congelada que se guarda en la orden (JSON)."""
        return {
            "product_id": str(self.product_id) if self.product_id else None,
            "name": self.name,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "unit_cost": str(self.unit_cost),
            "modifiers": [{"name": m.name, "price": str(m.price)} for m in self.modifiers],
            "subtotal": str(self.subtotal),
        }


class OrderCreate(BaseModel):
    """Esquema para crear una orden en el turno abierto"""
    items: List[OrderItemCreate] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH
    order_type: OrderType = OrderType.DINE_IN
    status: OrderStatus = OrderStatus.PENDING
    customer_name: Optional[str] = Field(None, max_length=150)
    table_number: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, v: OrderStatus) -> OrderStatus:
        if v == OrderStatus.COMPLETED:
            raise ValueError("Una orden no puede crearse liquidada")
        return v


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderUpdate(BaseModel):
    """Edición de datos no monetarios"""
    customer_name: Optional[str] = Field(None, max_length=150)
    table_number: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=1000)
    order_type: Optional[OrderType] = None


class AuditEntryOut(BaseModel):
    position: int
    action: str
    label: str
    details: Optional[str] = None
    user: str
    timestamp: datetime


class OrderOut(BaseModel):
    """Esquema de salida para orden"""
    id: UUID
    folio: int
    session_id: Optional[UUID] = None
    status: OrderStatus
    order_type: OrderType
    payment_method: PaymentMethod
    total: Decimal
    items: List[Dict[str, Any]]
    customer_name: Optional[str] = None
    table_number: Optional[str] = None
    notes: Optional[str] = None
    cash_cut_id: Optional[UUID] = None
    closed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    settlement_stage: SettlementStage
    settlement_reference: Optional[UUID] = None

    model_config = {"from_attributes": True}


class OrderDetail(OrderOut):
    audit_log: List[AuditEntryOut]


class OrderList(BaseModel):
    orders: List[OrderOut]
    total: int
    limit: int
    offset: int


class ReopenResult(BaseModel):
    """Orden reabierta y aviso de discrepancia con el arqueo registrado"""
    order: OrderDetail
    session_id: Optional[UUID] = None
    warning: Optional[str] = None
