"""
Módulo de órdenes

ENTIDADES PRINCIPALES:
- Order: venta ligada a la sesión abierta, con snapshot de líneas y total
- OrderAuditEntry: bitácora append-only; la entrada 0 es siempre "Apertura"

LIQUIDACIÓN:
- Una orden está liquidada si tiene `cash_cut_id` (corte heredado) o está
  `completed` (cierre de su sesión); ver settlement.classify_order
- Solo un administrador puede reabrir una orden liquidada
"""

from .models import Order, OrderAuditEntry, OrderStatus, OrderType, PaymentMethod, AuditAction
from .settlement import SettlementStage, classify_order, resolve_owning_session

__all__ = [
    "Order", "OrderAuditEntry", "OrderStatus", "OrderType", "PaymentMethod", "AuditAction",
    "SettlementStage", "classify_order", "resolve_owning_session",
]
