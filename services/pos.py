"""Point-of-sale: cart building, order lifecycle and sales aggregation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from errors import ConflictError, PersistenceError, ValidationError
from extensions import db
from models import (
    REVENUE_ORDER_STATUSES,
    VALID_PAYMENT_METHODS,
    Order,
    OrderItem,
    Product,
    SalesPoint,
)
from services.audit import log_action
from services.tenant import TenantContext, stamp_tenant, tenant_get_or_404
from utils import MONEY_QUANT, clean_text, money, strict_int

logger = logging.getLogger(__name__)

DEFAULT_BUYER_NAME = "Cliente"
UNSPECIFIED_METHOD = "unspecified"


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------

@dataclass
class CartLine:
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int = 1

    @property
    def subtotal(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(MONEY_QUANT)


@dataclass
class Cart:
    """Lines keyed by product; one line per product."""

    lines: list[CartLine] = field(default_factory=list)

    def _find(self, product_id: int) -> Optional[CartLine]:
        return next((line for line in self.lines if line.product_id == product_id), None)

    def add(self, product, quantity: int = 1) -> CartLine:
        line = self._find(product.id)
        if line is not None:
            line.quantity += quantity
            return line
        line = CartLine(
            product_id=product.id,
            name=product.name,
            unit_price=Decimal(product.price),
            quantity=quantity,
        )
        self.lines.append(line)
        return line

    def update_quantity(self, product_id: int, delta: int) -> None:
        """Change a line's quantity by *delta*; below 1 the line is removed."""
        line = self._find(product_id)
        if line is None:
            return
        line.quantity += delta
        if line.quantity < 1:
            self.remove(product_id)

    def remove(self, product_id: int) -> None:
        self.lines = [line for line in self.lines if line.product_id != product_id]

    @property
    def total(self) -> Decimal:
        return sum((line.subtotal for line in self.lines), Decimal("0.00"))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def is_empty(self) -> bool:
        return not self.lines


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderSummary:
    total_revenue: Decimal
    order_count: int
    average_order_value: Decimal
    by_method: dict[str, Decimal]

    def to_dict(self) -> dict:
        return {
            "total_revenue": money(self.total_revenue),
            "order_count": self.order_count,
            "average_order_value": money(self.average_order_value),
            "by_method": {k: money(v) for k, v in self.by_method.items()},
        }


def summarize(orders: Iterable) -> OrderSummary:
    """Revenue over paid/delivered orders; the count covers every order."""
    revenue = Decimal("0.00")
    count = 0
    by_method: dict[str, Decimal] = {}
    for order in orders:
        count += 1
        if order.status not in REVENUE_ORDER_STATUSES:
            continue
        total = Decimal(order.total or 0)
        revenue += total
        method = order.payment_method or UNSPECIFIED_METHOD
        by_method[method] = by_method.get(method, Decimal("0.00")) + total

    average = (revenue / count).quantize(MONEY_QUANT) if count else Decimal("0.00")
    return OrderSummary(
        total_revenue=revenue.quantize(MONEY_QUANT),
        order_count=count,
        average_order_value=average,
        by_method={k: v.quantize(MONEY_QUANT) for k, v in by_method.items()},
    )


# ---------------------------------------------------------------------------
# Order lifecycle
# ---------------------------------------------------------------------------

def _build_cart(ctx: TenantContext, sales_point: SalesPoint, items) -> Cart:
    if not isinstance(items, list) or not items:
        raise ValidationError("Pedido sem itens")
    cart = Cart()
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Item inválido")
        quantity = strict_int(raw.get("quantity", 1), "quantity")
        if quantity < 1:
            raise ValidationError("Quantidade deve ser pelo menos 1")
        product = tenant_get_or_404(ctx, Product, raw.get("product_id"))
        if product.sales_point_id != sales_point.id or not product.is_active:
            raise ValidationError(f"Produto indisponível neste ponto de venda: {product.name}")
        cart.add(product, quantity)
    return cart


def _reserve_stock(line: CartLine) -> None:
    """Decrement tracked stock in one conditional statement."""
    result = db.session.execute(
        update(Product)
        .where(
            Product.id == line.product_id,
            Product.stock.isnot(None),
            Product.stock >= line.quantity,
        )
        .values(stock=Product.stock - line.quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError(f"Estoque insuficiente: {line.name}")


def create_order(
    ctx: TenantContext, sales_point_id, buyer_name: Optional[str], items
) -> Order:
    """Create an open order from *items* (``[{product_id, quantity}]``).

    Unit prices are snapshotted from the product rows.  Stock is reserved
    atomically with the order; a shortage rolls the whole order back.
    """
    sales_point = tenant_get_or_404(ctx, SalesPoint, sales_point_id)
    cart = _build_cart(ctx, sales_point, items)
    buyer = clean_text(buyer_name, "buyer_name") or DEFAULT_BUYER_NAME
    products = {p.id: p for p in sales_point.products}

    try:
        for line in cart.lines:
            if products[line.product_id].stock is not None:
                _reserve_stock(line)
        order = stamp_tenant(ctx, Order(
            sales_point_id=sales_point.id,
            buyer_name=buyer,
            operator_id=ctx.user.id,
            status="open",
            total=cart.total,
        ))
        db.session.add(order)
        db.session.flush()
        for line in cart.lines:
            order.items.append(stamp_tenant(ctx, OrderItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            )))
        log_action(
            "create", "order", order.id,
            f"items={cart.item_count} total={money(cart.total)}",
            tenant_id=ctx.tenant_id,
        )
        db.session.commit()
    except ConflictError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Order creation failed for sales_point=%s", sales_point_id)
        raise PersistenceError("Erro ao criar pedido")

    for product in products.values():
        db.session.expire(product, ["stock"])
    logger.info("Created order id=%s tenant=%s", order.id, ctx.tenant_id)
    return order


def _commit_transition(ctx: TenantContext, order: Order, action: str) -> Order:
    log_action(action, "order", order.id, f"status={order.status}", tenant_id=ctx.tenant_id)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Order %s failed for id=%s", action, order.id)
        raise PersistenceError()
    return order


def pay_order(ctx: TenantContext, order: Order, payment_method: Optional[str]) -> Order:
    """open -> paid, recording the payment method."""
    if not isinstance(payment_method, str) or payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError("Forma de pagamento inválida")
    if order.status != "open":
        raise ConflictError("Pedido não está aberto")
    order.status = "paid"
    order.payment_method = payment_method
    return _commit_transition(ctx, order, "pay")


def deliver_order(ctx: TenantContext, order: Order) -> Order:
    """paid -> delivered."""
    if order.status != "paid":
        raise ConflictError("Pedido precisa estar pago para ser entregue")
    order.status = "delivered"
    return _commit_transition(ctx, order, "deliver")


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "sales_point_id": order.sales_point_id,
        "buyer_name": order.buyer_name,
        "operator_id": order.operator_id,
        "status": order.status,
        "payment_method": order.payment_method,
        "total": money(order.total),
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "items": [
            {
                "product_id": item.product_id,
                "name": item.product.name if item.product else None,
                "quantity": item.quantity,
                "unit_price": money(item.unit_price),
                "subtotal": money(item.subtotal),
            }
            for item in order.items
        ],
    }
