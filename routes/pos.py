"""Point-of-sale routes: catalogue, orders and sales summary."""

import logging

from flask import Blueprint, jsonify, request

from errors import ValidationError
from extensions import db
from models import VALID_ORDER_STATUSES, Event, Order, Product, Role, SalesPoint
from services.audit import log_action
from services.auth import login_required, require_user
from services.pos import create_order, deliver_order, order_to_dict, pay_order, summarize
from services.tenant import (
    context_for,
    resolve_context,
    stamp_tenant,
    tenant_get_or_404,
    tenant_query,
    tenant_scoped,
)
from utils import clean_text, json_body, money, safe_decimal, safe_int, strict_int

logger = logging.getLogger(__name__)

pos_bp = Blueprint("pos", __name__)


def product_to_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "price": money(product.price),
        "stock": product.stock,
        "is_active": product.is_active,
    }


def sales_point_to_dict(sales_point: SalesPoint) -> dict:
    return {
        "id": sales_point.id,
        "event_id": sales_point.event_id,
        "name": sales_point.name,
        "products": [product_to_dict(p) for p in sales_point.products],
    }


@pos_bp.route("/pos", methods=["GET"])
@tenant_scoped(min_role=Role.POS_OPERATOR)
def catalogue(ctx):
    """Sales events with their sales points and products."""
    events = (
        tenant_query(ctx, Event).filter_by(has_sales=True).order_by(Event.starts_at).all()
    )
    return jsonify({
        "events": [
            {
                "id": e.id,
                "title": e.title,
                "starts_at": e.starts_at.isoformat() if e.starts_at else None,
                "sales_points": [sales_point_to_dict(sp) for sp in e.sales_points],
            }
            for e in events
        ]
    })


def _orders_query(ctx):
    query = tenant_query(ctx, Order)
    sales_point_id = request.args.get("sales_point_id")
    if sales_point_id:
        sales_point = tenant_get_or_404(ctx, SalesPoint, sales_point_id)
        query = query.filter_by(sales_point_id=sales_point.id)
    return query


@pos_bp.route("/pos/orders", methods=["GET"])
@tenant_scoped(min_role=Role.POS_OPERATOR)
def list_orders(ctx):
    query = _orders_query(ctx)
    status = request.args.get("status")
    if status:
        if status not in VALID_ORDER_STATUSES:
            raise ValidationError("Status inválido")
        query = query.filter_by(status=status)
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return jsonify({"orders": [order_to_dict(o) for o in orders]})


@pos_bp.route("/pos/summary", methods=["GET"])
@tenant_scoped(min_role=Role.POS_OPERATOR)
def summary(ctx):
    return jsonify(summarize(_orders_query(ctx).all()).to_dict())


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

def _tenant_context(data, min_role):
    return resolve_context(
        require_user(),
        tenant_id=safe_int(data.get("tenant_id")) or None,
        slug=data.get("tenant_slug"),
        min_role=min_role,
    )


def _create_order(data):
    ctx = _tenant_context(data, Role.POS_OPERATOR)
    order = create_order(ctx, data.get("sales_point_id"), data.get("buyer_name"), data.get("items"))
    return jsonify({"order": order_to_dict(order)}), 201


def _pay_order(data):
    ctx, order = context_for(Order, data.get("order_id"), min_role=Role.POS_OPERATOR)
    order = pay_order(ctx, order, data.get("payment_method"))
    return jsonify({"order": order_to_dict(order)})


def _deliver_order(data):
    ctx, order = context_for(Order, data.get("order_id"), min_role=Role.POS_OPERATOR)
    order = deliver_order(ctx, order)
    return jsonify({"order": order_to_dict(order)})


def _create_sales_point(data):
    ctx = _tenant_context(data, Role.STAFF)
    event = tenant_get_or_404(ctx, Event, data.get("event_id"))
    name = clean_text(data.get("name"), "name")
    if not name:
        raise ValidationError("Nome do ponto de venda é obrigatório")
    if not event.has_sales:
        raise ValidationError("Evento não possui vendas habilitadas")
    sales_point = stamp_tenant(ctx, SalesPoint(event_id=event.id, name=name))
    db.session.add(sales_point)
    db.session.flush()
    log_action("create", "sales_point", sales_point.id, name, tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"sales_point": sales_point_to_dict(sales_point)}), 201


def _create_product(data):
    ctx = _tenant_context(data, Role.STAFF)
    sales_point = tenant_get_or_404(ctx, SalesPoint, data.get("sales_point_id"))
    name = clean_text(data.get("name"), "name")
    price = safe_decimal(data.get("price"))
    if not name or price is None or price <= 0:
        raise ValidationError("Nome e preço (maior que zero) são obrigatórios")
    stock = None
    if data.get("stock") not in (None, ""):
        stock = strict_int(data.get("stock"), "stock")
        if stock < 0:
            raise ValidationError("Estoque inválido")
    product = stamp_tenant(ctx, Product(
        sales_point_id=sales_point.id,
        name=name,
        price=price,
        stock=stock,
        is_active=True,
        position=strict_int(data.get("position") or 0, "position"),
    ))
    db.session.add(product)
    db.session.flush()
    log_action("create", "product", product.id, name, tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"product": product_to_dict(product)}), 201


_ACTIONS = {
    "create_order": _create_order,
    "pay_order": _pay_order,
    "deliver_order": _deliver_order,
    "create_sales_point": _create_sales_point,
    "create_product": _create_product,
}


@pos_bp.route("/pos", methods=["POST"])
@login_required
def post_pos():
    data = json_body()
    action = data.get("action") or request.args.get("action")
    handler = _ACTIONS.get(action) if isinstance(action, str) else None
    if handler is None:
        raise ValidationError("Ação inválida")
    return handler(data)
