"""Tithe routes: the caller's plan, admin overview, plan creation and payments."""

import datetime

from flask import Blueprint, jsonify, request

from errors import AuthorizationError, ValidationError
from models import Installment, Role
from services.auth import login_required, require_user
from services.tenant import context_for, resolve_context, tenant_scoped
from services.tithe import (
    create_pledge,
    installment_to_dict,
    mark_installment_paid,
    own_tithe,
    pledge_to_dict,
    pledger_summaries,
)
from utils import json_body, safe_int

tithe_bp = Blueprint("tithe", __name__)


@tithe_bp.route("/tithe", methods=["GET"])
@tenant_scoped()
def get_tithe(ctx):
    """Own pledges; ``action=admin`` returns the parish overview instead."""
    today = datetime.date.today()
    if request.args.get("action") == "admin":
        ctx.require(Role.PARISH_ADMIN)
        return jsonify(pledger_summaries(ctx.tenant_id, today))
    return jsonify(own_tithe(ctx.tenant_id, ctx.user.id, today))


def _create_plan(data):
    ctx = resolve_context(
        require_user(), tenant_id=safe_int(data.get("tenant_id")) or None,
        slug=data.get("tenant_slug"), min_role=Role.MEMBER,
    )
    pledge = create_pledge(
        ctx.tenant_id, ctx.user, data.get("monthly_amount"), data.get("due_day")
    )
    return jsonify({"pledge": pledge_to_dict(pledge, datetime.date.today())}), 201


def _confirm_payment(data):
    ctx, installment = context_for(Installment, data.get("installment_id"))
    is_owner = installment.pledge.pledger.user_id == ctx.user.id
    if not is_owner and not ctx.access.at_least(Role.STAFF):
        raise AuthorizationError()
    installment, already_paid = mark_installment_paid(installment)
    return jsonify({
        "installment": installment_to_dict(installment, datetime.date.today()),
        "already_paid": already_paid,
    })


_ACTIONS = {
    "create_plan": _create_plan,
    "confirm_payment": _confirm_payment,
}


@tithe_bp.route("/tithe", methods=["POST"])
@login_required
def post_tithe():
    data = json_body()
    action = data.get("action") or request.args.get("action")
    handler = _ACTIONS.get(action) if isinstance(action, str) else None
    if handler is None:
        raise ValidationError("Ação inválida")
    return handler(data)
