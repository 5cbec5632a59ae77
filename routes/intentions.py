"""Mass intentions: submission, moderation and the printable ledger."""

from flask import Blueprint, Response, jsonify, request

from errors import AuthorizationError, ConflictError, ValidationError
from extensions import db
from models import (
    INTENTION_CATEGORIES,
    MODERATION_OUTCOMES,
    VALID_MODERATION_STATUSES,
    MassIntention,
    Role,
)
from services.audit import log_action
from services.ledger import render_ledger
from services.tenant import (
    member_display_name,
    stamp_tenant,
    tenant_get_or_404,
    tenant_query,
    tenant_scoped,
)
from utils import clean_text, json_body, parse_date, parse_time, query_flag, text_or_none

intentions_bp = Blueprint("intentions", __name__)


def intention_to_dict(intention: MassIntention) -> dict:
    return {
        "id": intention.id,
        "user_id": intention.user_id,
        "requester_name": intention.requester_name,
        "intention": intention.intention,
        "category": intention.category,
        "mass_date": intention.mass_date.isoformat() if intention.mass_date else None,
        "mass_time": intention.mass_time.strftime("%H:%M") if intention.mass_time else None,
        "status": intention.status,
        "note": intention.note,
        "created_at": intention.created_at.isoformat() if intention.created_at else None,
    }


@intentions_bp.route("/intentions", methods=["GET"])
@tenant_scoped()
def list_intentions(ctx):
    """Own intentions, or (clergy and above) every intention filtered by date/status."""
    query = tenant_query(ctx, MassIntention)
    if query_flag("mine") or not ctx.access.at_least(Role.CLERGY):
        query = query.filter_by(user_id=ctx.user.id)
    else:
        if request.args.get("mass_date"):
            mass_date = parse_date(request.args.get("mass_date"))
            if mass_date is None:
                raise ValidationError("Data inválida (use AAAA-MM-DD)")
            query = query.filter_by(mass_date=mass_date)
        status = request.args.get("status")
        if status:
            if status not in VALID_MODERATION_STATUSES:
                raise ValidationError("Status inválido")
            query = query.filter_by(status=status)
    intentions = query.order_by(MassIntention.mass_date, MassIntention.created_at).all()
    return jsonify({"intentions": [intention_to_dict(i) for i in intentions]})


@intentions_bp.route("/intentions", methods=["POST"])
@tenant_scoped()
def create_intention(ctx):
    data = json_body()
    text = clean_text(data.get("intention"), "intention")
    if not text:
        raise ValidationError("A intenção é obrigatória")
    category = data.get("category") or "deceased"
    if category not in INTENTION_CATEGORIES:
        raise ValidationError("Tipo de intenção inválido")
    # Undated intentions wait for the clergy to schedule them.
    mass_date = None
    if data.get("mass_date"):
        mass_date = parse_date(data.get("mass_date"))
        if mass_date is None:
            raise ValidationError("Data inválida (use AAAA-MM-DD)")
    mass_time = None
    if data.get("mass_time"):
        mass_time = parse_time(data.get("mass_time"))
        if mass_time is None:
            raise ValidationError("Horário inválido (use HH:MM)")

    intention = stamp_tenant(ctx, MassIntention(
        user_id=ctx.user.id,
        requester_name=(
            clean_text(data.get("requester_name"), "requester_name") or member_display_name(ctx)
        ),
        intention=text,
        category=category,
        mass_date=mass_date,
        mass_time=mass_time,
        status="pending",
    ))
    db.session.add(intention)
    db.session.flush()
    log_action("create", "mass_intention", intention.id, category, tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"intention": intention_to_dict(intention)}), 201


@intentions_bp.route("/intentions/<int:intention_id>", methods=["PUT"])
@tenant_scoped(min_role=Role.CLERGY)
def moderate_intention(ctx, intention_id: int):
    intention = tenant_get_or_404(ctx, MassIntention, intention_id)
    data = json_body()
    status = data.get("status")
    if status not in MODERATION_OUTCOMES:
        raise ValidationError("Status deve ser approved ou rejected")
    if intention.status != "pending":
        raise ConflictError("Intenção já moderada")
    intention.status = status
    intention.note = text_or_none(data, "note")
    intention.moderated_by_id = ctx.user.id
    log_action("moderate", "mass_intention", intention.id, f"status={status}", tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"intention": intention_to_dict(intention)})


@intentions_bp.route("/intentions/<int:intention_id>", methods=["DELETE"])
@tenant_scoped()
def delete_intention(ctx, intention_id: int):
    """Owners may withdraw a pending intention; clergy may delete any."""
    intention = tenant_get_or_404(ctx, MassIntention, intention_id)
    is_owner = intention.user_id == ctx.user.id
    if not ctx.access.at_least(Role.CLERGY):
        if not is_owner:
            raise AuthorizationError()
        if intention.status != "pending":
            raise ConflictError("Somente intenções pendentes podem ser retiradas")
    log_action("delete", "mass_intention", intention.id, tenant_id=ctx.tenant_id)
    db.session.delete(intention)
    db.session.commit()
    return jsonify({"ok": True})


@intentions_bp.route("/intentions/ledger", methods=["GET"])
@tenant_scoped(min_role=Role.CLERGY)
def ledger(ctx):
    mass_date = parse_date(request.args.get("mass_date"))
    if mass_date is None:
        raise ValidationError("Data da missa é obrigatória (AAAA-MM-DD)")
    html = render_ledger(ctx.tenant, mass_date)
    return Response(html, mimetype="text/html")
