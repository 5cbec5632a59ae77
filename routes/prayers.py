"""Prayer requests: submission and moderation."""

from flask import Blueprint, jsonify
from sqlalchemy import or_

from errors import AuthorizationError, ConflictError, ValidationError
from extensions import db
from models import MODERATION_OUTCOMES, PrayerRequest, Role
from services.audit import log_action
from services.tenant import (
    member_display_name,
    stamp_tenant,
    tenant_get_or_404,
    tenant_query,
    tenant_scoped,
)
from utils import clean_text, json_body, query_flag

prayers_bp = Blueprint("prayers", __name__)


def prayer_to_dict(prayer: PrayerRequest) -> dict:
    return {
        "id": prayer.id,
        "user_id": prayer.user_id,
        "requester_name": prayer.requester_name,
        "intention": prayer.intention,
        "status": prayer.status,
        "moderated_by_id": prayer.moderated_by_id,
        "created_at": prayer.created_at.isoformat() if prayer.created_at else None,
    }


@prayers_bp.route("/prayers", methods=["GET"])
@tenant_scoped()
def list_prayers(ctx):
    """Approved requests plus the caller's own.

    ``mine=true`` lists only the caller's; ``all=true`` lists everything
    (clergy and above).
    """
    query = tenant_query(ctx, PrayerRequest)
    if query_flag("mine"):
        query = query.filter_by(user_id=ctx.user.id)
    elif query_flag("all"):
        if not ctx.access.at_least(Role.CLERGY):
            raise AuthorizationError()
    else:
        query = query.filter(
            or_(PrayerRequest.status == "approved", PrayerRequest.user_id == ctx.user.id)
        )
    prayers = query.order_by(PrayerRequest.created_at.desc(), PrayerRequest.id.desc()).all()
    return jsonify({"prayers": [prayer_to_dict(p) for p in prayers]})


@prayers_bp.route("/prayers", methods=["POST"])
@tenant_scoped()
def create_prayer(ctx):
    data = json_body()
    intention = clean_text(data.get("intention"), "intention")
    if not intention:
        raise ValidationError("O pedido de oração é obrigatório")
    prayer = stamp_tenant(ctx, PrayerRequest(
        user_id=ctx.user.id,
        requester_name=(
            clean_text(data.get("requester_name"), "requester_name") or member_display_name(ctx)
        ),
        intention=intention,
        status="pending",
    ))
    db.session.add(prayer)
    db.session.flush()
    log_action("create", "prayer_request", prayer.id, tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"prayer": prayer_to_dict(prayer)}), 201


@prayers_bp.route("/prayers/<int:prayer_id>", methods=["PUT"])
@tenant_scoped(min_role=Role.CLERGY)
def moderate_prayer(ctx, prayer_id: int):
    prayer = tenant_get_or_404(ctx, PrayerRequest, prayer_id)
    status = json_body().get("status")
    if status not in MODERATION_OUTCOMES:
        raise ValidationError("Status deve ser approved ou rejected")
    if prayer.status != "pending":
        raise ConflictError("Pedido já moderado")
    prayer.status = status
    prayer.moderated_by_id = ctx.user.id
    log_action("moderate", "prayer_request", prayer.id, f"status={status}", tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"prayer": prayer_to_dict(prayer)})
