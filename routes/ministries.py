"""Ministries (pastorais) and their membership."""

from flask import Blueprint, jsonify
from sqlalchemy import func

from errors import ConflictError, NotFoundError, ValidationError
from extensions import db
from models import Membership, Ministry, MinistryMember, Role
from payloads import MinistryUpdate
from services.audit import log_action
from services.tenant import stamp_tenant, tenant_get_or_404, tenant_query, tenant_scoped
from utils import clean_text, json_body, parse_time, safe_int, text_or_none

ministries_bp = Blueprint("ministries", __name__)


def ministry_to_dict(ministry: Ministry, member_count: int = 0, joined: bool = False) -> dict:
    return {
        "id": ministry.id,
        "name": ministry.name,
        "description": ministry.description,
        "coordinator_id": ministry.coordinator_id,
        "meeting_day": ministry.meeting_day,
        "meeting_time": ministry.meeting_time.strftime("%H:%M") if ministry.meeting_time else None,
        "member_count": member_count,
        "joined": joined,
    }


def _check_coordinator(ctx, user_id) -> None:
    if user_id is None:
        return
    exists = tenant_query(ctx, Membership).filter_by(user_id=user_id, status="active").first()
    if exists is None:
        raise ValidationError("Coordenador precisa ser membro da paróquia")


@ministries_bp.route("/ministries", methods=["GET"])
@tenant_scoped()
def list_ministries(ctx):
    counts = dict(
        db.session.query(MinistryMember.ministry_id, func.count(MinistryMember.id))
        .filter(MinistryMember.tenant_id == ctx.tenant_id)
        .group_by(MinistryMember.ministry_id)
        .all()
    )
    joined = {
        row.ministry_id
        for row in tenant_query(ctx, MinistryMember).filter_by(user_id=ctx.user.id)
    }
    ministries = tenant_query(ctx, Ministry).order_by(Ministry.name).all()
    return jsonify({
        "ministries": [
            ministry_to_dict(m, counts.get(m.id, 0), m.id in joined) for m in ministries
        ]
    })


@ministries_bp.route("/ministries", methods=["POST"])
@tenant_scoped(min_role=Role.STAFF)
def create_ministry(ctx):
    data = json_body()
    name = clean_text(data.get("name"), "name")
    if not name:
        raise ValidationError("Nome da pastoral é obrigatório")
    meeting_time = None
    if data.get("meeting_time"):
        meeting_time = parse_time(data.get("meeting_time"))
        if meeting_time is None:
            raise ValidationError("Horário inválido (use HH:MM)")
    coordinator_id = safe_int(data.get("coordinator_id")) or None
    _check_coordinator(ctx, coordinator_id)

    ministry = stamp_tenant(ctx, Ministry(
        name=name,
        description=text_or_none(data, "description"),
        coordinator_id=coordinator_id,
        meeting_day=text_or_none(data, "meeting_day"),
        meeting_time=meeting_time,
    ))
    db.session.add(ministry)
    db.session.flush()
    log_action("create", "ministry", ministry.id, name, tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"ministry": ministry_to_dict(ministry)}), 201


@ministries_bp.route("/ministries/<int:ministry_id>", methods=["PUT"])
@tenant_scoped(min_role=Role.COORDINATOR)
def update_ministry(ctx, ministry_id: int):
    ministry = tenant_get_or_404(ctx, Ministry, ministry_id)
    update = MinistryUpdate.from_payload(json_body())
    changes = update.changes()
    if "coordinator_id" in changes:
        _check_coordinator(ctx, changes["coordinator_id"])
    update.apply_to(ministry)
    log_action(
        "update", "ministry", ministry.id,
        "fields=" + ",".join(sorted(changes)), tenant_id=ctx.tenant_id,
    )
    db.session.commit()
    count = tenant_query(ctx, MinistryMember).filter_by(ministry_id=ministry.id).count()
    return jsonify({"ministry": ministry_to_dict(ministry, count)})


@ministries_bp.route("/ministries/<int:ministry_id>", methods=["DELETE"])
@tenant_scoped(min_role=Role.STAFF)
def delete_ministry(ctx, ministry_id: int):
    ministry = tenant_get_or_404(ctx, Ministry, ministry_id)
    log_action("delete", "ministry", ministry.id, ministry.name, tenant_id=ctx.tenant_id)
    db.session.delete(ministry)
    db.session.commit()
    return jsonify({"ok": True})


@ministries_bp.route("/ministries/<int:ministry_id>/join", methods=["POST"])
@tenant_scoped()
def join_ministry(ctx, ministry_id: int):
    ministry = tenant_get_or_404(ctx, Ministry, ministry_id)
    existing = tenant_query(ctx, MinistryMember).filter_by(
        ministry_id=ministry.id, user_id=ctx.user.id
    ).first()
    if existing is not None:
        raise ConflictError("Você já participa desta pastoral")
    db.session.add(stamp_tenant(ctx, MinistryMember(ministry_id=ministry.id, user_id=ctx.user.id)))
    log_action("join", "ministry", ministry.id, tenant_id=ctx.tenant_id)
    db.session.commit()
    count = tenant_query(ctx, MinistryMember).filter_by(ministry_id=ministry.id).count()
    return jsonify({"ministry": ministry_to_dict(ministry, count, joined=True)}), 201


@ministries_bp.route("/ministries/<int:ministry_id>/join", methods=["DELETE"])
@tenant_scoped()
def leave_ministry(ctx, ministry_id: int):
    ministry = tenant_get_or_404(ctx, Ministry, ministry_id)
    existing = tenant_query(ctx, MinistryMember).filter_by(
        ministry_id=ministry.id, user_id=ctx.user.id
    ).first()
    if existing is None:
        raise NotFoundError("Você não participa desta pastoral")
    db.session.delete(existing)
    log_action("leave", "ministry", ministry.id, tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"ok": True})
