"""Parish events and agenda."""

from flask import Blueprint, jsonify

from errors import ValidationError
from extensions import db
from models import Event, Role
from payloads import EventUpdate
from services.audit import log_action
from services.tenant import stamp_tenant, tenant_get_or_404, tenant_query, tenant_scoped
from utils import clean_text, json_body, parse_datetime, query_flag, text_or_none, utc_now

events_bp = Blueprint("events", __name__)


def event_to_dict(event: Event) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "location": event.location,
        "starts_at": event.starts_at.isoformat() if event.starts_at else None,
        "ends_at": event.ends_at.isoformat() if event.ends_at else None,
        "category": event.category,
        "has_sales": event.has_sales,
    }


@events_bp.route("/events", methods=["GET"])
@tenant_scoped()
def list_events(ctx):
    query = tenant_query(ctx, Event)
    if query_flag("upcoming"):
        query = query.filter(Event.starts_at >= utc_now().replace(tzinfo=None))
    if query_flag("sales"):
        query = query.filter_by(has_sales=True)
    events = query.order_by(Event.starts_at).all()
    return jsonify({"events": [event_to_dict(e) for e in events]})


@events_bp.route("/events", methods=["POST"])
@tenant_scoped(min_role=Role.STAFF)
def create_event(ctx):
    data = json_body()
    title = clean_text(data.get("title"), "title")
    starts_at = parse_datetime(data.get("starts_at"))
    if not title or starts_at is None:
        raise ValidationError("Título e início (AAAA-MM-DDTHH:MM) são obrigatórios")
    ends_at = parse_datetime(data.get("ends_at"))
    if ends_at is not None and ends_at < starts_at:
        raise ValidationError("O término deve ser após o início")
    event = stamp_tenant(ctx, Event(
        title=title,
        description=text_or_none(data, "description"),
        location=text_or_none(data, "location"),
        starts_at=starts_at,
        ends_at=ends_at,
        category=clean_text(data.get("category"), "category") or "general",
        has_sales=bool(data.get("has_sales", False)),
    ))
    db.session.add(event)
    db.session.flush()
    log_action("create", "event", event.id, event.title, tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"event": event_to_dict(event)}), 201


@events_bp.route("/events/<int:event_id>", methods=["PUT"])
@tenant_scoped(min_role=Role.STAFF)
def update_event(ctx, event_id: int):
    event = tenant_get_or_404(ctx, Event, event_id)
    changes = EventUpdate.from_payload(json_body()).apply_to(event)
    if event.ends_at is not None and event.ends_at < event.starts_at:
        db.session.rollback()
        raise ValidationError("O término deve ser após o início")
    log_action(
        "update", "event", event.id,
        "fields=" + ",".join(sorted(changes)), tenant_id=ctx.tenant_id,
    )
    db.session.commit()
    return jsonify({"event": event_to_dict(event)})


@events_bp.route("/events/<int:event_id>", methods=["DELETE"])
@tenant_scoped(min_role=Role.STAFF)
def delete_event(ctx, event_id: int):
    event = tenant_get_or_404(ctx, Event, event_id)
    log_action("delete", "event", event.id, event.title, tenant_id=ctx.tenant_id)
    db.session.delete(event)
    db.session.commit()
    return jsonify({"ok": True})
