"""Parish announcements."""

from flask import Blueprint, jsonify

from errors import ValidationError
from extensions import db
from models import Announcement, Role
from payloads import AnnouncementUpdate
from services.audit import log_action
from services.tenant import stamp_tenant, tenant_get_or_404, tenant_query, tenant_scoped
from utils import clean_text, json_body, text_or_none

announcements_bp = Blueprint("announcements", __name__)


def announcement_to_dict(a: Announcement) -> dict:
    return {
        "id": a.id,
        "title": a.title,
        "body": a.body,
        "image_url": a.image_url,
        "published": a.published,
        "author": a.author.name if a.author else None,
        "created_at": a.created_at.isoformat() if a.created_at else None,
    }


@announcements_bp.route("/announcements", methods=["GET"])
@tenant_scoped()
def list_announcements(ctx):
    query = tenant_query(ctx, Announcement)
    if not ctx.access.at_least(Role.STAFF):
        query = query.filter_by(published=True)
    items = query.order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()
    return jsonify({"announcements": [announcement_to_dict(a) for a in items]})


@announcements_bp.route("/announcements", methods=["POST"])
@tenant_scoped(min_role=Role.STAFF)
def create_announcement(ctx):
    data = json_body()
    title = clean_text(data.get("title"), "title")
    body = clean_text(data.get("body"), "body")
    if not title or not body:
        raise ValidationError("Título e texto são obrigatórios")
    announcement = stamp_tenant(ctx, Announcement(
        title=title,
        body=body,
        image_url=text_or_none(data, "image_url"),
        published=bool(data.get("published", False)),
        author_id=ctx.user.id,
    ))
    db.session.add(announcement)
    db.session.flush()
    log_action("create", "announcement", announcement.id, tenant_id=ctx.tenant_id)
    db.session.commit()
    return jsonify({"announcement": announcement_to_dict(announcement)}), 201


@announcements_bp.route("/announcements/<int:announcement_id>", methods=["PUT"])
@tenant_scoped(min_role=Role.STAFF)
def update_announcement(ctx, announcement_id: int):
    announcement = tenant_get_or_404(ctx, Announcement, announcement_id)
    changes = AnnouncementUpdate.from_payload(json_body()).apply_to(announcement)
    log_action(
        "update", "announcement", announcement.id,
        "fields=" + ",".join(sorted(changes)), tenant_id=ctx.tenant_id,
    )
    db.session.commit()
    return jsonify({"announcement": announcement_to_dict(announcement)})


@announcements_bp.route("/announcements/<int:announcement_id>", methods=["DELETE"])
@tenant_scoped(min_role=Role.STAFF)
def delete_announcement(ctx, announcement_id: int):
    announcement = tenant_get_or_404(ctx, Announcement, announcement_id)
    log_action("delete", "announcement", announcement.id, announcement.title, tenant_id=ctx.tenant_id)
    db.session.delete(announcement)
    db.session.commit()
    return jsonify({"ok": True})
