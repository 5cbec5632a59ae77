"""Parish (tenant) routes: creation, public lookup, branding and donations."""

import logging

from flask import Blueprint, current_app, jsonify, request

from errors import NotFoundError, ValidationError
from extensions import db
from models import Membership, Role, Tenant
from payloads import TenantUpdate
from services.audit import log_action
from services.auth import login_required, require_user
from services.pix import build_pix_payload, pix_qr_svg
from services.tenant import get_active_tenant, resolve_context, unique_slug
from utils import clean_text, json_body, safe_decimal, safe_int, text_or_none

logger = logging.getLogger(__name__)

tenants_bp = Blueprint("tenants", __name__)

# Fields anyone may see through the slug lookup.
PUBLIC_FIELDS = (
    "id", "name", "slug", "address", "city", "region", "phone", "email",
    "primary_color", "logo_url",
)


def tenant_to_dict(tenant: Tenant, private: bool = False) -> dict:
    data = {name: getattr(tenant, name) for name in PUBLIC_FIELDS}
    data["has_donation_key"] = bool(tenant.donation_key)
    if private:
        data.update(
            donation_key=tenant.donation_key,
            payee_name=tenant.payee_name,
            status=tenant.status,
        )
    return data


@tenants_bp.route("/tenants", methods=["POST"])
@login_required
def create_tenant():
    """Create a parish; the creator becomes its parish admin."""
    user = require_user()
    data = json_body()
    name = clean_text(data.get("name"), "name")
    if not name:
        raise ValidationError("Nome da paróquia é obrigatório")

    app_cfg = current_app.config["APP_CONFIG"]
    tenant = Tenant(
        name=name,
        slug=unique_slug(name),
        address=text_or_none(data, "address"),
        city=text_or_none(data, "city"),
        region=clean_text(data.get("region"), "region") or app_cfg.default_region,
        phone=text_or_none(data, "phone"),
        email=text_or_none(data, "email"),
        status="active",
        created_by_id=user.id,
    )
    db.session.add(tenant)
    db.session.flush()
    db.session.add(
        Membership(
            tenant_id=tenant.id,
            user_id=user.id,
            role=Role.PARISH_ADMIN,
            status="active",
            display_name=user.name,
        )
    )
    log_action("create", "tenant", tenant.id, f"slug={tenant.slug}", tenant_id=tenant.id)
    db.session.commit()
    logger.info("Created tenant id=%s slug=%s", tenant.id, tenant.slug)
    return jsonify({"tenant": tenant_to_dict(tenant, private=True)}), 201


@tenants_bp.route("/tenants", methods=["GET"])
@login_required
def list_tenants():
    user = require_user()
    tenants = [
        dict(tenant_to_dict(m.tenant), role=m.role.value)
        for m in user.memberships
        if m.status == "active" and m.tenant.is_active
    ]
    tenants.sort(key=lambda t: t["name"].lower())
    return jsonify({"tenants": tenants})


@tenants_bp.route("/tenants/by-slug", methods=["GET"])
def get_by_slug():
    tenant = get_active_tenant(slug=request.args.get("slug"))
    return jsonify({"tenant": tenant_to_dict(tenant)})


@tenants_bp.route("/tenants/by-slug", methods=["PUT"])
@login_required
def update_tenant():
    data = json_body()
    tenant_id = safe_int(data.get("id"))
    if not tenant_id:
        raise ValidationError("id é obrigatório")
    ctx = resolve_context(require_user(), tenant_id=tenant_id, min_role=Role.PARISH_ADMIN)
    update = TenantUpdate.from_payload(data)
    changes = update.apply_to(ctx.tenant)
    log_action(
        "update", "tenant", ctx.tenant_id,
        "fields=" + ",".join(sorted(changes)), tenant_id=ctx.tenant_id,
    )
    db.session.commit()
    return jsonify({"tenant": tenant_to_dict(ctx.tenant, private=True)})


@tenants_bp.route("/tenants/by-slug/donation", methods=["GET"])
def donation():
    """PIX donation payload and QR code for a parish."""
    tenant = get_active_tenant(slug=request.args.get("slug"))
    if not tenant.donation_key:
        raise NotFoundError("Paróquia sem chave PIX cadastrada")

    amount = None
    if request.args.get("amount"):
        amount = safe_decimal(request.args.get("amount"))
        if amount is None:
            raise ValidationError("Valor inválido")

    app_cfg = current_app.config["APP_CONFIG"]
    payload = build_pix_payload(
        key=tenant.donation_key,
        payee_name=tenant.payee_name or tenant.name,
        city=tenant.city or app_cfg.donation_city,
        amount=amount,
    )
    return jsonify({"payload": payload, "qr_svg": pix_qr_svg(payload)})
