"""Member administration and the caller's per-parish profile."""

from flask import Blueprint, jsonify, request

from errors import AuthorizationError, NotFoundError, ValidationError
from extensions import db
from models import Membership, Role, User
from payloads import MembershipUpdate, ProfileUpdate
from services.audit import log_action
from services.tenant import tenant_get_or_404, tenant_query, tenant_scoped
from utils import json_body

members_bp = Blueprint("members", __name__)


def membership_to_dict(membership: Membership) -> dict:
    return {
        "id": membership.id,
        "user_id": membership.user_id,
        "name": membership.display_name or membership.user.name,
        "email": membership.user.email,
        "role": membership.role.value,
        "status": membership.status,
        "phone": membership.phone,
        "address": membership.address,
        "photo_url": membership.photo_url,
        "created_at": membership.created_at.isoformat() if membership.created_at else None,
    }


@members_bp.route("/members", methods=["GET"])
@tenant_scoped(min_role=Role.STAFF)
def list_members(ctx):
    query = tenant_query(ctx, Membership).join(User, Membership.user_id == User.id)
    status = request.args.get("status")
    if status:
        query = query.filter(Membership.status == status)
    members = query.order_by(User.name).all()
    return jsonify({"members": [membership_to_dict(m) for m in members]})


@members_bp.route("/members/<int:membership_id>", methods=["PUT"])
@tenant_scoped(min_role=Role.PARISH_ADMIN)
def update_member(ctx, membership_id: int):
    """Change a member's role or status."""
    membership = tenant_get_or_404(ctx, Membership, membership_id)
    update = MembershipUpdate.from_payload(json_body())
    changes = update.changes()

    caller_is_super = ctx.role is Role.SUPER_ADMIN
    if not caller_is_super and (
        changes.get("role") is Role.SUPER_ADMIN or membership.role is Role.SUPER_ADMIN
    ):
        raise AuthorizationError("Somente o super administrador pode gerenciar este papel.")
    if membership.user_id == ctx.user.id:
        raise ValidationError("Você não pode alterar o próprio acesso")

    update.apply_to(membership)
    log_action(
        "update", "membership", membership.id,
        ", ".join(f"{k}={getattr(v, 'value', v)}" for k, v in sorted(changes.items())),
        tenant_id=ctx.tenant_id,
    )
    db.session.commit()
    return jsonify({"member": membership_to_dict(membership)})


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

def _own_membership(ctx) -> Membership:
    membership = tenant_query(ctx, Membership).filter_by(user_id=ctx.user.id).first()
    if membership is None:
        raise NotFoundError("Perfil não encontrado")
    return membership


@members_bp.route("/profile", methods=["GET"])
@tenant_scoped()
def get_profile(ctx):
    return jsonify({"profile": membership_to_dict(_own_membership(ctx))})


@members_bp.route("/profile", methods=["PUT"])
@tenant_scoped()
def update_profile(ctx):
    membership = _own_membership(ctx)
    changes = ProfileUpdate.from_payload(json_body()).apply_to(membership)
    log_action(
        "update", "profile", membership.id,
        "fields=" + ",".join(sorted(changes)), tenant_id=ctx.tenant_id,
    )
    db.session.commit()
    return jsonify({"profile": membership_to_dict(membership)})
