"""Caller role lookup for a tenant."""

from flask import Blueprint, jsonify

from services.roles import filter_nav_items
from services.tenant import tenant_scoped

roles_bp = Blueprint("roles", __name__)


@roles_bp.route("/role", methods=["GET"])
@tenant_scoped(min_role=None)
def get_role(ctx):
    """Role, capability flags and navigation.  No membership is not an error."""
    data = ctx.access.to_dict()
    data["tenant_id"] = ctx.tenant_id
    data["navigation"] = filter_nav_items(ctx.role)
    return jsonify(data)
