"""Account routes: sign-up, login/logout and joining a parish."""

import logging

from flask import Blueprint, jsonify, session
from flask_wtf.csrf import generate_csrf

from errors import AuthenticationError
from extensions import db, limiter
from models import Membership, Role
from services.audit import log_action
from services.auth import authenticate, create_user, login_required, require_user
from services.tenant import get_active_tenant
from utils import json_body, safe_int

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _start_session(user) -> None:
    session.clear()
    session["user_id"] = user.id
    session.permanent = True


def user_to_dict(user, with_memberships: bool = False) -> dict:
    data = {"id": user.id, "name": user.name, "email": user.email}
    if with_memberships:
        data["memberships"] = [
            {
                "tenant_id": m.tenant_id,
                "tenant_slug": m.tenant.slug,
                "tenant_name": m.tenant.name,
                "role": m.role.value,
            }
            for m in user.memberships
            if m.status == "active" and m.tenant.is_active
        ]
    return data


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/signup", methods=["POST"])
@limiter.limit("5 per minute")
def signup():
    data = json_body()
    user = create_user(data.get("name"), data.get("email"), data.get("password"))
    log_action("signup", "user", user.id)
    db.session.commit()
    _start_session(user)
    return jsonify({"user": user_to_dict(user)}), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    data = json_body()
    user = authenticate(data.get("email"), data.get("password"))
    if user is None:
        logger.info("Failed login attempt")
        raise AuthenticationError("E-mail ou senha incorretos")
    _start_session(user)
    log_action("login", "user", user.id)
    db.session.commit()
    return jsonify({"user": user_to_dict(user, with_memberships=True)})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    user = require_user()
    log_action("logout", "user", user.id)
    db.session.commit()
    session.clear()
    return jsonify({"ok": True})


@auth_bp.route("/join", methods=["POST"])
@limiter.limit("5 per minute")
def join():
    """Create an account and a member membership in the given parish."""
    data = json_body()
    tenant = get_active_tenant(
        tenant_id=safe_int(data.get("tenant_id")) or None,
        slug=data.get("tenant_slug"),
    )
    user = create_user(data.get("name"), data.get("email"), data.get("password"))
    db.session.add(
        Membership(
            tenant_id=tenant.id,
            user_id=user.id,
            role=Role.MEMBER,
            status="active",
            display_name=user.name,
        )
    )
    log_action("join", "tenant", tenant.id, f"user={user.id}", tenant_id=tenant.id)
    db.session.commit()
    _start_session(user)
    return jsonify({"user": user_to_dict(user, with_memberships=True)}), 201


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": user_to_dict(require_user(), with_memberships=True)})
