"""Tenant resolution, per-request tenant context and data isolation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import request
from sqlalchemy import event

from errors import AuthorizationError, NotFoundError, ValidationError
from extensions import db
from models import Membership, Role, Tenant, User
from services.auth import require_user
from services.roles import RoleAccess, resolve_role
from utils import safe_int, slugify

logger = logging.getLogger(__name__)

_SESSION_TENANT_KEY = "tenant_id"


@dataclass(frozen=True)
class TenantContext:
    """Tenant + caller + role, resolved once per request.

    Handlers receive it as their first argument; nothing reads tenant or
    role from global state.
    """

    tenant: Tenant
    user: User
    access: RoleAccess

    @property
    def tenant_id(self) -> int:
        return self.tenant.id

    @property
    def role(self) -> Optional[Role]:
        return self.access.role

    def require(self, threshold: Role) -> None:
        if not self.access.at_least(threshold):
            raise AuthorizationError()


# ---------------------------------------------------------------------------
# Tenant lookup
# ---------------------------------------------------------------------------

def get_active_tenant(tenant_id: Optional[int] = None, slug: Optional[str] = None) -> Tenant:
    """Load an active tenant by id or slug; inactive tenants are not found."""
    if tenant_id:
        tenant = db.session.get(Tenant, tenant_id)
    elif slug:
        tenant = Tenant.query.filter_by(slug=slug).first()
    else:
        raise ValidationError("tenant_id obrigatório")
    if tenant is None or not tenant.is_active:
        raise NotFoundError("Paróquia não encontrada")
    return tenant


def unique_slug(name: str) -> str:
    """Derive a slug from *name*, suffixing ``-2``, ``-3``... until unused."""
    base = slugify(name)
    if not base:
        raise ValidationError("Nome inválido para gerar o endereço da paróquia")
    slug = base
    suffix = 2
    while Tenant.query.filter_by(slug=slug).first() is not None:
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


# ---------------------------------------------------------------------------
# Context resolution
# ---------------------------------------------------------------------------

def resolve_context(
    user: User,
    tenant_id: Optional[int] = None,
    slug: Optional[str] = None,
    min_role: Optional[Role] = Role.MEMBER,
) -> TenantContext:
    """Build the :class:`TenantContext` for *user*, enforcing *min_role*.

    Also pins the tenant on the database session so the flush guard can
    reject cross-tenant writes.
    """
    tenant = get_active_tenant(tenant_id=tenant_id, slug=slug)
    access = resolve_role(user.id, tenant.id)
    if min_role is not None and not access.at_least(min_role):
        logger.info(
            "Denied user=%s tenant=%s role=%s (needs %s)",
            user.id, tenant.id, access.role, min_role.value,
        )
        raise AuthorizationError()
    db.session.info[_SESSION_TENANT_KEY] = tenant.id
    return TenantContext(tenant=tenant, user=user, access=access)


def context_for(model, obj_id, min_role: Optional[Role] = Role.MEMBER):
    """Load ``model`` by id and resolve the caller's context for its tenant.

    Returns ``(ctx, obj)``.
    """
    user = require_user()
    obj_id = safe_int(obj_id)
    obj = db.session.get(model, obj_id) if obj_id else None
    if obj is None:
        raise NotFoundError()
    ctx = resolve_context(user, tenant_id=obj.tenant_id, min_role=min_role)
    return ctx, obj


def _tenant_ref_from_request() -> tuple[Optional[int], Optional[str]]:
    body = {}
    if request.method not in ("GET", "HEAD") and request.is_json:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
    tenant_id = safe_int(body.get("tenant_id") or request.args.get("tenant_id")) or None
    slug = body.get("tenant_slug") or request.args.get("tenant_slug") or None
    return tenant_id, slug


def unpin_session() -> None:
    """Forget the tenant pinned by a previous request on this session."""
    db.session.info.pop(_SESSION_TENANT_KEY, None)


def tenant_scoped(min_role: Optional[Role] = Role.MEMBER):
    """Decorator: resolve the request's tenant context and pass it as ``ctx``.

    The tenant comes from ``tenant_id`` (or ``tenant_slug``) in the query
    string for reads and in the JSON body for writes.
    """

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            user = require_user()
            tenant_id, slug = _tenant_ref_from_request()
            if not tenant_id and not slug:
                raise ValidationError("tenant_id obrigatório")
            ctx = resolve_context(user, tenant_id=tenant_id, slug=slug, min_role=min_role)
            return f(ctx, *args, **kwargs)

        return decorated

    return decorator


# ---------------------------------------------------------------------------
# Scoped queries
# ---------------------------------------------------------------------------

def tenant_query(ctx: TenantContext, model):
    """Return a query on *model* filtered to the context's tenant."""
    return model.query.filter_by(tenant_id=ctx.tenant_id)


def stamp_tenant(ctx: TenantContext, obj):
    """Set ``tenant_id`` on *obj*; returns *obj* for chaining."""
    obj.tenant_id = ctx.tenant_id
    return obj


def tenant_get_or_404(ctx: TenantContext, model, obj_id):
    """Fetch a single object by PK, verifying it belongs to the context's tenant."""
    obj_id = safe_int(obj_id)
    obj = db.session.get(model, obj_id) if obj_id else None
    if obj is None or obj.tenant_id != ctx.tenant_id:
        raise NotFoundError()
    return obj


# ---------------------------------------------------------------------------
# Flush guard
# ---------------------------------------------------------------------------

class TenantSecurityError(Exception):
    """Raised when a cross-tenant write is attempted."""


def _enforce_tenant_on_flush(session, flush_context):
    """Verify that new/dirty tenant-scoped objects match the pinned tenant.

    Safety net behind ``tenant_query()`` / ``stamp_tenant()``.  Sessions
    without a pinned tenant (tenant creation, CLI) are not checked.
    """
    tid = session.info.get(_SESSION_TENANT_KEY)
    if tid is None:
        return

    for obj in list(session.new) + list(session.dirty):
        obj_tid = getattr(obj, "tenant_id", None)
        if obj_tid is not None and obj_tid != tid:
            raise TenantSecurityError(
                f"Cross-tenant write blocked: {type(obj).__name__} "
                f"has tenant_id={obj_tid}, active tenant is {tid}"
            )


def register_tenant_guards(app):
    """Register the after_flush event listener.  Call once during app init."""
    if not event.contains(db.session, "after_flush", _enforce_tenant_on_flush):
        event.listen(db.session, "after_flush", _enforce_tenant_on_flush)


def member_display_name(ctx: TenantContext) -> str:
    """The caller's per-parish display name, falling back to the account name."""
    membership = tenant_query(ctx, Membership).filter_by(user_id=ctx.user.id).first()
    return (membership.display_name if membership else None) or ctx.user.name
