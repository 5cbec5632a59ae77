"""Role resolution and capability derivation.

Every authorization decision in the application goes through
:func:`has_min_role` or the flags on :class:`RoleAccess`; nothing else
compares role values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from models import ADMIN_ROLES, ROLE_HIERARCHY, Membership, Role

logger = logging.getLogger(__name__)


def has_min_role(role: Optional[Role], threshold: Role) -> bool:
    """True when *role* ranks at or above *threshold*.  ``None`` never does."""
    if role is None:
        return False
    return ROLE_HIERARCHY[role] >= ROLE_HIERARCHY[threshold]


@dataclass(frozen=True)
class RoleAccess:
    """A caller's role inside one tenant plus the flags derived from it."""

    role: Optional[Role] = None

    @property
    def has_membership(self) -> bool:
        return self.role is not None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_clergy(self) -> bool:
        return self.role is Role.CLERGY

    @property
    def is_staff(self) -> bool:
        return self.role is Role.STAFF

    @property
    def is_coordinator(self) -> bool:
        return self.role is Role.COORDINATOR

    @property
    def is_pos_operator(self) -> bool:
        return self.role is Role.POS_OPERATOR

    @property
    def is_member(self) -> bool:
        return self.role is Role.MEMBER

    def at_least(self, threshold: Role) -> bool:
        return has_min_role(self.role, threshold)

    def to_dict(self) -> dict:
        return {
            "role": self.role.value if self.role else None,
            "has_membership": self.has_membership,
            "is_admin": self.is_admin,
            "is_clergy": self.is_clergy,
            "is_staff": self.is_staff,
            "is_coordinator": self.is_coordinator,
            "is_pos_operator": self.is_pos_operator,
            "is_member": self.is_member,
        }


NO_ACCESS = RoleAccess(None)


def resolve_role(user_id: Optional[int], tenant_id: Optional[int]) -> RoleAccess:
    """Return the caller's access for *tenant_id* from the active membership.

    Fails closed: any lookup error yields :data:`NO_ACCESS`.
    """
    if not user_id or not tenant_id:
        return NO_ACCESS
    try:
        membership = Membership.query.filter_by(
            user_id=user_id, tenant_id=tenant_id, status="active"
        ).first()
    except (SQLAlchemyError, LookupError, ValueError):
        # LookupError/ValueError: a stored role outside the Role enum
        logger.warning(
            "Role lookup failed for user=%s tenant=%s; denying access",
            user_id, tenant_id, exc_info=True,
        )
        return NO_ACCESS
    if membership is None:
        return NO_ACCESS
    return RoleAccess(membership.role)


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

NAV_ITEMS: list[dict] = [
    {"href": "home", "label": "Início", "min_role": Role.MEMBER},
    {"href": "announcements", "label": "Avisos", "min_role": Role.MEMBER},
    {"href": "agenda", "label": "Agenda", "min_role": Role.MEMBER},
    {"href": "ministries", "label": "Pastorais", "min_role": Role.MEMBER},
    {"href": "prayers", "label": "Oração", "min_role": Role.MEMBER},
    {"href": "tithe", "label": "Dízimo", "min_role": Role.MEMBER},
    {"href": "intentions", "label": "Intenções", "min_role": Role.MEMBER},
    {"href": "events", "label": "Eventos", "min_role": Role.STAFF},
    {"href": "pos", "label": "PDV", "min_role": Role.POS_OPERATOR},
    {"href": "admin", "label": "Admin", "min_role": Role.PARISH_ADMIN},
]


def filter_nav_items(role: Optional[Role]) -> list[dict]:
    """Navigation entries reachable by *role*, in menu order."""
    return [
        {"href": item["href"], "label": item["label"]}
        for item in NAV_ITEMS
        if has_min_role(role, item["min_role"])
    ]
