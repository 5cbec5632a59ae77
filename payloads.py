"""Allow-listed update payloads.

Each update endpoint accepts only the fields declared on its dataclass;
anything else in the JSON body is rejected before touching the database.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

from errors import ValidationError
from models import VALID_MEMBERSHIP_STATUSES, Role
from utils import parse_datetime, parse_time

_UNSET: Any = object()

# Routing keys that travel in the same body as the update.
_ROUTING_KEYS = frozenset({"id", "tenant_id", "tenant_slug"})


def _to_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "on", "yes", "sim")
    return bool(value)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class UpdatePayload:
    """Base for update dataclasses.  Unset fields are left untouched."""

    REQUIRED_NON_EMPTY: tuple[str, ...] = ()
    # Fields that may arrive as JSON numbers or booleans; the rest must be text.
    NON_TEXT_FIELDS: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload) -> "UpdatePayload":
        if not isinstance(payload, dict):
            raise ValidationError()
        allowed = {f.name for f in fields(cls)}
        unknown = sorted(set(payload) - allowed - _ROUTING_KEYS)
        if unknown:
            raise ValidationError(f"Campos não permitidos: {', '.join(unknown)}")
        provided = {k: payload[k] for k in allowed if k in payload}
        if not provided:
            raise ValidationError("Nenhum campo para atualizar")
        update = cls(**provided)
        update.validate()
        return update

    def changes(self) -> dict:
        """Converted values of the fields present in the payload."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is _UNSET:
                continue
            if (
                value is not None
                and f.name not in self.NON_TEXT_FIELDS
                and not isinstance(value, str)
            ):
                raise ValidationError(f"O campo {f.name} deve ser texto")
            result[f.name] = self.convert(f.name, _strip(value))
        return result

    def convert(self, name: str, value):
        return value

    def validate(self) -> None:
        for name in self.REQUIRED_NON_EMPTY:
            value = getattr(self, name)
            if value is not _UNSET and not _strip(value):
                raise ValidationError(f"O campo {name} não pode ficar vazio")
        self.changes()

    def apply_to(self, obj) -> dict:
        changes = self.changes()
        for name, value in changes.items():
            setattr(obj, name, value)
        return changes


@dataclass
class TenantUpdate(UpdatePayload):
    name: Any = _UNSET
    address: Any = _UNSET
    city: Any = _UNSET
    region: Any = _UNSET
    phone: Any = _UNSET
    email: Any = _UNSET
    primary_color: Any = _UNSET
    logo_url: Any = _UNSET
    donation_key: Any = _UNSET
    payee_name: Any = _UNSET

    REQUIRED_NON_EMPTY = ("name",)


@dataclass
class AnnouncementUpdate(UpdatePayload):
    title: Any = _UNSET
    body: Any = _UNSET
    image_url: Any = _UNSET
    published: Any = _UNSET

    REQUIRED_NON_EMPTY = ("title", "body")
    NON_TEXT_FIELDS = ("published",)

    def convert(self, name, value):
        if name == "published":
            return _to_bool(value)
        return value


@dataclass
class EventUpdate(UpdatePayload):
    title: Any = _UNSET
    description: Any = _UNSET
    location: Any = _UNSET
    starts_at: Any = _UNSET
    ends_at: Any = _UNSET
    category: Any = _UNSET
    has_sales: Any = _UNSET

    REQUIRED_NON_EMPTY = ("title", "starts_at")
    NON_TEXT_FIELDS = ("has_sales",)

    def convert(self, name, value):
        if name in ("starts_at", "ends_at"):
            if not value:
                return None
            parsed = parse_datetime(value)
            if parsed is None:
                raise ValidationError(f"Data inválida em {name} (use AAAA-MM-DDTHH:MM)")
            return parsed
        if name == "has_sales":
            return _to_bool(value)
        return value


@dataclass
class MinistryUpdate(UpdatePayload):
    name: Any = _UNSET
    description: Any = _UNSET
    coordinator_id: Any = _UNSET
    meeting_day: Any = _UNSET
    meeting_time: Any = _UNSET

    REQUIRED_NON_EMPTY = ("name",)
    NON_TEXT_FIELDS = ("coordinator_id",)

    def convert(self, name, value):
        if name == "meeting_time":
            if not value:
                return None
            parsed = parse_time(value)
            if parsed is None:
                raise ValidationError("Horário inválido (use HH:MM)")
            return parsed
        if name == "coordinator_id":
            if value in (None, ""):
                return None
            if isinstance(value, bool) or not str(value).isdigit():
                raise ValidationError("Coordenador inválido")
            return int(value)
        return value


@dataclass
class ProfileUpdate(UpdatePayload):
    display_name: Any = _UNSET
    phone: Any = _UNSET
    address: Any = _UNSET
    photo_url: Any = _UNSET


@dataclass
class MembershipUpdate(UpdatePayload):
    role: Any = _UNSET
    status: Any = _UNSET

    def convert(self, name, value):
        if name == "role":
            try:
                return Role(value)
            except ValueError:
                raise ValidationError("Papel inválido")
        if name == "status" and (
            not isinstance(value, str) or value not in VALID_MEMBERSHIP_STATUSES
        ):
            raise ValidationError("Status inválido")
        return value
