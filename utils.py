"""Utility / helper functions used across the application."""

from __future__ import annotations

import datetime
import logging
import re
import unicodedata
from datetime import timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from errors import ValidationError

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")

_WEEKDAYS_PT = (
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
    "sexta-feira", "sábado", "domingo",
)
_MONTHS_PT = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho", "julho",
    "agosto", "setembro", "outubro", "novembro", "dezembro",
)


# ---------------------------------------------------------------------------
# Datetime helpers
# ---------------------------------------------------------------------------

def utc_now() -> datetime.datetime:
    """Return current UTC datetime.  Used as SQLAlchemy column default."""
    return datetime.datetime.now(timezone.utc)


def parse_date(raw: Optional[str]) -> Optional[datetime.date]:
    if not raw:
        return None
    try:
        return datetime.datetime.strptime(raw, "%Y-%m-%d").date()
    except (ValueError, TypeError):
        logger.warning("Could not parse date: %r", raw)
        return None


def parse_datetime(raw: Optional[str]) -> Optional[datetime.datetime]:
    if not raw:
        return None
    try:
        return datetime.datetime.strptime(raw, "%Y-%m-%dT%H:%M")
    except (ValueError, TypeError):
        logger.warning("Could not parse datetime: %r", raw)
        return None


def parse_time(raw: Optional[str]) -> Optional[datetime.time]:
    if not raw:
        return None
    try:
        return datetime.datetime.strptime(raw, "%H:%M").time()
    except (ValueError, TypeError):
        logger.warning("Could not parse time: %r", raw)
        return None


def iso_or_none(value) -> Optional[str]:
    """ISO-format a date/time/datetime, passing ``None`` through."""
    return value.isoformat() if value is not None else None


def format_long_date_pt(day: datetime.date) -> str:
    """``domingo, 19 de outubro de 2026``"""
    return (
        f"{_WEEKDAYS_PT[day.weekday()]}, {day.day:02d} de "
        f"{_MONTHS_PT[day.month - 1]} de {day.year}"
    )


# ---------------------------------------------------------------------------
# Safe type conversions
# ---------------------------------------------------------------------------

def safe_int(value, default: int = 0) -> int:
    """Safely convert *value* to ``int``, returning *default* on failure."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        logger.warning("Could not convert %r to int, using default %s", value, default)
        return default


def safe_decimal(value, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Convert *value* to a 2-place ``Decimal``; *default* on failure.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.10")``.
    """
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        logger.warning("Could not convert %r to Decimal, using default %s", value, default)
        return default
    if not result.is_finite():
        return default
    return result.quantize(MONEY_QUANT)


def strict_int(value, field: str) -> int:
    """Parse an integer JSON value; anything else is a :class:`ValidationError`.

    Accepts ints, integral floats and digit strings.  Booleans, fractions
    and free text are rejected rather than coerced.
    """
    if isinstance(value, bool):
        raise ValidationError(f"O campo {field} deve ser um número inteiro")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
        return int(value)
    raise ValidationError(f"O campo {field} deve ser um número inteiro")


def money(value) -> str:
    """Serialize a money amount as a 2-place string (``"50.00"``)."""
    return str(Decimal(str(value or 0)).quantize(MONEY_QUANT))


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def strip_accents(text: str) -> str:
    """Remove combining diacritics (``"Conceição"`` -> ``"Conceicao"``)."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def slugify(text: str) -> str:
    """Lowercase, strip diacritics, collapse non-alphanumerics to ``-``."""
    ascii_text = strip_accents(text.lower())
    return _NON_ALNUM_RE.sub("-", ascii_text).strip("-")


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

def json_body() -> dict:
    """The request's JSON object body, or an empty dict."""
    from flask import request

    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def query_flag(name: str) -> bool:
    """True when query parameter *name* is ``true``/``1``."""
    from flask import request

    return request.args.get(name, "").lower() in ("1", "true", "yes")


def clean_text(value, field: str) -> str:
    """Stripped text of a JSON field, ``""`` when absent.

    Numbers, lists and objects raise :class:`ValidationError`.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"O campo {field} deve ser texto")
    return value.strip()


def text_or_none(data: dict, field: str) -> Optional[str]:
    """``clean_text`` for an optional field; blank becomes ``None``."""
    return clean_text(data.get(field), field) or None
