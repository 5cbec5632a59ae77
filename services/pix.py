"""Static PIX "copia e cola" payloads and their QR codes.

Payloads follow the EMV merchant-presented BR Code layout: a sequence of
``ID + length + value`` fields closed by a CRC16-CCITT checksum.
"""

from __future__ import annotations

import binascii
import io
import logging
from decimal import Decimal
from typing import Optional

import qrcode
import qrcode.image.svg

from errors import ValidationError
from utils import strip_accents

logger = logging.getLogger(__name__)

PIX_GUI = "br.gov.bcb.pix"
MAX_NAME_LENGTH = 25
MAX_CITY_LENGTH = 15
MAX_TXID_LENGTH = 25


def crc16_ccitt(data: str) -> int:
    """CRC16-CCITT (polynomial 0x1021, initial value 0xFFFF)."""
    return binascii.crc_hqx(data.encode("utf-8"), 0xFFFF)


def _field(field_id: str, value: str) -> str:
    if len(value) > 99:
        raise ValidationError(f"Campo PIX {field_id} excede 99 caracteres")
    return f"{field_id}{len(value):02d}{value}"


def _clean(text: str, limit: int) -> str:
    return strip_accents(text or "").strip()[:limit]


def build_pix_payload(
    key: str,
    payee_name: str,
    city: str,
    amount: Optional[Decimal] = None,
    txid: str = "***",
) -> str:
    """Return the BR Code string for a static PIX charge."""
    if not key:
        raise ValidationError("Chave PIX não configurada")
    name = _clean(payee_name, MAX_NAME_LENGTH)
    city = _clean(city, MAX_CITY_LENGTH).upper()
    if not name or not city:
        raise ValidationError("Recebedor e cidade do PIX são obrigatórios")

    parts = [
        _field("00", "01"),
        _field("26", _field("00", PIX_GUI) + _field("01", key.strip())),
        _field("52", "0000"),
        _field("53", "986"),
    ]
    if amount is not None:
        if amount <= 0:
            raise ValidationError("Valor da doação deve ser maior que zero")
        parts.append(_field("54", f"{amount:.2f}"))
    parts += [
        _field("58", "BR"),
        _field("59", name),
        _field("60", city),
        _field("62", _field("05", (txid or "***")[:MAX_TXID_LENGTH])),
    ]
    body = "".join(parts) + "6304"
    return f"{body}{crc16_ccitt(body):04X}"


def pix_qr_svg(payload: str) -> str:
    """Render *payload* as an SVG QR code string."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
        image_factory=qrcode.image.svg.SvgPathImage,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image()
    buf = io.BytesIO()
    img.save(buf)
    return buf.getvalue().decode("utf-8")
