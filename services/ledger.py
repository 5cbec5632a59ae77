"""Printable mass-intention ledger for one tenant and one mass date.

Rendered from an embedded Jinja2 template in a sandboxed environment with
autoescaping, so requester text can never inject markup.  The document is
static: no scripts, no external assets.
"""

from __future__ import annotations

import datetime
from typing import Optional

from jinja2.sandbox import SandboxedEnvironment

from models import INTENTION_CATEGORIES, MassIntention, Tenant
from utils import format_long_date_pt, utc_now

CATEGORY_LABELS = {
    "deceased": "Falecido(a)",
    "living": "Vivo(a)",
    "thanksgiving": "Ação de Graças",
    "other": "Outra Intenção",
}

EMPTY_MESSAGE = "Nenhuma intenção aprovada para esta data."

_CSS = """
body { font-family: Georgia, 'Times New Roman', serif; margin: 20mm; color: #111; }
header { text-align: center; border-bottom: 2px solid #333; padding-bottom: 8px; }
h1 { font-size: 18pt; margin: 0; }
h2 { font-size: 13pt; margin-top: 18px; border-bottom: 1px solid #999; }
.subtitle { font-size: 10pt; color: #444; }
.times { font-size: 11pt; margin-top: 6px; }
ol { padding-left: 20px; }
li { margin: 4px 0; }
.requester { font-size: 9pt; color: #555; }
.empty { text-align: center; font-style: italic; margin-top: 40px; }
footer { margin-top: 30px; font-size: 8pt; color: #777; text-align: center; }
@media print { body { margin: 10mm; } }
"""

_TEMPLATE = """\
<!DOCTYPE html>
<html lang="pt-BR">
<head>
<meta charset="utf-8">
<title>Intenções de Missa - {{ tenant_name }}</title>
<style>{{ css | safe }}</style>
</head>
<body>
<header>
  <h1>{{ tenant_name }}</h1>
  {% if location %}<div class="subtitle">{{ location }}</div>{% endif %}
  <div class="subtitle">Intenções de Missa - {{ long_date }}</div>
  {% if times %}<div class="times">Horários: {{ times | join(' | ') }}</div>{% endif %}
</header>
{% if groups %}
{% for group in groups %}
<section>
  <h2>{{ group.label }}</h2>
  <ol>
  {% for item in group["items"] %}
    <li>{{ item.intention }}<br><span class="requester">Solicitado por: {{ item.requester_name }}</span></li>
  {% endfor %}
  </ol>
</section>
{% endfor %}
{% else %}
<p class="empty">{{ empty_message }}</p>
{% endif %}
<footer>Gerado em {{ generated_at }}</footer>
</body>
</html>
"""

_env = SandboxedEnvironment(autoescape=True)
_template = _env.from_string(_TEMPLATE)


def approved_intentions(tenant_id: int, mass_date: datetime.date) -> list[MassIntention]:
    return (
        MassIntention.query.filter_by(
            tenant_id=tenant_id, mass_date=mass_date, status="approved"
        )
        .order_by(MassIntention.created_at, MassIntention.id)
        .all()
    )


def group_intentions(intentions) -> list[dict]:
    """Group in fixed category order, dropping empty categories.

    Unknown categories are filed under ``other``.
    """
    buckets: dict[str, list] = {key: [] for key in INTENTION_CATEGORIES}
    for intention in intentions:
        key = intention.category if intention.category in buckets else "other"
        buckets[key].append(intention)
    return [
        {"category": key, "label": CATEGORY_LABELS[key], "items": buckets[key]}
        for key in INTENTION_CATEGORIES
        if buckets[key]
    ]


def mass_times(intentions) -> list[str]:
    """Distinct mass times as sorted ``HH:MM`` strings."""
    return sorted({i.mass_time.strftime("%H:%M") for i in intentions if i.mass_time})


def render_ledger(
    tenant: Tenant,
    mass_date: datetime.date,
    generated_at: Optional[datetime.datetime] = None,
) -> str:
    """Return the printable HTML ledger of approved intentions for *mass_date*."""
    intentions = approved_intentions(tenant.id, mass_date)
    location = " - ".join(part for part in (tenant.city, tenant.region) if part)
    generated_at = generated_at or utc_now()
    return _template.render(
        css=_CSS,
        tenant_name=tenant.name,
        location=location,
        long_date=format_long_date_pt(mass_date),
        times=mass_times(intentions),
        groups=group_intentions(intentions),
        empty_message=EMPTY_MESSAGE,
        generated_at=generated_at.strftime("%d/%m/%Y %H:%M"),
    )
