"""Tithe pledges: the 12-month installment plan and its read models.

A pledge is written together with its twelve installments in one
transaction.  Installment status is ``open`` until paid; ``overdue`` is
derived on read from the due date and persisted only by the
``flag-overdue`` maintenance command.
"""

from __future__ import annotations

import calendar
import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from errors import ConflictError, PersistenceError, ValidationError
from extensions import db
from models import Installment, Membership, Pledge, Pledger, User
from services.audit import log_action
from utils import money, safe_decimal, strict_int, utc_now

logger = logging.getLogger(__name__)

PLAN_MONTHS = 12


@dataclass(frozen=True)
class ScheduledInstallment:
    competency: datetime.date
    due_date: datetime.date
    amount: Decimal


def _add_months(day: datetime.date, months: int) -> datetime.date:
    """First day of the month *months* after *day*'s month."""
    index = day.month - 1 + months
    return datetime.date(day.year + index // 12, index % 12 + 1, 1)


def clamp_due_date(competency: datetime.date, due_day: int) -> datetime.date:
    """Day *due_day* of the competency month, clamped to its last day."""
    last_day = calendar.monthrange(competency.year, competency.month)[1]
    return competency.replace(day=min(due_day, last_day))


def build_schedule(
    monthly_amount: Decimal, due_day: int, start: datetime.date
) -> list[ScheduledInstallment]:
    """Twelve monthly installments starting at *start*'s month."""
    first = start.replace(day=1)
    schedule = []
    for i in range(PLAN_MONTHS):
        competency = _add_months(first, i)
        schedule.append(
            ScheduledInstallment(
                competency=competency,
                due_date=clamp_due_date(competency, due_day),
                amount=monthly_amount,
            )
        )
    return schedule


def _validate_plan(monthly_amount, due_day) -> tuple[Decimal, int]:
    amount = safe_decimal(monthly_amount)
    if amount is None or amount <= 0:
        raise ValidationError("Valor mensal deve ser maior que zero")
    day = strict_int(due_day, "due_day")
    if not 1 <= day <= 31:
        raise ValidationError("Dia de vencimento deve estar entre 1 e 31")
    return amount, day


def _upsert_pledger(tenant_id: int, user: User) -> Pledger:
    pledger = Pledger.query.filter_by(tenant_id=tenant_id, user_id=user.id).first()
    if pledger is not None:
        return pledger
    membership = Membership.query.filter_by(tenant_id=tenant_id, user_id=user.id).first()
    name = (membership.display_name if membership else None) or user.name
    pledger = Pledger(tenant_id=tenant_id, user_id=user.id, name=name)
    db.session.add(pledger)
    db.session.flush()
    return pledger


def _insert_installments(pledge: Pledge, schedule: list[ScheduledInstallment]) -> None:
    db.session.add_all(
        Installment(
            tenant_id=pledge.tenant_id,
            pledge_id=pledge.id,
            competency=item.competency,
            due_date=item.due_date,
            amount=item.amount,
            status="open",
        )
        for item in schedule
    )
    db.session.flush()


def create_pledge(
    tenant_id: int,
    user: User,
    monthly_amount,
    due_day,
    today: Optional[datetime.date] = None,
) -> Pledge:
    """Create a pledge and its 12 installments atomically.

    Any failure while writing rolls the whole unit back; no pledge is left
    without its installments.
    """
    amount, day = _validate_plan(monthly_amount, due_day)
    schedule = build_schedule(amount, day, today or datetime.date.today())

    try:
        pledger = _upsert_pledger(tenant_id, user)
        pledge = Pledge(
            tenant_id=tenant_id,
            pledger_id=pledger.id,
            monthly_amount=amount,
            due_day=day,
            is_active=True,
        )
        db.session.add(pledge)
        db.session.flush()
        _insert_installments(pledge, schedule)
        log_action(
            "create", "pledge", pledge.id,
            f"installments={len(schedule)}", tenant_id=tenant_id,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Pledge creation failed for tenant=%s user=%s", tenant_id, user.id)
        raise PersistenceError("Erro ao criar plano de dízimo")

    logger.info("Created pledge id=%s tenant=%s", pledge.id, tenant_id)
    return pledge


def mark_installment_paid(installment: Installment) -> tuple[Installment, bool]:
    """Mark *installment* paid.  Returns ``(installment, already_paid)``."""
    if installment.status == "paid":
        return installment, True
    if installment.pledge is None or not installment.pledge.is_active:
        raise ConflictError("Plano de dízimo inativo")
    installment.status = "paid"
    installment.paid_at = utc_now()
    log_action(
        "confirm_payment", "installment", installment.id,
        f"pledge={installment.pledge_id}", tenant_id=installment.tenant_id,
    )
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Could not confirm installment id=%s", installment.id)
        raise PersistenceError()
    return installment, False


def flag_overdue(today: Optional[datetime.date] = None) -> int:
    """Persist ``overdue`` on open installments past their due date."""
    today = today or datetime.date.today()
    count = (
        Installment.query.filter(
            Installment.status == "open", Installment.due_date < today
        ).update({"status": "overdue"}, synchronize_session=False)
    )
    db.session.commit()
    logger.info("Flagged %s installments as overdue", count)
    return count


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

def installment_to_dict(installment: Installment, today: datetime.date) -> dict:
    return {
        "id": installment.id,
        "competency": installment.competency.isoformat(),
        "due_date": installment.due_date.isoformat(),
        "amount": money(installment.amount),
        "status": installment.status_on(today),
        "paid_at": installment.paid_at.isoformat() if installment.paid_at else None,
    }


def pledge_to_dict(pledge: Pledge, today: datetime.date) -> dict:
    return {
        "id": pledge.id,
        "monthly_amount": money(pledge.monthly_amount),
        "due_day": pledge.due_day,
        "is_active": pledge.is_active,
        "installments": [installment_to_dict(i, today) for i in pledge.installments],
    }


def own_tithe(tenant_id: int, user_id: int, today: Optional[datetime.date] = None) -> dict:
    """The caller's own pledges with amounts."""
    today = today or datetime.date.today()
    pledger = Pledger.query.filter_by(tenant_id=tenant_id, user_id=user_id).first()
    if pledger is None:
        return {"pledger": None, "pledges": []}
    return {
        "pledger": {"id": pledger.id, "name": pledger.name},
        "pledges": [pledge_to_dict(p, today) for p in pledger.pledges],
    }


def pledger_summaries(tenant_id: int, today: Optional[datetime.date] = None) -> dict:
    """Admin view: per-pledger counts and parish totals, no individual amounts."""
    today = today or datetime.date.today()
    pledgers = (
        Pledger.query.filter_by(tenant_id=tenant_id).order_by(Pledger.name).all()
    )

    rows = []
    collected = Decimal("0")
    installment_count = paid_count = overdue_count = 0
    for pledger in pledgers:
        counts = {"paid": 0, "overdue": 0, "open": 0}
        for pledge in pledger.pledges:
            for inst in pledge.installments:
                status = inst.status_on(today)
                counts[status] += 1
                if status == "paid":
                    collected += inst.amount
        rows.append({
            "pledger_id": pledger.id,
            "name": pledger.name,
            "paid": counts["paid"],
            "overdue": counts["overdue"],
            "open": counts["open"],
            "status": "delinquent" if counts["overdue"] else "current",
        })
        installment_count += sum(counts.values())
        paid_count += counts["paid"]
        overdue_count += counts["overdue"]

    return {
        "pledgers": rows,
        "totals": {
            "pledgers": len(rows),
            "delinquent": sum(1 for r in rows if r["status"] == "delinquent"),
            "installments": installment_count,
            "paid": paid_count,
            "overdue": overdue_count,
            "collected": money(collected),
        },
    }
