"""Service-level tests: roles, tithe schedule, ledger, POS aggregation, PIX."""

import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import SQLAlchemyError

from errors import PersistenceError, ValidationError
from extensions import db
from models import (
    Announcement,
    Installment,
    MassIntention,
    Pledge,
    Pledger,
    Role,
    Tenant,
    User,
)
from payloads import AnnouncementUpdate, MembershipUpdate, MinistryUpdate, TenantUpdate
from services.ledger import EMPTY_MESSAGE, group_intentions, mass_times, render_ledger
from services.pix import build_pix_payload, crc16_ccitt, pix_qr_svg
from services.pos import Cart, summarize
from services.roles import NO_ACCESS, RoleAccess, filter_nav_items, has_min_role, resolve_role
from services.tenant import TenantSecurityError, unpin_session
from services.tithe import (
    build_schedule,
    create_pledge,
    flag_overdue,
    mark_installment_paid,
    pledger_summaries,
)
from utils import clean_text, format_long_date_pt, safe_decimal, slugify, strict_int


# ============================================================================
# Roles
# ============================================================================


class TestRoleHierarchy:
    def test_threshold_comparisons(self):
        assert has_min_role(Role.SUPER_ADMIN, Role.PARISH_ADMIN)
        assert has_min_role(Role.CLERGY, Role.STAFF)
        assert has_min_role(Role.STAFF, Role.STAFF)
        assert not has_min_role(Role.STAFF, Role.CLERGY)
        assert not has_min_role(Role.POS_OPERATOR, Role.COORDINATOR)
        assert has_min_role(Role.POS_OPERATOR, Role.MEMBER)

    def test_no_role_never_qualifies(self):
        assert not has_min_role(None, Role.MEMBER)
        assert not NO_ACCESS.at_least(Role.MEMBER)
        assert filter_nav_items(None) == []

    def test_flags_are_exclusive(self):
        access = RoleAccess(Role.COORDINATOR)
        data = access.to_dict()
        assert data["role"] == "coordinator"
        assert [k for k, v in data.items() if k.startswith("is_") and v] == ["is_coordinator"]

    def test_both_admin_roles_are_admin(self):
        assert RoleAccess(Role.SUPER_ADMIN).is_admin
        assert RoleAccess(Role.PARISH_ADMIN).is_admin
        assert not RoleAccess(Role.CLERGY).is_admin

    def test_navigation_grows_with_rank(self):
        member = [i["href"] for i in filter_nav_items(Role.MEMBER)]
        admin = [i["href"] for i in filter_nav_items(Role.PARISH_ADMIN)]
        assert set(member) < set(admin)
        assert admin[-1] == "admin"


class TestResolveRole:
    def test_active_membership(self, app, parish):
        with app.app_context():
            assert resolve_role(parish["clergy_id"], parish["tenant_id"]).role is Role.CLERGY

    def test_other_tenant(self, app, parish):
        with app.app_context():
            assert resolve_role(parish["outsider_id"], parish["tenant_id"]) == NO_ACCESS

    def test_missing_ids(self, app):
        with app.app_context():
            assert resolve_role(None, 1) == NO_ACCESS
            assert resolve_role(1, None) == NO_ACCESS

    def test_lookup_failure_denies(self, app, parish, monkeypatch):
        class BrokenQuery:
            def filter_by(self, **_kwargs):
                raise SQLAlchemyError("connection lost")

        monkeypatch.setattr("services.roles.Membership", SimpleNamespace(query=BrokenQuery()))
        with app.app_context():
            assert resolve_role(parish["admin_id"], parish["tenant_id"]) == NO_ACCESS


# ============================================================================
# Tithe schedule
# ============================================================================


class TestBuildSchedule:
    def test_twelve_months_from_start(self):
        schedule = build_schedule(Decimal("50.00"), 10, datetime.date(2026, 3, 20))
        assert len(schedule) == 12
        assert schedule[0].competency == datetime.date(2026, 3, 1)
        assert schedule[0].due_date == datetime.date(2026, 3, 10)
        assert schedule[-1].due_date == datetime.date(2027, 2, 10)
        assert all(item.amount == Decimal("50.00") for item in schedule)

    def test_due_day_clamped_to_month_end(self):
        schedule = build_schedule(Decimal("10.00"), 31, datetime.date(2026, 1, 15))
        assert [s.due_date for s in schedule[:4]] == [
            datetime.date(2026, 1, 31),
            datetime.date(2026, 2, 28),
            datetime.date(2026, 3, 31),
            datetime.date(2026, 4, 30),
        ]

    def test_february_non_leap(self):
        schedule = build_schedule(Decimal("10.00"), 30, datetime.date(2027, 2, 1))
        assert schedule[0].due_date == datetime.date(2027, 2, 28)

    def test_february_leap(self):
        schedule = build_schedule(Decimal("10.00"), 30, datetime.date(2028, 1, 1))
        assert schedule[1].due_date == datetime.date(2028, 2, 29)

    def test_year_rollover(self):
        schedule = build_schedule(Decimal("10.00"), 5, datetime.date(2026, 12, 1))
        assert schedule[0].due_date == datetime.date(2026, 12, 5)
        assert schedule[1].due_date == datetime.date(2027, 1, 5)
        assert schedule[-1].competency == datetime.date(2027, 11, 1)


class TestCreatePledge:
    @pytest.mark.parametrize("amount,due_day", [
        (None, 10), ("0", 10), ("-1", 10), ("abc", 10),
        ("50", 0), ("50", 32), ("50", True), ("50", 15.7),
    ])
    def test_validation(self, app, parish, amount, due_day):
        with app.app_context():
            user = db.session.get(User, parish["member_id"])
            with pytest.raises(ValidationError):
                create_pledge(parish["tenant_id"], user, amount, due_day)
            assert Pledge.query.count() == 0

    def test_creates_pledge_and_installments(self, app, parish):
        with app.app_context():
            user = db.session.get(User, parish["member_id"])
            pledge = create_pledge(
                parish["tenant_id"], user, "50", 15, today=datetime.date(2026, 5, 2)
            )
            assert pledge.monthly_amount == Decimal("50.00")
            assert len(pledge.installments) == 12
            assert pledge.installments[0].due_date == datetime.date(2026, 5, 15)
            assert {i.tenant_id for i in pledge.installments} == {parish["tenant_id"]}

    def test_reuses_pledger(self, app, parish):
        with app.app_context():
            user = db.session.get(User, parish["member_id"])
            create_pledge(parish["tenant_id"], user, "50", 15)
            create_pledge(parish["tenant_id"], user, "20", 5)
            assert Pledger.query.count() == 1
            assert Pledge.query.count() == 2
            assert Installment.query.count() == 24

    def test_failed_write_rolls_back_everything(self, app, parish, monkeypatch):
        def failing_insert(_pledge, _schedule):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr("services.tithe._insert_installments", failing_insert)
        with app.app_context():
            user = db.session.get(User, parish["member_id"])
            with pytest.raises(PersistenceError):
                create_pledge(parish["tenant_id"], user, "50", 10)
            assert Pledge.query.count() == 0
            assert Pledger.query.count() == 0
            assert Installment.query.count() == 0


class TestInstallments:
    def test_status_on(self):
        inst = Installment(status="open", due_date=datetime.date(2026, 1, 10))
        assert inst.status_on(datetime.date(2026, 1, 10)) == "open"
        assert inst.status_on(datetime.date(2026, 1, 11)) == "overdue"
        inst.status = "paid"
        assert inst.status_on(datetime.date(2026, 3, 1)) == "paid"

    def test_mark_paid_is_idempotent(self, app, parish):
        with app.app_context():
            user = db.session.get(User, parish["member_id"])
            pledge = create_pledge(parish["tenant_id"], user, "50", 10)
            first = pledge.installments[0]
            _, already = mark_installment_paid(first)
            assert already is False
            paid_at = first.paid_at
            _, already = mark_installment_paid(first)
            assert already is True
            assert first.paid_at == paid_at

    def test_flag_overdue(self, app, parish):
        with app.app_context():
            user = db.session.get(User, parish["member_id"])
            pledge = create_pledge(
                parish["tenant_id"], user, "50", 10, today=datetime.date(2026, 1, 5)
            )
            mark_installment_paid(pledge.installments[0])
            assert flag_overdue(datetime.date(2026, 2, 11)) == 1
            statuses = [i.status for i in Installment.query.order_by(Installment.due_date)]
            assert statuses[:3] == ["paid", "overdue", "open"]

    def test_pledger_summaries(self, app, parish):
        with app.app_context():
            member = db.session.get(User, parish["member_id"])
            staff = db.session.get(User, parish["staff_id"])
            pledge = create_pledge(
                parish["tenant_id"], member, "50", 10, today=datetime.date(2026, 1, 5)
            )
            mark_installment_paid(pledge.installments[0])
            create_pledge(parish["tenant_id"], staff, "30", 10, today=datetime.date(2026, 3, 1))

            summary = pledger_summaries(parish["tenant_id"], datetime.date(2026, 3, 1))
            rows = {r["name"]: r for r in summary["pledgers"]}
            assert rows["Member"]["paid"] == 1
            assert rows["Member"]["overdue"] == 1
            assert rows["Member"]["open"] == 10
            assert rows["Member"]["status"] == "delinquent"
            assert rows["Staff"]["open"] == 12
            assert rows["Staff"]["status"] == "current"
            assert summary["totals"] == {
                "pledgers": 2,
                "delinquent": 1,
                "installments": 24,
                "paid": 1,
                "overdue": 1,
                "collected": "50.00",
            }

    def test_summaries_scoped_to_tenant(self, app, parish):
        with app.app_context():
            member = db.session.get(User, parish["member_id"])
            create_pledge(parish["tenant_id"], member, "50", 10)
            summary = pledger_summaries(parish["other_tenant_id"])
            assert summary["pledgers"] == []
            assert summary["totals"]["collected"] == "0.00"


# ============================================================================
# Intention ledger
# ============================================================================


def _intention(category, text="x", mass_time=None):
    return SimpleNamespace(
        category=category, intention=text, requester_name="Ana", mass_time=mass_time
    )


class TestLedgerGrouping:
    def test_fixed_category_order(self):
        groups = group_intentions([
            _intention("other", "d"),
            _intention("living", "b"),
            _intention("deceased", "a"),
            _intention("thanksgiving", "c"),
        ])
        assert [g["category"] for g in groups] == ["deceased", "living", "thanksgiving", "other"]
        assert [g["label"] for g in groups] == [
            "Falecido(a)", "Vivo(a)", "Ação de Graças", "Outra Intenção",
        ]

    def test_empty_categories_dropped(self):
        groups = group_intentions([_intention("living")])
        assert [g["category"] for g in groups] == ["living"]

    def test_unknown_category_goes_to_other(self):
        groups = group_intentions([_intention("birthday", "parabéns")])
        assert groups[0]["category"] == "other"
        assert groups[0]["items"][0].intention == "parabéns"

    def test_mass_times_sorted_and_distinct(self):
        times = mass_times([
            _intention("deceased", mass_time=datetime.time(19, 0)),
            _intention("deceased", mass_time=datetime.time(7, 30)),
            _intention("living", mass_time=datetime.time(19, 0)),
            _intention("living"),
        ])
        assert times == ["07:30", "19:00"]

    def test_long_date(self):
        assert format_long_date_pt(datetime.date(2026, 10, 25)) == "domingo, 25 de outubro de 2026"


class TestRenderLedger:
    def _add(self, tenant_id, user_id, text, status="approved", category="deceased"):
        db.session.add(MassIntention(
            tenant_id=tenant_id, user_id=user_id, requester_name="<b>Ana</b>",
            intention=text, category=category, status=status,
            mass_date=datetime.date(2026, 10, 25), mass_time=datetime.time(8, 0),
        ))

    def test_escapes_requester_text(self, app, parish):
        with app.app_context():
            self._add(parish["tenant_id"], parish["member_id"], "<script>alert(1)</script>")
            db.session.commit()
            tenant = db.session.get(Tenant, parish["tenant_id"])
            html = render_ledger(
                tenant, datetime.date(2026, 10, 25),
                generated_at=datetime.datetime(2026, 10, 20, 9, 30),
            )
            assert "<script" not in html
            assert "&lt;script&gt;" in html
            assert "&lt;b&gt;Ana&lt;/b&gt;" in html
            assert "Paróquia São José" in html
            assert "Maceió - AL" in html
            assert "domingo, 25 de outubro de 2026" in html
            assert "Gerado em 20/10/2026 09:30" in html
            assert "font-family: Georgia, 'Times New Roman', serif" in html

    def test_only_approved_for_the_date(self, app, parish):
        with app.app_context():
            self._add(parish["tenant_id"], parish["member_id"], "aprovada")
            self._add(parish["tenant_id"], parish["member_id"], "pendente", status="pending")
            self._add(parish["tenant_id"], parish["member_id"], "rejeitada", status="rejected")
            db.session.commit()
            tenant = db.session.get(Tenant, parish["tenant_id"])
            html = render_ledger(tenant, datetime.date(2026, 10, 25))
            assert "aprovada" in html
            assert "pendente" not in html
            assert "rejeitada" not in html

    def test_empty_date_placeholder(self, app, parish):
        with app.app_context():
            tenant = db.session.get(Tenant, parish["tenant_id"])
            html = render_ledger(tenant, datetime.date(2026, 11, 1))
            assert EMPTY_MESSAGE in html
            assert "Horários" not in html


# ============================================================================
# POS
# ============================================================================


def _product(product_id, price, name="Produto"):
    return SimpleNamespace(id=product_id, name=name, price=Decimal(price))


class TestCart:
    def test_add_merges_lines(self):
        cart = Cart()
        cart.add(_product(1, "8.00"))
        cart.add(_product(1, "8.00"), 2)
        cart.add(_product(2, "3.50"))
        assert len(cart.lines) == 2
        assert cart.item_count == 4
        assert cart.total == Decimal("27.50")

    def test_update_quantity_removes_at_zero(self):
        cart = Cart()
        cart.add(_product(1, "8.00"), 2)
        cart.update_quantity(1, -1)
        assert cart.lines[0].quantity == 1
        cart.update_quantity(1, -1)
        assert cart.is_empty()
        assert cart.total == Decimal("0.00")

    def test_remove(self):
        cart = Cart()
        cart.add(_product(1, "8.00"))
        cart.add(_product(2, "3.50"))
        cart.remove(1)
        assert [line.product_id for line in cart.lines] == [2]


def _order(status, total, method=None):
    return SimpleNamespace(status=status, total=Decimal(total), payment_method=method)


class TestSummarize:
    def test_revenue_counts_paid_and_delivered(self):
        summary = summarize([
            _order("paid", "10.00", "pix"),
            _order("delivered", "20.00", "cash"),
            _order("paid", "7.50"),
            _order("open", "5.00"),
        ])
        assert summary.to_dict() == {
            "total_revenue": "37.50",
            "order_count": 4,
            "average_order_value": "9.38",
            "by_method": {"pix": "10.00", "cash": "20.00", "unspecified": "7.50"},
        }

    def test_empty(self):
        summary = summarize([])
        assert summary.order_count == 0
        assert summary.total_revenue == Decimal("0.00")
        assert summary.average_order_value == Decimal("0.00")
        assert summary.by_method == {}


# ============================================================================
# PIX
# ============================================================================


class TestPix:
    def test_crc_check_value(self):
        assert crc16_ccitt("123456789") == 0x29B1

    def test_payload_structure(self):
        payload = build_pix_payload(
            "contato@saojose.org.br", "Paróquia Nossa Senhora da Conceição", "Maceió",
            amount=Decimal("10"),
        )
        assert payload.startswith("000201")
        assert "0014br.gov.bcb.pix0122contato@saojose.org.br" in payload
        assert "540510.00" in payload
        assert "5925Paroquia Nossa Senhora da" in payload
        assert "6006MACEIO" in payload
        assert "62070503***" in payload
        assert payload[-8:-4] == "6304"
        assert payload[-4:] == f"{crc16_ccitt(payload[:-4]):04X}"

    def test_payload_without_amount(self):
        payload = build_pix_payload("chave", "Paroquia", "Arapiraca")
        assert "53039865802BR" in payload

    def test_invalid_inputs(self):
        with pytest.raises(ValidationError):
            build_pix_payload("", "Paroquia", "Maceio")
        with pytest.raises(ValidationError):
            build_pix_payload("chave", "Paroquia", "Maceio", amount=Decimal("0"))

    def test_qr_svg(self):
        svg = pix_qr_svg(build_pix_payload("chave", "Paroquia", "Maceio"))
        assert "<svg" in svg


# ============================================================================
# Tenant isolation & payloads
# ============================================================================


class TestFlushGuard:
    def test_cross_tenant_write_blocked(self, app, parish):
        with app.app_context():
            db.session.info["tenant_id"] = parish["tenant_id"]
            db.session.add(Announcement(
                tenant_id=parish["other_tenant_id"], title="x", body="y",
            ))
            with pytest.raises(TenantSecurityError):
                db.session.flush()
            db.session.rollback()
            unpin_session()

    def test_same_tenant_write_allowed(self, app, parish):
        with app.app_context():
            db.session.info["tenant_id"] = parish["tenant_id"]
            db.session.add(Announcement(tenant_id=parish["tenant_id"], title="x", body="y"))
            db.session.commit()
            unpin_session()
            assert Announcement.query.count() == 1


class TestPayloads:
    def test_required_field_cannot_be_blanked(self):
        with pytest.raises(ValidationError):
            TenantUpdate.from_payload({"name": "  "})

    def test_routing_keys_ignored(self):
        update = TenantUpdate.from_payload({"id": 1, "tenant_slug": "x", "phone": " 123 "})
        assert update.changes() == {"phone": "123"}

    def test_membership_status_must_be_known(self):
        with pytest.raises(ValidationError):
            MembershipUpdate.from_payload({"status": ["active"]})
        update = MembershipUpdate.from_payload({"role": "clergy"})
        assert update.changes() == {"role": Role.CLERGY}

    @pytest.mark.parametrize("value", [5, {"a": 1}, ["x"], True])
    def test_text_fields_must_be_strings(self, value):
        with pytest.raises(ValidationError):
            TenantUpdate.from_payload({"phone": value})

    def test_declared_non_text_fields_accept_json_types(self):
        assert AnnouncementUpdate.from_payload({"published": True}).changes() == {"published": True}
        assert MinistryUpdate.from_payload({"coordinator_id": 7}).changes() == {"coordinator_id": 7}
        assert TenantUpdate.from_payload({"logo_url": None}).changes() == {"logo_url": None}


# ============================================================================
# Utils
# ============================================================================


class TestUtils:
    def test_slugify(self):
        assert slugify("Paróquia Nossa Senhora da Conceição") == "paroquia-nossa-senhora-da-conceicao"
        assert slugify("  --São  José!! ") == "sao-jose"

    def test_safe_decimal(self):
        assert safe_decimal("0.1") == Decimal("0.10")
        assert safe_decimal(0.1) == Decimal("0.10")
        assert safe_decimal("abc") is None
        assert safe_decimal(True) is None
        assert safe_decimal("nan") is None

    def test_strict_int(self):
        assert strict_int(15, "due_day") == 15
        assert strict_int(" 15 ", "due_day") == 15
        assert strict_int(15.0, "due_day") == 15
        assert strict_int("-3", "stock") == -3
        for bad in ("abc", 15.7, True, None, [1], "1.5", ""):
            with pytest.raises(ValidationError):
                strict_int(bad, "due_day")

    def test_clean_text(self):
        assert clean_text("  Ana ", "name") == "Ana"
        assert clean_text(None, "name") == ""
        for bad in (0, 5, {"a": 1}, ["x"], False):
            with pytest.raises(ValidationError):
                clean_text(bad, "name")
