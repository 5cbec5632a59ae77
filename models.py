"""SQLAlchemy models and the parish role hierarchy."""

from __future__ import annotations

import enum

from extensions import db
from utils import utc_now

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class Role(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    PARISH_ADMIN = "parish_admin"
    CLERGY = "clergy"
    STAFF = "staff"
    COORDINATOR = "coordinator"
    POS_OPERATOR = "pos_operator"
    MEMBER = "member"


ROLE_HIERARCHY: dict[Role, int] = {
    Role.SUPER_ADMIN: 100,
    Role.PARISH_ADMIN: 80,
    Role.CLERGY: 70,
    Role.STAFF: 60,
    Role.COORDINATOR: 40,
    Role.POS_OPERATOR: 20,
    Role.MEMBER: 10,
}

ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.PARISH_ADMIN})

VALID_MEMBERSHIP_STATUSES = {"active", "inactive"}
VALID_TENANT_STATUSES = {"active", "inactive"}
VALID_INSTALLMENT_STATUSES = {"open", "paid", "overdue"}
VALID_ORDER_STATUSES = {"open", "paid", "delivered"}
REVENUE_ORDER_STATUSES = {"paid", "delivered"}
VALID_PAYMENT_METHODS = {"cash", "pix", "card"}
VALID_MODERATION_STATUSES = {"pending", "approved", "rejected"}
MODERATION_OUTCOMES = ("approved", "rejected")

# Display order of the printed ledger.
INTENTION_CATEGORIES = ("deceased", "living", "thanksgiving", "other")


# ---------------------------------------------------------------------------
# Tenant & users
# ---------------------------------------------------------------------------

class Tenant(db.Model):
    """One parish: an isolated data partition addressed by its slug."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    slug = db.Column(db.String(160), unique=True, nullable=False)
    address = db.Column(db.String(200))
    city = db.Column(db.String(120))
    region = db.Column(db.String(60))
    phone = db.Column(db.String(60))
    email = db.Column(db.String(120))
    primary_color = db.Column(db.String(20))
    logo_url = db.Column(db.String(500))
    donation_key = db.Column(db.String(120))
    payee_name = db.Column(db.String(120))
    status = db.Column(db.String(20), nullable=False, default="active")
    created_by_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    memberships = db.relationship(
        "Membership", backref="tenant", cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    memberships = db.relationship(
        "Membership", backref="user", cascade="all, delete-orphan"
    )


class Membership(db.Model):
    """A user's single role inside one tenant; disabled via ``status``."""
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    role = db.Column(
        db.Enum(
            Role,
            native_enum=False,
            length=30,
            values_callable=lambda roles: [r.value for r in roles],
        ),
        nullable=False,
        default=Role.MEMBER,
    )
    status = db.Column(db.String(20), nullable=False, default="active")
    display_name = db.Column(db.String(120))
    phone = db.Column(db.String(60))
    address = db.Column(db.String(200))
    photo_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint("user_id", "tenant_id", name="uq_membership_user_tenant"),
    )


# ---------------------------------------------------------------------------
# Announcements, events, ministries
# ---------------------------------------------------------------------------

class Announcement(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.String(500))
    published = db.Column(db.Boolean, default=False)
    author_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    author = db.relationship("User")


class Event(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(200))
    starts_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime)
    category = db.Column(db.String(40), default="general")
    has_sales = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    sales_points = db.relationship(
        "SalesPoint", backref="event", cascade="all, delete-orphan"
    )


class Ministry(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    name = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text)
    coordinator_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    meeting_day = db.Column(db.String(40))
    meeting_time = db.Column(db.Time)
    created_at = db.Column(db.DateTime, default=utc_now)

    members = db.relationship(
        "MinistryMember", backref="ministry", cascade="all, delete-orphan"
    )


class MinistryMember(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    ministry_id = db.Column(db.Integer, db.ForeignKey("ministry.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    joined_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint("ministry_id", "user_id", name="uq_ministry_member"),
    )


# ---------------------------------------------------------------------------
# Point of sale
# ---------------------------------------------------------------------------

class SalesPoint(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    event_id = db.Column(db.Integer, db.ForeignKey("event.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    products = db.relationship(
        "Product",
        backref="sales_point",
        cascade="all, delete-orphan",
        order_by="Product.position, Product.id",
    )
    orders = db.relationship(
        "Order", backref="sales_point", cascade="all, delete-orphan"
    )


class Product(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    sales_point_id = db.Column(db.Integer, db.ForeignKey("sales_point.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False)
    stock = db.Column(db.Integer)  # NULL = not tracked
    is_active = db.Column(db.Boolean, default=True)
    position = db.Column(db.Integer, default=0)


class Order(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    sales_point_id = db.Column(db.Integer, db.ForeignKey("sales_point.id"), nullable=False)
    buyer_name = db.Column(db.String(120))
    operator_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="open")
    payment_method = db.Column(db.String(20))
    total = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    operator = db.relationship("User")
    items = db.relationship("OrderItem", backref="order", cascade="all, delete-orphan")

    __table_args__ = (
        db.Index("ix_order_sales_point_status", "sales_point_id", "status"),
    )


class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False)
    subtotal = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False)

    product = db.relationship("Product")

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_item_quantity"),
    )


# ---------------------------------------------------------------------------
# Tithe
# ---------------------------------------------------------------------------

class Pledger(db.Model):
    """The pledge-owner record of a user inside one tenant."""
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    pledges = db.relationship(
        "Pledge", backref="pledger", cascade="all, delete-orphan", order_by="Pledge.id"
    )

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "user_id", name="uq_pledger_tenant_user"),
    )


class Pledge(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    pledger_id = db.Column(db.Integer, db.ForeignKey("pledger.id"), nullable=False)
    monthly_amount = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False)
    due_day = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    installments = db.relationship(
        "Installment",
        backref="pledge",
        cascade="all, delete-orphan",
        order_by="Installment.competency",
    )

    __table_args__ = (
        db.CheckConstraint("monthly_amount > 0", name="ck_pledge_amount_positive"),
        db.CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_pledge_due_day"),
    )


class Installment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    pledge_id = db.Column(db.Integer, db.ForeignKey("pledge.id"), nullable=False)
    competency = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    amount = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="open")
    paid_at = db.Column(db.DateTime)

    __table_args__ = (
        db.Index("ix_installment_status_due", "status", "due_date"),
    )

    def status_on(self, day) -> str:
        """Status as of *day*: open installments past their due date are overdue."""
        if self.status == "open" and self.due_date < day:
            return "overdue"
        return self.status


# ---------------------------------------------------------------------------
# Mass intentions & prayer requests
# ---------------------------------------------------------------------------

class MassIntention(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    requester_name = db.Column(db.String(120), nullable=False)
    intention = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(20), nullable=False, default="deceased")
    mass_date = db.Column(db.Date)
    mass_time = db.Column(db.Time)
    status = db.Column(db.String(20), nullable=False, default="pending")
    note = db.Column(db.String(500))
    moderated_by_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.Index("ix_mass_intention_date_status", "tenant_id", "mass_date", "status"),
    )


class PrayerRequest(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    requester_name = db.Column(db.String(120), nullable=False)
    intention = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    moderated_by_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    created_at = db.Column(db.DateTime, default=utc_now)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    action = db.Column(db.String(80), nullable=False)
    entity_type = db.Column(db.String(80), nullable=False)
    entity_id = db.Column(db.Integer)
    details = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)

    user = db.relationship("User")

    __table_args__ = (
        db.Index("ix_audit_log_created_at", "created_at"),
        db.Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )
