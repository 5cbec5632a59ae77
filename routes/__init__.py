"""Blueprint registration."""

from routes.announcements import announcements_bp
from routes.auth import auth_bp
from routes.events import events_bp
from routes.intentions import intentions_bp
from routes.members import members_bp
from routes.ministries import ministries_bp
from routes.pos import pos_bp
from routes.prayers import prayers_bp
from routes.roles import roles_bp
from routes.tenants import tenants_bp
from routes.tithe import tithe_bp

ALL_BLUEPRINTS = [
    auth_bp,
    tenants_bp,
    roles_bp,
    members_bp,
    announcements_bp,
    events_bp,
    ministries_bp,
    prayers_bp,
    intentions_bp,
    tithe_bp,
    pos_bp,
]


def register_blueprints(app):
    """Register all application blueprints on *app*."""
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)
