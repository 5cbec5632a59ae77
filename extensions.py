"""Flask extensions shared by the app factory, models and blueprints."""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

db = SQLAlchemy()
csrf = CSRFProtect()
# Per-client ceiling for the whole API; auth endpoints set tighter limits.
limiter = Limiter(
    get_remote_address,
    storage_uri="memory://",
    default_limits=["300 per minute"],
)
