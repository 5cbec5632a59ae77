"""Authentication services: current user, login guard, account creation."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Optional

from flask import g
from werkzeug.security import check_password_hash, generate_password_hash

from errors import AuthenticationError, ConflictError, ValidationError
from extensions import db
from models import User
from utils import clean_text

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def get_current_user() -> Optional[User]:
    """Return the currently logged-in user from ``flask.g``."""
    return getattr(g, "current_user", None)


def require_user() -> User:
    """Return the current user or raise :class:`AuthenticationError`."""
    user = get_current_user()
    if user is None:
        raise AuthenticationError()
    return user


def login_required(f):
    """Decorator that rejects the request with 401 when nobody is logged in."""

    @wraps(f)
    def decorated(*args, **kwargs):
        require_user()
        return f(*args, **kwargs)

    return decorated


def validate_password(password: str) -> Optional[str]:
    """Return an error message if *password* is too weak, else None."""
    if len(password or "") < MIN_PASSWORD_LENGTH:
        return f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres"
    return None


def create_user(name: str, email: str, password: str) -> User:
    """Validate and add a new user to the session (flushed, not committed)."""
    name = clean_text(name, "name")
    email = clean_text(email, "email").lower()
    if password is not None and not isinstance(password, str):
        raise ValidationError("O campo password deve ser texto")
    if not name or not email or not password:
        raise ValidationError("Todos os campos são obrigatórios")
    pw_error = validate_password(password)
    if pw_error:
        raise ValidationError(pw_error)
    if User.query.filter_by(email=email).first():
        raise ConflictError("Este e-mail já está cadastrado. Faça login.")

    user = User(
        name=name,
        email=email,
        password_hash=generate_password_hash(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    logger.info("Created user id=%s", user.id)
    return user


def authenticate(email: str, password: str) -> Optional[User]:
    """Return the active user matching the credentials, or None."""
    if not isinstance(email, str) or not isinstance(password, str):
        return None
    email = email.strip().lower()
    user = User.query.filter_by(email=email).first()
    if user and user.is_active and check_password_hash(user.password_hash, password):
        return user
    return None
