"""Application error taxonomy.

Services raise these; ``app.py`` turns them into JSON error responses with
the matching HTTP status code.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that reach the API caller."""

    status_code = 500
    default_message = "Erro interno do servidor."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class AuthenticationError(AppError):
    """No valid session."""

    status_code = 401
    default_message = "Não autorizado"


class AuthorizationError(AppError):
    """Valid session, but the caller's role does not allow the action."""

    status_code = 403
    default_message = "Você não tem permissão para esta ação."


class ValidationError(AppError):
    """Missing or malformed input; raised before any write."""

    status_code = 400
    default_message = "Dados inválidos."


class NotFoundError(AppError):
    status_code = 404
    default_message = "Registro não encontrado."


class ConflictError(AppError):
    """The request clashes with current state (duplicate, stock, transition)."""

    status_code = 409
    default_message = "Conflito com o estado atual."


class PersistenceError(AppError):
    """A data-store read or write failed."""

    status_code = 500
    default_message = "Erro ao acessar o banco de dados."
