"""
auth/errors.py -- Error taxonomy for the auth core.

Every failure the auth core can report is an AuthError carrying the HTTP
status and the user-facing message. api/main.py registers one exception
handler that turns any AuthError into {"message": ...}.

Status codes follow what the frontend expects: missing capabilities and
failed logins are both reported as 401.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 500
    message: str = "Erro no servidor!"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed or missing request fields. errors holds field-level detail."""

    status_code = 401
    message = "Dados inválidos!"

    def __init__(self, message: str | None = None, errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class Unauthenticated(AuthError):
    status_code = 401
    message = "Necessário token de autorização!"


class InvalidToken(Unauthenticated):
    message = "Erro na validação do token de autorização!"


class Forbidden(AuthError):
    status_code = 401
    message = "Usuário sem autorização!"


class NotFound(AuthError):
    status_code = 404
    message = "Registro não encontrado!"


class UserNotFound(NotFound):
    status_code = 401
    message = "Usuário não cadastrado!"


class InactiveAccount(AuthError):
    status_code = 401
    message = "Usuário inativo!"


class InvalidCredentials(AuthError):
    status_code = 401
    message = "Senha incorreta!"


class Conflict(AuthError):
    status_code = 409
    message = "O registro possui dependências!"


class InternalError(AuthError):
    status_code = 500
