"""
api/routes/v1/auth.py -- Login, session and role (cargo/função) endpoints.

Routes:
  POST   /api/v1/auth/login           -- credential login; sets the "token" cookie
  POST   /api/v1/auth/logout          -- clears the cookie
  GET    /api/v1/auth/check           -- does the caller's role grant the queried capabilities?
  GET    /api/v1/auth/select/{key}    -- list roles: "all", "this" (caller's role) or a role uuid
  POST   /api/v1/auth/create          -- create role (admin)
  PUT    /api/v1/auth/update          -- update role (admin, never the default role)
  DELETE /api/v1/auth/delete/{uuid}   -- delete role (admin, never the default role, no users)

Check order on the mutating routes:
  schema -> session -> target exists -> admin capability -> default-role /
  dependents guard -> write. FastAPI validates the body before the handler
  runs; the handler then calls get_session() itself so that a malformed body
  is reported before a missing cookie. The first failure wins and nothing is
  written.

Errors are raised as auth.errors.AuthError subclasses and turned into
{"message": ...} responses by the handler in api/main.py.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.models import (
    UUID_PATTERN,
    LoginRequest,
    MessageResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    parse_capabilities,
    split_csv,
)
from auth.authorization import guard_role_create, guard_role_delete, guard_role_update, require_capabilities
from auth.dependencies import get_session, get_store
from auth.errors import ValidationError
from auth.models import Capability, Role, SessionClaims
from auth.store import AuthStore
from auth.tokens import (
    COOKIE_NAME,
    authenticate_user,
    clear_session_cookie,
    issue_session,
    set_session_cookie,
)

logger = logging.getLogger("bizmanager.api.auth")

# Auth policy:
# - POST   /auth/login:          public
# - POST   /auth/logout:         public -- clearing a cookie needs no prior auth
# - GET    /auth/check:          requires session
# - GET    /auth/select/{key}:   requires session
# - POST   /auth/create:         requires session + admin
# - PUT    /auth/update:         requires session + admin
# - DELETE /auth/delete/{uuid}:  requires session + admin
router = APIRouter()

_TRUE_FALSE = r"^(true|false)$"


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=MessageResponse, status_code=201)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email, cpf or username plus password; set the session cookie.

    Failures are reported with distinct messages (unknown user, inactive
    user, wrong password), all as 401.
    """
    store: AuthStore = request.app.state.auth_store
    user = authenticate_user(store, body.identifier(), body.password)

    resp = JSONResponse(status_code=201, content=MessageResponse(message="Logado com sucesso.").model_dump())
    set_session_cookie(resp, issue_session(user), remember_me=body.remember_me)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("User %s logged in (remember_me=%s)", user.uuid, body.remember_me)
    return resp


@router.post("/auth/logout", response_model=MessageResponse, status_code=201)
def logout(request: Request) -> JSONResponse:
    """Clear the session cookie.

    Only the browser's copy goes away. The token itself stays valid wherever
    else it was copied, since tokens are stateless and never expire.
    """
    resp = JSONResponse(status_code=201, content=MessageResponse(message="Deslogado com sucesso.").model_dump())
    if request.cookies.get(COOKIE_NAME):
        clear_session_cookie(resp)
    return resp


@router.get("/auth/check", response_model=MessageResponse)
def check(
    admin: Optional[str] = Query(default=None, pattern=_TRUE_FALSE),
    project: Optional[str] = Query(default=None, pattern=_TRUE_FALSE),
    personal: Optional[str] = Query(default=None, pattern=_TRUE_FALSE),
    financial: Optional[str] = Query(default=None, pattern=_TRUE_FALSE),
    claims: SessionClaims = Depends(get_session),
    store: AuthStore = Depends(get_store),
) -> MessageResponse:
    """Answer 200 if the caller's role grants every capability queried as "true".

    The first missing capability is reported as 401 naming its label; the
    remaining ones are not checked.
    """
    requested = {
        Capability.admin: admin == "true",
        Capability.project: project == "true",
        Capability.personal: personal == "true",
        Capability.financial: financial == "true",
    }
    require_capabilities(store, claims.auth_uuid, requested)
    return MessageResponse(message="Usuário autorizado.")


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@router.get("/auth/select/{key}", response_model=list[RoleResponse])
def select_roles(
    key: str,
    name: Optional[str] = Query(default=None, description="Comma-separated role names"),
    auth: Optional[str] = Query(default=None, description="Capabilities that must be granted"),
    not_auth: Optional[str] = Query(
        default=None,
        alias="notAuth",
        description="Capabilities that must not be granted",
    ),
    claims: SessionClaims = Depends(get_session),
    store: AuthStore = Depends(get_store),
) -> list[RoleResponse]:
    """List roles. key is "all", "this" (the caller's own role) or a role uuid."""
    if key == "all":
        auth_uuid = None
    elif key == "this":
        auth_uuid = claims.auth_uuid
    elif UUID_PATTERN.match(key):
        auth_uuid = key
    else:
        message = "Informe uma chave válida!"
        raise ValidationError(message, errors=[{"field": "key", "message": message}])

    try:
        required = parse_capabilities(auth)
        absent = parse_capabilities(not_auth)
    except ValueError as exc:
        raise ValidationError(str(exc), errors=[{"field": "auth", "message": str(exc)}]) from exc

    roles = store.list_roles(auth_uuid=auth_uuid, names=split_csv(name), required=required, absent=absent)
    return [_role_to_response(r) for r in roles]


@router.post("/auth/create", response_model=MessageResponse, status_code=201)
def create_role(request: Request, body: RoleCreate) -> MessageResponse:
    """Create a role. Requires the admin capability."""
    claims = get_session(request)
    store: AuthStore = request.app.state.auth_store
    guard_role_create(store, claims)

    role = store.create_role(
        Role(
            name=body.name,
            admin=body.admin,
            project=body.project,
            personal=body.personal,
            financial=body.financial,
        )
    )
    logger.info("Role %s (%s) created by user %s", role.uuid, role.name, claims.uuid)
    return MessageResponse(message="O cargo/função foi cadastrado.")


@router.put("/auth/update", response_model=MessageResponse, status_code=201)
def update_role(request: Request, body: RoleUpdate) -> MessageResponse:
    """Replace a role's name and flags. Requires admin; the default role is immutable."""
    claims = get_session(request)
    store: AuthStore = request.app.state.auth_store
    target = guard_role_update(store, claims, str(body.uuid))

    store.update_role(
        Role(
            uuid=target.uuid,
            name=body.name,
            admin=body.admin,
            project=body.project,
            personal=body.personal,
            financial=body.financial,
        )
    )
    logger.info("Role %s updated by user %s", target.uuid, claims.uuid)
    return MessageResponse(message="As informações do cargo/função foram atualizadas.")


@router.delete("/auth/delete/{uuid}", response_model=MessageResponse, status_code=201)
def delete_role(request: Request, uuid: UUID) -> MessageResponse:
    """Delete a role. Requires admin; refuses the default role and roles still assigned to users."""
    claims = get_session(request)
    store: AuthStore = request.app.state.auth_store
    target = guard_role_delete(store, claims, str(uuid))

    store.delete_role(target.uuid)
    logger.info("Role %s deleted by user %s", target.uuid, claims.uuid)
    return MessageResponse(message="O cargo/função foi deletado.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _role_to_response(role: Role) -> RoleResponse:
    return RoleResponse(
        uuid=role.uuid,
        name=role.name,
        admin=role.admin,
        project=role.project,
        personal=role.personal,
        financial=role.financial,
    )
