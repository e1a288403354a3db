"""
api/routes/v1/users.py -- User listing with capability-based field visibility.

Routes:
  GET /api/v1/user/select/{key}  -- key is "all", "this" (the caller) or a user uuid

What the caller sees depends on their role:
  personal  -> cpf, name and address
  financial -> hourly_rate
Everyone sees uuid, username, active, email, phone and the role reference.
With key="this" the caller always sees their own personal and financial
fields.
Filtering by hourly rate (hourlyRateMin, hourlyRateMax) needs the same
financial capability as seeing it.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.models import UUID_PATTERN, UserResponse, UserRoleRef, split_csv
from auth.authorization import ROLE_MISSING
from auth.dependencies import get_session, get_store
from auth.errors import Forbidden, ValidationError
from auth.models import Capability, SessionClaims, User
from auth.store import AuthStore

router = APIRouter()


@router.get(
    "/user/select/{key}",
    response_model=list[UserResponse],
    response_model_exclude_unset=True,
)
def select_users(
    key: str,
    username: Optional[str] = None,
    active: Optional[str] = Query(default=None, pattern=r"^(true|false)$"),
    auth: Optional[str] = Query(default=None, description="Comma-separated role uuids"),
    cpf: Optional[str] = None,
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
    hourly_rate_min: Optional[float] = Query(default=None, alias="hourlyRateMin"),
    hourly_rate_max: Optional[float] = Query(default=None, alias="hourlyRateMax"),
    claims: SessionClaims = Depends(get_session),
    store: AuthStore = Depends(get_store),
) -> list[UserResponse]:
    role = store.get_role(claims.auth_uuid)
    if role is None:
        raise Forbidden(ROLE_MISSING)

    show_personal = role.grants(Capability.personal)
    show_financial = role.grants(Capability.financial)
    if key == "all":
        user_uuid = None
    elif key == "this":
        user_uuid = claims.uuid
        show_personal = show_financial = True
    elif UUID_PATTERN.match(key):
        user_uuid = key
    else:
        message = "Informe uma chave válida!"
        raise ValidationError(message, errors=[{"field": "key", "message": message}])

    rate_filtered = hourly_rate_min is not None or hourly_rate_max is not None
    if rate_filtered and not show_financial:
        raise Forbidden(f"Usuário sem autorização sobre {Capability.financial.label}")

    users = store.list_users(
        user_uuid=user_uuid,
        username=username,
        active=None if active is None else active == "true",
        auth_uuids=split_csv(auth),
        contains={"cpf": cpf, "name": name, "email": email, "phone": phone, "address": address},
        hourly_rate_min=hourly_rate_min,
        hourly_rate_max=hourly_rate_max,
    )
    role_names = {r.uuid: r.name for r in store.list_roles()}
    return [_user_to_response(u, role_names, show_personal, show_financial) for u in users]


def _user_to_response(
    user: User,
    role_names: dict[str, str],
    show_personal: bool,
    show_financial: bool,
) -> UserResponse:
    fields: dict = {
        "uuid": user.uuid,
        "username": user.username,
        "active": user.active,
        "email": user.email,
        "phone": user.phone,
        "auth": UserRoleRef(uuid=user.auth_uuid, name=role_names.get(user.auth_uuid)),
    }
    if show_personal:
        fields.update(cpf=user.cpf, name=user.name, address=user.address)
    if show_financial:
        fields["hourly_rate"] = user.hourly_rate
    return UserResponse(**fields)
