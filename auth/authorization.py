"""
auth/authorization.py -- Capability checks and the role mutation guards.

authorized() is the single predicate every protected operation goes through:
given a role uuid and a capability it answers yes or no, and never raises.
The callers decide what a "no" means (usually Forbidden).

The guards encode the role lifecycle:

    Absent --create (admin)--> Active
    Active --update (admin, not default)--> Active
    Active --delete (admin, not default, no users)--> Absent

Each guard raises on the first failed check and performs no writes, so a
rejected request never leaves a partial mutation behind.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from auth.errors import Conflict, Forbidden, NotFound
from auth.models import Capability, Role, SessionClaims

if TYPE_CHECKING:
    from auth.store import AuthStore


ROLE_NOT_FOUND = "Cargo/Função não encontrado!"
# The session names a role that no longer exists.
ROLE_MISSING = "Autorização não encontrada!"


def authorized(store: AuthStore, capability: Capability, auth_uuid: str) -> bool:
    """Return True only if the role exists and its capability flag is literally True."""
    role = store.get_role(auth_uuid)
    if role is None:
        return False
    return role.grants(capability)


def require_capabilities(store: AuthStore, auth_uuid: str, requested: Mapping[Capability, bool]) -> Role:
    """Check every capability requested as True against the caller's role.

    Capabilities are walked in Capability declaration order and the first one
    the role lacks is raised as Forbidden naming its label. A role that does
    not exist grants nothing and is reported as Forbidden too. Capabilities
    requested as False are not checked.

    Returns the caller's Role when everything requested is granted.
    """
    role = store.get_role(auth_uuid)
    if role is None:
        raise Forbidden(ROLE_MISSING)
    for capability in Capability:
        if requested.get(capability) and not role.grants(capability):
            raise Forbidden(f"Usuário sem autorização sobre {capability.label}")
    return role


def guard_role_create(store: AuthStore, claims: SessionClaims) -> None:
    if not authorized(store, Capability.admin, claims.auth_uuid):
        raise Forbidden("Usuário sem autorização para criar esses dados!")


def guard_role_update(store: AuthStore, claims: SessionClaims, target_uuid: str) -> Role:
    """Return the target role if the caller may update it.

    Order: target exists -> caller is admin -> target is not the default role.
    """
    target = store.get_role(target_uuid)
    if target is None:
        raise NotFound(ROLE_NOT_FOUND)
    if not authorized(store, Capability.admin, claims.auth_uuid) or target.is_default:
        raise Forbidden("Usuário sem autorização para editar esses dados!")
    return target


def guard_role_delete(store: AuthStore, claims: SessionClaims, target_uuid: str) -> Role:
    """Return the target role if the caller may delete it.

    Order: target exists -> caller is admin -> target is not the default
    role -> no user references the target.
    """
    target = store.get_role(target_uuid)
    if target is None:
        raise NotFound(ROLE_NOT_FOUND)
    if not authorized(store, Capability.admin, claims.auth_uuid) or target.is_default:
        raise Forbidden("Usuário sem autorização para excluir os dados!")
    if store.count_users_with_role(target_uuid) > 0:
        raise Conflict("O cargo/função possui usuários vinculados!")
    return target
