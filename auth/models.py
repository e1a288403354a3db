"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, minimal logic). Stores and routes
do the work; the only behaviour here is the per-capability accessor on Role
and the identifier union used at login.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

# Ordinal of the system's root role. It can never be edited or deleted.
DEFAULT_ROLE_ID = 0


class Capability(str, Enum):
    """The four independent permission flags a Role may grant."""

    admin = "admin"
    project = "project"
    personal = "personal"
    financial = "financial"

    @property
    def label(self) -> str:
        return _CAPABILITY_LABELS[self]


_CAPABILITY_LABELS: dict[Capability, str] = {
    Capability.admin: "configurações do sistema",
    Capability.project: "dados dos projetos",
    Capability.personal: "dados pessoais",
    Capability.financial: "dados financeiros",
}


@dataclass
class Role:
    """A named set of capabilities (called "auth" by the frontend).

    Flags are tri-state in storage: True, False, or None for rows created
    before a flag existed. Only a literal True grants anything.
    """

    name: str
    admin: bool | None = False
    project: bool | None = False
    personal: bool | None = False
    financial: bool | None = False
    uuid: str | None = None
    id: int | None = None  # ordinal; DEFAULT_ROLE_ID is reserved

    @property
    def is_default(self) -> bool:
        return self.id == DEFAULT_ROLE_ID

    def grants(self, capability: Capability) -> bool:
        if capability is Capability.admin:
            return self.admin is True
        if capability is Capability.project:
            return self.project is True
        if capability is Capability.personal:
            return self.personal is True
        if capability is Capability.financial:
            return self.financial is True
        return False


@dataclass
class User:
    """A login identity.

    A user can sign in with any one of email, cpf or username. hashed_password
    is only read by authenticate_user(); API responses never include it.
    """

    username: str
    hashed_password: str
    auth_uuid: str
    email: str | None = None
    cpf: str | None = None  # NNN.NNN.NNN-NN
    name: str | None = None
    phone: str | None = None
    address: str | None = None
    hourly_rate: float | None = None
    active: bool = True
    uuid: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class SessionClaims:
    """Decoded contents of a session token: who the caller is and which role they hold."""

    uuid: str
    auth_uuid: str

    def to_payload(self) -> dict[str, str]:
        return {"uuid": self.uuid, "authUuid": self.auth_uuid}


# ---------------------------------------------------------------------------
# Login identifier (decided once at the request boundary)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ByEmail:
    email: str


@dataclass(frozen=True)
class ByNationalId:
    cpf: str


@dataclass(frozen=True)
class ByUsername:
    username: str


LoginIdentifier = Union[ByEmail, ByNationalId, ByUsername]
