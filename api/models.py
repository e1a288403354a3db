"""
API request and response models for the business-management REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Validation messages are in Portuguese because the frontend shows them
verbatim.
"""

import re
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator

from auth.models import ByEmail, ByNationalId, ByUsername, Capability, LoginIdentifier

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CPF_PATTERN = re.compile(r"^\d{3}\.\d{3}\.\d{3}-\d{2}\Z", re.ASCII)
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+\Z")
# At least 8 chars, one digit, one non-alphanumeric character. ASCII mode so
# accented letters count as symbols, not as word characters.
PASSWORD_PATTERN = re.compile(r"^(?=.*\d)(?=.*\W)[a-zA-Z\d\W]{8,}\Z", re.ASCII)
UUID_PATTERN = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\Z")

# bcrypt ignores (or, in recent releases, rejects) anything past 72 bytes.
_BCRYPT_MAX_BYTES = 72


def is_valid_password(value: str) -> bool:
    """True if value matches PASSWORD_PATTERN and fits in bcrypt's input."""
    return bool(PASSWORD_PATTERN.match(value)) and len(value.encode("utf-8")) <= _BCRYPT_MAX_BYTES


def parse_capabilities(raw: Optional[str]) -> list[Capability]:
    """Split a comma-separated capability list ("admin,financial") into Capability members.

    Raises ValueError naming the first unknown entry.
    """
    if not raw:
        return []
    result: list[Capability] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            result.append(Capability(item))
        except ValueError:
            raise ValueError(f"Informe um cargo/função válido: {item}") from None
    return result


def split_csv(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


# ---------------------------------------------------------------------------
# Shared responses
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    """Generic {"message": ...} body used by every mutating endpoint."""

    model_config = ConfigDict(frozen=True)

    message: str


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses.

    errors is only present for validation failures.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    errors: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth -- login
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    Exactly one identifying field is expected. If several are sent, email
    wins over cpf, and cpf over username; identifier() makes that choice once.
    """

    # No whitespace stripping: it would alter passwords.
    model_config = ConfigDict(populate_by_name=True)

    cpf: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    password: str
    remember_me: StrictBool = Field(default=False, alias="rememberMe")

    @field_validator("cpf")
    @classmethod
    def check_cpf(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not CPF_PATTERN.match(value):
            raise ValueError("Informe um cpf válido!")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not EMAIL_PATTERN.match(value):
            raise ValueError("Informe um email de usuário válido")
        return value

    @field_validator("username")
    @classmethod
    def check_username(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value:
            raise ValueError("O(a) nome de usuário é obrigatório(a)")
        return value

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        if not is_valid_password(value):
            raise ValueError("Informe uma senha válida!")
        return value

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginRequest":
        if not (self.cpf or self.email or self.username):
            raise ValueError("Informe um cpf ou email ou nome de usuário válido!")
        return self

    def identifier(self) -> LoginIdentifier:
        if self.email:
            return ByEmail(self.email)
        if self.cpf:
            return ByNationalId(self.cpf)
        return ByUsername(self.username or "")


# ---------------------------------------------------------------------------
# Auth -- roles
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    """Request body for POST /api/v1/auth/create."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    admin: StrictBool
    project: StrictBool
    personal: StrictBool
    financial: StrictBool


class RoleUpdate(RoleCreate):
    """Request body for PUT /api/v1/auth/update."""

    uuid: UUID


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    uuid: str
    name: str
    admin: Optional[bool] = None
    project: Optional[bool] = None
    personal: Optional[bool] = None
    financial: Optional[bool] = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserRoleRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    uuid: str
    name: Optional[str] = None


class UserResponse(BaseModel):
    """A user as seen by the caller.

    cpf, name and address are only set when the caller may see personal data;
    hourly_rate only when the caller may see financial data. Routes serialize
    with exclude_unset so hidden fields are omitted, not null.
    """

    model_config = ConfigDict(frozen=True)

    uuid: str
    username: str
    active: bool
    email: Optional[str] = None
    phone: Optional[str] = None
    auth: UserRoleRef
    cpf: Optional[str] = None
    name: Optional[str] = None
    address: Optional[str] = None
    hourly_rate: Optional[float] = None
