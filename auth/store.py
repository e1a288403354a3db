"""
auth/store.py -- SQLAlchemy Core persistence layer for users and roles.

Pattern: Repository + Data Mapper. AuthStore is the repository; _row_to_user
and _row_to_role are the mappers. Route and dependency code never touches
SQL directly.

The store is created once in the app lifespan and handed to callers through
app.state (or directly, in tests and the CLI). Nothing in auth/ keeps a
module-level connection.

Security:
  All queries use bound parameters. No f-strings in SQL.

Roles:
  auths.id is an ordinal assigned by the store (MAX(id) + 1), not an
  autoincrement. Ordinal 0 is the default role seeded on startup; the guards
  in auth/authorization.py refuse to update or delete it.

Concurrency:
  Role writes are single-statement. There is no version column, so two
  concurrent updates of the same role resolve as last-write-wins.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid as uuid_lib
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import DEFAULT_ROLE_ID, ByEmail, ByNationalId, ByUsername, Capability, LoginIdentifier, Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_auths = Table(
    "auths",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("uuid", String(36), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    # Nullable on purpose: a NULL flag grants nothing.
    Column("admin", Boolean),
    Column("project", Boolean),
    Column("personal", Boolean),
    Column("financial", Boolean),
)

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("uuid", String(36), nullable=False, unique=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), unique=True),
    Column("cpf", String(14), unique=True),  # NNN.NNN.NNN-NN
    Column("name", String(255)),
    Column("phone", String(32)),
    Column("address", Text),
    Column("hourly_rate", Float),
    Column("hashed_password", Text, nullable=False),
    Column("active", Boolean, nullable=False, server_default="1"),
    Column("auth_uuid", String(36), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_CAPABILITY_COLUMNS = {
    Capability.admin: _auths.c.admin,
    Capability.project: _auths.c.project,
    Capability.personal: _auths.c.personal,
    Capability.financial: _auths.c.financial,
}

# Roles created on first startup. Fixed UUIDs so environments agree on them.
DEFAULT_ROLES: list[Role] = [
    Role(
        id=DEFAULT_ROLE_ID,
        uuid="6babc75d-30ea-4d49-8b7d-3fffb2ddbcec",
        name="Administrador",
        admin=True,
        project=True,
        personal=True,
        financial=True,
    ),
    Role(
        id=1,
        uuid="a42d15c4-6721-4b15-84de-b5fa8ab86bac",
        name="Sócio",
        admin=True,
        project=True,
        personal=False,
        financial=True,
    ),
    Role(
        id=2,
        uuid="011ea0b9-786c-4833-b8a9-f060b604f242",
        name="Consultor",
        admin=False,
        project=True,
        personal=False,
        financial=True,
    ),
    Role(
        id=3,
        uuid="60e3d518-e670-4781-9762-63cc0c2888b6",
        name="RH",
        admin=False,
        project=False,
        personal=True,
        financial=True,
    ),
    Role(
        id=4,
        uuid="462ac957-2f54-4222-af77-55742fd31d44",
        name="Financeiro",
        admin=False,
        project=False,
        personal=False,
        financial=True,
    ),
    Role(
        id=5,
        uuid="f8eb44b1-cb47-4c47-a518-aa0d081c856f",
        name="Estagiário",
        admin=False,
        project=False,
        personal=False,
        financial=False,
    ),
]


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_uuid() -> str:
    return str(uuid_lib.uuid4())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for User and Role entities.

    Usage:
        store = AuthStore("sqlite:///bizmanager.db")
        store.seed_default_roles()
        user = store.find_user(ByEmail("ana@empresa.com.br"))
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(select(1)).scalar() == 1

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its uuid.

        Raises sqlalchemy.exc.IntegrityError on a duplicate username, email or cpf.
        """
        user_uuid = user.uuid or _new_uuid()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    uuid=user_uuid,
                    username=user.username,
                    email=user.email,
                    cpf=user.cpf,
                    name=user.name,
                    phone=user.phone,
                    address=user.address,
                    hourly_rate=user.hourly_rate,
                    hashed_password=user.hashed_password,
                    active=user.active,
                    auth_uuid=user.auth_uuid,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return user_uuid

    def get_user_by_uuid(self, user_uuid: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.uuid == user_uuid)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_user(self, identifier: LoginIdentifier) -> User | None:
        """Look up a user by whichever identifier the login request carried."""
        if isinstance(identifier, ByEmail):
            clause = _users.c.email == identifier.email
        elif isinstance(identifier, ByNationalId):
            clause = _users.c.cpf == identifier.cpf
        elif isinstance(identifier, ByUsername):
            clause = _users.c.username == identifier.username
        else:
            raise TypeError(f"Unsupported login identifier: {identifier!r}")
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(clause)).first()
        return _row_to_user(row) if row is not None else None

    def list_users(
        self,
        user_uuid: str | None = None,
        username: str | None = None,
        active: bool | None = None,
        auth_uuids: Iterable[str] | None = None,
        contains: dict[str, str] | None = None,
        hourly_rate_min: float | None = None,
        hourly_rate_max: float | None = None,
    ) -> list[User]:
        """Return users matching every given filter, ordered by username.

        contains maps a column name (cpf, name, email, phone, address) to a
        substring; unknown keys raise ValueError.
        hourly_rate_min and hourly_rate_max bound the rate inclusively; users
        without a rate never match a bound.
        """
        query = _users.select()
        if user_uuid is not None:
            query = query.where(_users.c.uuid == user_uuid)
        if username:
            query = query.where(_users.c.username.contains(username))
        if active is not None:
            query = query.where(_users.c.active == active)
        if auth_uuids:
            query = query.where(_users.c.auth_uuid.in_(list(auth_uuids)))
        for column_name, needle in (contains or {}).items():
            if column_name not in ("cpf", "name", "email", "phone", "address"):
                raise ValueError(f"Cannot filter users by {column_name!r}")
            if needle:
                query = query.where(_users.c[column_name].contains(needle))
        if hourly_rate_min is not None:
            query = query.where(_users.c.hourly_rate >= hourly_rate_min)
        if hourly_rate_max is not None:
            query = query.where(_users.c.hourly_rate <= hourly_rate_max)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users_with_role(self, auth_uuid: str) -> int:
        """Return how many users reference the role, active or not."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.auth_uuid == auth_uuid)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def has_roles(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_auths)).scalar()
        return (result or 0) > 0

    def seed_default_roles(self) -> int:
        """Insert any DEFAULT_ROLES whose ordinal is missing. Returns the number inserted.

        Idempotent -- safe to call on every startup.
        """
        inserted = 0
        with self.engine.connect() as conn:
            existing = {row.id for row in conn.execute(select(_auths.c.id))}
            for role in DEFAULT_ROLES:
                if role.id in existing:
                    continue
                conn.execute(
                    _auths.insert().values(
                        id=role.id,
                        uuid=role.uuid,
                        name=role.name,
                        admin=role.admin,
                        project=role.project,
                        personal=role.personal,
                        financial=role.financial,
                    )
                )
                inserted += 1
            conn.commit()
        return inserted

    def get_role(self, auth_uuid: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_auths.select().where(_auths.c.uuid == auth_uuid)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(
        self,
        auth_uuid: str | None = None,
        names: Iterable[str] | None = None,
        required: Iterable[Capability] = (),
        absent: Iterable[Capability] = (),
    ) -> list[Role]:
        """Return roles matching every filter, ordered by ordinal.

        required: capabilities whose flag must be True.
        absent:   capabilities whose flag must not be True (False or NULL).
        """
        query = _auths.select()
        if auth_uuid is not None:
            query = query.where(_auths.c.uuid == auth_uuid)
        name_list = list(names or [])
        if name_list:
            query = query.where(_auths.c.name.in_(name_list))
        for capability in required:
            query = query.where(_CAPABILITY_COLUMNS[capability].is_(True))
        for capability in absent:
            column = _CAPABILITY_COLUMNS[capability]
            query = query.where(or_(column.is_(False), column.is_(None)))
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_auths.c.id)).fetchall()
        return [_row_to_role(r) for r in rows]

    def create_role(self, role: Role) -> Role:
        """Insert a role at the next free ordinal and return it with id and uuid filled in."""
        role_uuid = role.uuid or _new_uuid()
        with self.engine.connect() as conn:
            next_id = conn.execute(select(func.coalesce(func.max(_auths.c.id), -1) + 1)).scalar()
            conn.execute(
                _auths.insert().values(
                    id=next_id,
                    uuid=role_uuid,
                    name=role.name,
                    admin=role.admin,
                    project=role.project,
                    personal=role.personal,
                    financial=role.financial,
                )
            )
            conn.commit()
        return Role(
            id=next_id,
            uuid=role_uuid,
            name=role.name,
            admin=role.admin,
            project=role.project,
            personal=role.personal,
            financial=role.financial,
        )

    def update_role(self, role: Role) -> bool:
        """Overwrite name and flags of the role with role.uuid. Returns True if a row changed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _auths.update()
                .where(_auths.c.uuid == role.uuid)
                .values(
                    name=role.name,
                    admin=role.admin,
                    project=role.project,
                    personal=role.personal,
                    financial=role.financial,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_role(self, auth_uuid: str) -> bool:
        """Delete a role. Callers must run guard_role_delete() first."""
        with self.engine.connect() as conn:
            result = conn.execute(_auths.delete().where(_auths.c.uuid == auth_uuid))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        uuid=row.uuid,
        username=row.username,
        email=row.email,
        cpf=row.cpf,
        name=row.name,
        phone=row.phone,
        address=row.address,
        hourly_rate=row.hourly_rate,
        hashed_password=row.hashed_password,
        active=bool(row.active),
        auth_uuid=row.auth_uuid,
        created_at=row.created_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        uuid=row.uuid,
        name=row.name,
        admin=row.admin,
        project=row.project,
        personal=row.personal,
        financial=row.financial,
    )
