"""
auth/tokens.py -- Session tokens, password hashing, login, and the session cookie.

Security design decisions:
  Session token: python-jose with HS256. The payload is exactly
       {"uuid": <user uuid>, "authUuid": <role uuid>} -- no expiry, no other
       claims. Validity is purely the signature: nothing is stored server-side
       and there is no revocation list. Logging out clears the browser cookie;
       a copy of the token taken before logout keeps verifying.

  Passwords: bcrypt, used directly. bcrypt.checkpw compares in constant time.

  Login: authenticate_user() resolves the user, then checks the active flag,
       then the password, and reports each failure with its own message. The
       distinct messages reveal whether an account exists and whether it is
       active; the frontend relies on them.

  Cookie: "token", HttpOnly + Secure + SameSite=None so the SPA on another
       origin can send it with credentials. Session cookie unless the user
       asked to be remembered, in which case it lives 7 days.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import InactiveAccount, InvalidCredentials, InvalidToken, UserNotFound
from auth.models import LoginIdentifier, SessionClaims, User
from core.config import get_settings

if TYPE_CHECKING:
    from auth.store import AuthStore

logger = logging.getLogger("bizmanager.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

COOKIE_NAME = "token"
# 604,800,000 ms -- Starlette takes max_age in seconds.
REMEMBER_ME_MAX_AGE = 7 * 24 * 60 * 60

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The login schema caps passwords
    at 72 characters so nothing is silently ignored for ASCII input.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# ---------------------------------------------------------------------------
# Session token encode / decode
# ---------------------------------------------------------------------------


def create_session_token(user_uuid: str, auth_uuid: str, secret_key: str | None = None) -> str:
    """Sign a session token carrying the user and role identity.

    secret_key defaults to Settings.secret_key; tests pass their own to
    simulate a token signed elsewhere.
    """
    claims = SessionClaims(uuid=user_uuid, auth_uuid=auth_uuid)
    return jwt.encode(claims.to_payload(), secret_key or _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str, secret_key: str | None = None) -> SessionClaims:
    """Verify the signature and return the claims.

    Raises InvalidToken if the signature does not verify, the token cannot be
    decoded, or either claim is missing or not a string.
    """
    try:
        payload = jwt.decode(token, secret_key or _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError as exc:
        raise InvalidToken() from exc
    user_uuid = payload.get("uuid")
    auth_uuid = payload.get("authUuid")
    if not isinstance(user_uuid, str) or not isinstance(auth_uuid, str):
        raise InvalidToken()
    return SessionClaims(uuid=user_uuid, auth_uuid=auth_uuid)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def authenticate_user(store: AuthStore, identifier: LoginIdentifier, password: str) -> User:
    """Return the user behind identifier if the password matches.

    Checks run in a fixed order and the first failure is raised:
      1. no such user          -> UserNotFound
      2. user.active is False  -> InactiveAccount (even with the right password)
      3. password mismatch     -> InvalidCredentials
    """
    user = store.find_user(identifier)
    if user is None:
        raise UserNotFound()
    if not user.active:
        raise InactiveAccount()
    if not verify_password(password, user.hashed_password):
        raise InvalidCredentials()
    return user


def issue_session(user: User) -> str:
    """Return a signed session token for an authenticated user."""
    return create_session_token(user.uuid, user.auth_uuid)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def _cookie_attributes() -> dict:
    return {
        "path": "/",
        "domain": _settings.cookie_domain or None,
        "secure": True,
        "httponly": True,
        "samesite": "none",
    }


def set_session_cookie(response, token: str, remember_me: bool = False) -> None:
    """Write the session token cookie on the response.

    remember_me=True: persistent cookie, max_age 7 days.
    remember_me=False: no Max-Age/Expires, so the browser drops it when the
        session ends.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        max_age=REMEMBER_ME_MAX_AGE if remember_me else None,
        **_cookie_attributes(),
    )


def clear_session_cookie(response) -> None:
    """Expire the session cookie. Attributes must match the ones used to set it."""
    response.delete_cookie(COOKIE_NAME, **_cookie_attributes())
