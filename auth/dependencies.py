"""
auth/dependencies.py -- The request gate: FastAPI Depends() helpers for sessions.

The session travels in a single place: the "token" cookie set by
POST /auth/login. There is no Bearer header or API key path.

get_session() verifies the cookie once per request and returns the decoded
SessionClaims. It never refreshes or re-issues the token.

Layer rule: no imports from api/. auth/dependencies.py may import from
fastapi because it is part of the dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import Unauthenticated
from auth.models import SessionClaims
from auth.store import AuthStore
from auth.tokens import COOKIE_NAME, decode_session_token


def get_store(request: Request) -> AuthStore:
    """Return the store the lifespan attached to app.state."""
    return request.app.state.auth_store


def get_session(request: Request) -> SessionClaims:
    """Require a valid session cookie.

    Raises Unauthenticated if the cookie is absent and InvalidToken if it
    does not verify. Use as a dependency:
        @router.get("/protected")
        def route(claims: SessionClaims = Depends(get_session)): ...

    Routes that validate a request body call it directly inside the handler
    instead, so a malformed body is reported before a missing session.
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise Unauthenticated()
    return decode_session_token(token)
