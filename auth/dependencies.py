"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token transports are checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. JWT cookie ("access_token") -- set by the login endpoint for browsers.

Both converge on a User object after successful verification.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it, raises HTTP 401 if unauthenticated, and records
the user on request.state so handlers and error logging can see who called.

Collaborators (token_service, user_store) are read from app.state, where the
API lifespan placed them.

Layer rule: no imports from api/, cars/, or core/.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.models import User
from auth.tokens import ACCESS_TOKEN_COOKIE, InvalidTokenError

logger = logging.getLogger("carlistings.auth")


def extract_token(request: Request) -> str | None:
    """Return the raw bearer token from the header or cookie, or None.

    The scheme name is matched case-insensitively ("bearer" == "Bearer").
    """
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer":
        token = credentials.strip()
        if token:
            return token
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request via Bearer header or cookie.

    Returns the authenticated User on success, None on any failure.
    Never raises -- callers that need a hard 401 should use get_current_user().

    The username claim must still match the stored account; a token whose
    user_id now points at a different account is rejected.
    """
    token = extract_token(request)
    if token is None:
        return None
    try:
        identity = request.app.state.token_service.verify(token)
    except InvalidTokenError as exc:
        logger.info("Rejected token on %s %s: %s", request.method, request.url.path, exc)
        return None

    user = request.app.state.user_store.get_by_id(identity.user_id)
    if user is None or user.username != identity.username:
        logger.info("Token subject %r no longer matches a user", identity.username)
        return None
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.post("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    request.state.user = user
    return user
