"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/users/signup   -- create an account; 201, 409 if taken
  POST /api/v1/users/login    -- password login; returns JWT and sets cookie
  POST /api/v1/users/logout   -- clears cookie; 200
  GET  /api/v1/users/me       -- current user info (requires auth)

Security:
  POST /login and POST /signup are rate-limited per client address.
  authenticate_user() provides timing equalization -- use it, never inline
  get_by_username() + verify_password().
  Cache-Control: no-store on responses that carry a token.
  Login returns the same error for unknown username and wrong password.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import LoginRequest, LoginResponse, MeResponse, SignupRequest, UserResponse
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import ACCESS_TOKEN_COOKIE, TokenService, authenticate_user, hash_password, set_auth_cookie

logger = logging.getLogger("carlistings.auth")

# Auth policy:
# - POST /api/v1/users/signup:  public
# - POST /api/v1/users/login:   public
# - POST /api/v1/users/logout:  public -- clearing a cookie needs no prior auth
# - GET  /api/v1/users/me:      requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/signup", response_model=UserResponse, status_code=201)
@limiter.limit(LOGIN_RATE_LIMIT)  # below @router so FastAPI registers the rate-limited wrapper
def signup(request: Request, body: SignupRequest) -> UserResponse:
    """Create a new account.

    The password is hashed before it reaches the store. A duplicate username
    trips the UNIQUE constraint; the existing account is left unchanged and
    the caller gets 409.
    """
    user_store: UserStore = request.app.state.user_store
    new_user = User(username=body.username, hashed_password=hash_password(body.password))
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        logger.info("Signup rejected: username %r already exists", body.username)
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that username already exists."},
        ) from exc

    created = user_store.get_by_id(user_id)
    if created is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    logger.info("User %r signed up (id=%d)", created.username, created.id)
    return UserResponse(id=created.id, username=created.username, created_at=created.created_at or "")


@router.post("/users/login", response_model=LoginResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a JWT and set the cookie.

    The token is returned in the body for API clients (Authorization: Bearer)
    and as an httpOnly cookie for browsers.
    """
    user_store: UserStore = request.app.state.user_store
    tokens: TokenService = request.app.state.token_service

    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        logger.info("Failed login for %r", body.username)
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = tokens.issue(user)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=tokens.expire_seconds,
            user_id=user.id,
            username=user.username,
        ).model_dump(),
    )
    set_auth_cookie(resp, token, max_age=tokens.expire_seconds, secure=request.app.state.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("User %r logged in", user.username)
    return resp


@router.post("/users/logout")
def logout() -> JSONResponse:
    """Clear the JWT cookie.

    Tokens are not revoked server-side; a client holding the raw token can
    keep using it until it expires.
    """
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(ACCESS_TOKEN_COOKIE)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user_id=current_user.id, username=current_user.username)
