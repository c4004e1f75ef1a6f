"""
auth/tokens.py -- JWT issuing/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the configured secret
       and carry user_id, username (as "sub") and expiry. TokenService.verify()
       raises InvalidTokenError on any failure -- the auth dependency turns
       that into a 401. Expired tokens fail exactly like forged ones.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether a username exists.

  Secret: TokenService receives the secret at construction. The API lifespan
       builds it from core.config.get_settings(); tests build it with a fixed
       key. Nothing in this module reads configuration itself.

Layer rule: no imports from api/, cars/, or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import TokenIdentity, User

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("carlistings.auth")

_ALGORITHM = "HS256"

ACCESS_TOKEN_COOKIE = "access_token"


class InvalidTokenError(Exception):
    """Raised when a bearer token is absent, forged, malformed, or expired."""


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    128 characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash or over-long input
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("carlistings_timing_dummy")


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Authenticate a username/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_username(username)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies signed access tokens.

    Pure function of (secret, payload): no state beyond the configuration it
    was built with, so the same instance is shared by every request.

    Usage:
        tokens = TokenService(secret_key, expire_seconds=3600)
        token = tokens.issue(user)
        identity = tokens.verify(token)   # raises InvalidTokenError
    """

    def __init__(self, secret_key: str, expire_seconds: int = 3600) -> None:
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, user: User) -> str:
        """Encode a signed JWT with the user's identity and an expiry claim."""
        expire = datetime.now(timezone.utc) + timedelta(seconds=self.expire_seconds)
        payload = {
            "sub": user.username,
            "user_id": user.id,
            "exp": expire,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str | None) -> TokenIdentity:
        """Decode and verify a JWT, returning the identity it carries.

        Raises InvalidTokenError if the token is missing, the signature does
        not match, the token has expired, or the claims are malformed.
        """
        if not token:
            raise InvalidTokenError("token missing")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise InvalidTokenError(str(exc)) from exc

        user_id = payload.get("user_id")
        username = payload.get("sub")
        # bool is an int subclass; a forged True must not pass as user 1
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise InvalidTokenError("user_id claim missing or not an integer")
        if not isinstance(username, str) or not username:
            raise InvalidTokenError("sub claim missing")
        return TokenIdentity(user_id=user_id, username=username)


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, max_age: int, secure: bool = False) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )
