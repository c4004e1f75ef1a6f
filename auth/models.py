"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in cars/models.py -- dataclasses own domain shape; stores and routes do the work.

Layer rule: no imports from api/, cars/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account that can own car listings.

    Usernames are immutable once created, which is what allows Car records to
    keep a denormalized username snapshot without drifting.

    hashed_password is a bcrypt hash. The plaintext is never stored.
    id is None before the record is written to the database.
    """

    username: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenIdentity:
    """The identity claims carried by a verified access token."""

    user_id: int
    username: str
