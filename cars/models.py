"""
cars/models.py -- Domain dataclasses for car listings.

These are pure data containers with zero logic. Persistence and search live in
cars/store.py; image storage lives in cars/media.py.
"""

from dataclasses import dataclass, field
from typing import Optional

MAX_IMAGES = 10


@dataclass
class Car:
    """A car listing owned by exactly one user.

    user_id is the owner reference: set once at creation, never reassigned.
    username is a display snapshot of the owner's username at creation time.
    Usernames are immutable, so the snapshot cannot drift.

    tags keep insertion order and duplicates. images holds at most MAX_IMAGES
    opaque URLs produced by the media store.

    id is None before the record is written to the database.
    """

    user_id: int
    username: str
    title: str
    description: str
    tags: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""  # ISO 8601, set by store on insert and update
