"""
cars/store.py -- SQLAlchemy-backed persistence layer for car listings.

Uses SQLAlchemy Core (not ORM) so the dataclass in cars/models.py remains the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. CarStore is the repository; _row_to_car
is the mapper. Route handlers never touch SQL directly.

Ownership: update_car() and delete_car() take the caller's user_id and put it
in the WHERE clause next to the car id. The database evaluates both in one
statement, so there is no check-then-act window, and a car owned by someone
else is indistinguishable from a missing one.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = CarStore("sqlite:///carlistings.db")
    car_id = store.create_car(car)
    cars = store.list_cars()
    store.update_car(car_id, user_id, title="New title")
    store.delete_car(car_id, user_id)
    store.close()
"""

import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from cars.models import Car

# Fields a PATCH may replace. Owner, username snapshot and timestamps are not
# caller-writable.
_UPDATABLE_FIELDS = frozenset({"title", "description", "tags", "images"})
_JSON_FIELDS = frozenset({"tags", "images"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_cars = Table(
    "cars",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("username", String(50), nullable=False),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=False),
    Column("tags", Text, nullable=False, server_default="[]"),  # JSON array serialized as text
    Column("images", Text, nullable=False, server_default="[]"),  # JSON array, like tags
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def filter_cars(cars: list[Car], query: Optional[str]) -> list[Car]:
    """Return the cars whose title, description or any tag contains query.

    Matching is a case-insensitive substring test. A blank or missing query
    returns the input unchanged. Order is preserved.
    """
    needle = (query or "").strip().lower()
    if not needle:
        return cars
    return [
        car
        for car in cars
        if needle in car.title.lower()
        or needle in car.description.lower()
        or any(needle in tag.lower() for tag in car.tags)
    ]


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CarStore:
    """Repository for Car entities."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create_car(self, car: Car) -> int:
        """Insert a new car and return its assigned database ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _cars.insert().values(
                    user_id=car.user_id,
                    username=car.username,
                    title=car.title,
                    description=car.description,
                    tags=json.dumps(car.tags),
                    images=json.dumps(car.images),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_cars(self) -> list[Car]:
        """Return every stored car, newest first. No ownership filtering."""
        with self.engine.connect() as conn:
            rows = conn.execute(_cars.select().order_by(_cars.c.id.desc())).fetchall()
        return [_row_to_car(r) for r in rows]

    def get_car(self, car_id: int) -> Optional[Car]:
        """Return a car by primary key, or None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_cars.select().where(_cars.c.id == car_id)).fetchone()
        return _row_to_car(row) if row is not None else None

    def update_car(self, car_id: int, user_id: int, **fields) -> Optional[Car]:
        """Replace the given fields on a car owned by user_id.

        Accepted fields: title, description, tags, images. Unknown keys raise
        ValueError. Returns the updated Car, or None when no row matched both
        car_id and user_id.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown car fields: {sorted(unknown)!r}")
        values = {k: (json.dumps(v) if k in _JSON_FIELDS else v) for k, v in fields.items()}
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _cars.update().where((_cars.c.id == car_id) & (_cars.c.user_id == user_id)).values(**values)
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_car(car_id)

    def delete_car(self, car_id: int, user_id: int) -> int:
        """Delete a car owned by user_id. Returns the number of rows removed (0 or 1)."""
        with self.engine.connect() as conn:
            result = conn.execute(_cars.delete().where((_cars.c.id == car_id) & (_cars.c.user_id == user_id)))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_car(row) -> Car:
    return Car(
        id=row.id,
        user_id=row.user_id,
        username=row.username,
        title=row.title,
        description=row.description,
        tags=json.loads(row.tags) if row.tags else [],
        images=json.loads(row.images) if row.images else [],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
