"""
API request and response models for CarListings REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
cars/models.py, which own the internal domain representation. Route handlers
map between the two.

Every request body (JSON or multipart form) is validated into one of these
models before it reaches a store, so malformed input is rejected with a 422
at the boundary.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cars.models import MAX_IMAGES, Car

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


def split_tags(value: object) -> list[str]:
    """Turn the comma-delimited form value into an ordered tag list.

    Entries are trimmed and empty entries dropped. Order and duplicates are
    kept: "sedan, compact,,sedan" -> ["sedan", "compact", "sedan"].
    Lists are passed through with the same trimming.
    """
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    return [str(item).strip() for item in items if str(item).strip()]


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/users/signup."""

    username: str = Field(min_length=2, max_length=50, pattern=USERNAME_PATTERN)
    # Not stripped: leading/trailing spaces are part of the secret.
    password: str = Field(min_length=8, max_length=128)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login."""

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value: object) -> object:
        # Same normalization as signup, so a padded username logs in.
        return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of an account -- never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    created_at: str


class LoginResponse(BaseModel):
    """Response body for POST /api/v1/users/login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: int
    username: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/users/me."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str


# ---------------------------------------------------------------------------
# Cars -- request models (built from multipart form fields)
# ---------------------------------------------------------------------------


class CarCreate(BaseModel):
    """Validated fields for POST /api/v1/cars."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, value: object) -> list[str]:
        return split_tags(value)


class CarPatch(BaseModel):
    """Validated fields for PATCH /api/v1/cars/{car_id}.

    Every field is optional; None means "leave unchanged". A provided title or
    description must still be non-empty.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    tags: Optional[list[str]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, value: object) -> Optional[list[str]]:
        if value is None:
            return None
        return split_tags(value)


# ---------------------------------------------------------------------------
# Cars -- response models
# ---------------------------------------------------------------------------


class CarResponse(BaseModel):
    """A car listing as returned by every /cars endpoint.

    user is the owner's id; username is the owner's display name snapshot.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    user: int
    username: str
    title: str
    description: str
    tags: list[str]
    images: list[str] = Field(max_length=MAX_IMAGES)
    created_at: str
    updated_at: str

    @classmethod
    def from_car(cls, car: Car) -> "CarResponse":
        """Build a CarResponse from the domain dataclass."""
        return cls(
            id=car.id,
            user=car.user_id,
            username=car.username,
            title=car.title,
            description=car.description,
            tags=car.tags,
            images=car.images,
            created_at=car.created_at,
            updated_at=car.updated_at,
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    components: dict[str, str]
