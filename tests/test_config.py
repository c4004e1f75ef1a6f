"""Unit tests for core/config.py -- Settings validation."""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_debug_generates_secret_key() -> None:
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(debug=True, secret_key="too-short")


def test_unknown_media_backend_rejected() -> None:
    with pytest.raises(ValidationError, match="MEDIA_BACKEND"):
        Settings(secret_key="k" * 32, media_backend="ftp")


def test_s3_backend_requires_bucket() -> None:
    with pytest.raises(ValidationError, match="S3_BUCKET"):
        Settings(secret_key="k" * 32, media_backend="s3", s3_bucket="")


def test_defaults() -> None:
    settings = Settings(secret_key="k" * 32)
    assert settings.token_expire_seconds == 3600
    assert settings.media_backend == "local"
    assert settings.login_rate_limit == "10/minute"
