"""
tests/test_config.py -- Settings validation.

Settings are built with explicit kwargs and _env_file=None so the values under
test win over whatever the environment and conftest.py set.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

LONG_SECRET = "x" * 40


def _settings(**overrides) -> Settings:
    values = {"debug": False, "jwt_secret": LONG_SECRET, **overrides}
    return Settings(_env_file=None, **values)


def test_production_requires_secret() -> None:
    with pytest.raises(ValidationError, match="JWT_SECRET is required"):
        _settings(jwt_secret="")


def test_short_secret_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        _settings(jwt_secret="too-short")


def test_secret_length_counts_utf8_bytes() -> None:
    # 20 characters, 40 bytes: long enough for the signing key.
    assert _settings(jwt_secret="é" * 20).jwt_secret == "é" * 20
    # 20 characters, but 10 of them are two-byte: 30 bytes.
    with pytest.raises(ValidationError, match="at least 32"):
        _settings(jwt_secret="é" * 10 + "x" * 10)


def test_debug_generates_secret() -> None:
    settings = _settings(debug=True, jwt_secret="")
    assert len(settings.jwt_secret) >= 32


def test_debug_keeps_explicit_secret() -> None:
    assert _settings(debug=True).jwt_secret == LONG_SECRET


@pytest.mark.parametrize("field,value", [("jwt_ttl_minutes", 0), ("bcrypt_rounds", 3), ("jwt_issuer", "")])
def test_out_of_range_values_rejected(field: str, value) -> None:
    with pytest.raises(ValidationError):
        _settings(**{field: value})


def test_settings_are_frozen() -> None:
    settings = _settings()
    with pytest.raises(ValidationError):
        settings.jwt_issuer = "other"


def test_google_enabled_needs_both_values() -> None:
    assert _settings().google_enabled is False
    assert _settings(google_client_id="id").google_enabled is False
    assert _settings(google_client_id="id", google_client_secret="secret").google_enabled is True
