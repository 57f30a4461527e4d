# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

import os
from collections.abc import Generator
from typing import Any

import pytest
from pydantic import SecretStr

from coreason_homepage.config import HomepageSettings, VerificationMode

SIGNING_SECRET = "test-signing-secret-0123456789abcdef-0123456789"


@pytest.fixture(autouse=True)
def isolated_environment() -> Generator[None, None, None]:
    """Keeps settings tests independent of whatever COREASON_HOMEPAGE_* variables the host has."""
    saved = {k: v for k, v in os.environ.items() if k.upper().startswith("COREASON_HOMEPAGE_")}
    for key in saved:
        del os.environ[key]
    yield
    os.environ.update(saved)


def self_issued_kwargs(**overrides: Any) -> dict[str, Any]:
    values: dict[str, Any] = {
        "verification_mode": VerificationMode.SELF_ISSUED,
        "jwt_signing_secret": SecretStr(SIGNING_SECRET),
        "github_client_id": "gh-id",
        "github_client_secret": SecretStr("gh-secret"),
        "google_client_id": "google-id",
        "google_client_secret": SecretStr("google-secret"),
        "microsoft_client_id": "ms-id",
        "microsoft_client_secret": SecretStr("ms-secret"),
        "auth0_domain": "tenant.us.auth0.com",
        "auth0_apple_client_id": "apple-id",
        "auth0_apple_client_secret": SecretStr("apple-secret"),
        "pii_salt": SecretStr("test-salt"),
    }
    values.update(overrides)
    return values


@pytest.fixture
def self_issued_values() -> dict[str, Any]:
    """Complete self-issued settings as keyword arguments; tests override single values."""
    return self_issued_kwargs()


@pytest.fixture
def settings(self_issued_values: dict[str, Any]) -> HomepageSettings:
    return HomepageSettings(_env_file=None, **self_issued_values)


@pytest.fixture
def delegated_settings() -> HomepageSettings:
    return HomepageSettings(
        _env_file=None,
        verification_mode=VerificationMode.DELEGATED,
        auth0_domain="tenant.us.auth0.com",
        auth0_custom_domain="login.example.com",
        auth0_audience="https://api.example.com",
        pii_salt=SecretStr("test-salt"),
    )
