# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

"""
Configuration for the coreason-homepage backend.

Settings are immutable after startup. They are produced by a `ConfigSource`, which
is awaited in the second startup phase before any authenticated route is mounted.
"""

from enum import StrEnum
from typing import Protocol
from urllib.parse import urlparse

import anyio
from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from coreason_homepage.exceptions import ConfigurationError
from coreason_homepage.utils.logger import logger

DEFAULT_REDIRECT_URIS = (
    "https://homepage.romaine.life",
    "http://localhost:3000",
    "http://localhost:5500",
)


class VerificationMode(StrEnum):
    """How session tokens presented to protected routes are verified."""

    SELF_ISSUED = "self_issued"
    DELEGATED = "delegated"


class HomepageSettings(BaseSettings):
    """
    Configuration settings for coreason-homepage.

    Attributes:
        verification_mode (VerificationMode): Which session token verifier the process runs.
        jwt_signing_secret (SecretStr | None): HS256 secret for self-issued session tokens.
        auth0_domain (str | None): Canonical Auth0 tenant domain (e.g. tenant.us.auth0.com).
        auth0_custom_domain (str | None): Custom Auth0 domain tried first in delegated mode.
        auth0_audience (str | None): Expected audience of delegated tokens.
        allowed_redirect_uris (list[str]): Frontends the login flow may return to. First entry is the default.
        swa_default_hostname (str | None): Platform-assigned frontend hostname, appended to the allow-list.
        http_timeout (float): Timeout in seconds for all outbound provider calls.
        pii_salt (SecretStr): Salt for anonymizing user ids in logs/traces.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_HOMEPAGE_",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    verification_mode: VerificationMode = VerificationMode.SELF_ISSUED
    jwt_signing_secret: SecretStr | None = None

    github_client_id: str | None = None
    github_client_secret: SecretStr | None = None
    google_client_id: str | None = None
    google_client_secret: SecretStr | None = None
    microsoft_client_id: str | None = None
    microsoft_client_secret: SecretStr | None = None

    auth0_domain: str | None = None
    auth0_custom_domain: str | None = None
    auth0_audience: str | None = None
    auth0_apple_client_id: str | None = None
    auth0_apple_client_secret: SecretStr | None = None

    allowed_redirect_uris: list[str] = Field(default_factory=lambda: list(DEFAULT_REDIRECT_URIS))
    swa_default_hostname: str | None = None

    database_name: str = "HomepageDB"
    container_name: str = "userdata"
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for outbound provider calls.")
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")

    @field_validator("auth0_domain", "auth0_custom_domain")
    @classmethod
    def normalize_domain(cls, v: str | None) -> str | None:
        """
        Ensures domain is just the hostname (e.g. login.example.com).
        Strips scheme and path if present.
        """
        if v is None:
            return None
        v = v.strip().lower()
        if not v:
            return None
        if "://" not in v:
            v = f"https://{v}"
        parsed = urlparse(v)
        return parsed.netloc or v

    @field_validator("allowed_redirect_uris")
    @classmethod
    def strip_trailing_slashes(cls, v: list[str]) -> list[str]:
        cleaned = [uri.strip().rstrip("/") for uri in v if uri and uri.strip()]
        if not cleaned:
            raise ValueError("allowed_redirect_uris must contain at least one URI")
        return cleaned

    @model_validator(mode="after")
    def check_mode_requirements(self) -> "HomepageSettings":
        """
        Running with partial auth configuration would let some providers fail silently,
        so every value the selected mode needs is required up front.
        """
        missing: list[str] = []
        if self.verification_mode == VerificationMode.SELF_ISSUED:
            required = {
                "jwt_signing_secret": self.jwt_signing_secret,
                "github_client_id": self.github_client_id,
                "github_client_secret": self.github_client_secret,
                "google_client_id": self.google_client_id,
                "google_client_secret": self.google_client_secret,
                "microsoft_client_id": self.microsoft_client_id,
                "microsoft_client_secret": self.microsoft_client_secret,
                "auth0_domain": self.auth0_domain,
                "auth0_apple_client_id": self.auth0_apple_client_id,
                "auth0_apple_client_secret": self.auth0_apple_client_secret,
            }
        else:
            required = {
                "auth0_domain": self.auth0_domain,
                "auth0_audience": self.auth0_audience,
            }
        for name, value in required.items():
            if value is None or (isinstance(value, SecretStr) and not value.get_secret_value()):
                missing.append(name)
        if missing:
            raise ValueError(f"Missing required settings for {self.verification_mode} mode: {', '.join(missing)}")
        return self

    @property
    def redirect_allow_list(self) -> list[str]:
        """The effective allow-list, including the platform-assigned frontend hostname."""
        uris = list(self.allowed_redirect_uris)
        if self.swa_default_hostname:
            uris.append(f"https://{self.swa_default_hostname.strip().rstrip('/')}")
        return uris

    @property
    def issuer_domains(self) -> tuple[str, str]:
        """(custom, canonical) Auth0 domains. Custom falls back to canonical when not configured."""
        if self.auth0_domain is None:
            raise ConfigurationError("auth0_domain is not configured")
        return (self.auth0_custom_domain or self.auth0_domain, self.auth0_domain)


class ConfigSource(Protocol):
    """Where the process obtains its settings during the second startup phase."""

    async def load(self) -> HomepageSettings:
        """
        Returns the validated settings.

        Raises:
            ConfigurationError: If required settings are missing or invalid.
        """
        ...


class EnvironmentConfigSource:
    """Reads settings from the environment and an optional `.env` file."""

    async def load(self) -> HomepageSettings:
        try:
            settings = await anyio.to_thread.run_sync(HomepageSettings)
        except (ValidationError, SettingsError, ValueError) as e:
            raise ConfigurationError(f"Invalid application configuration: {e}") from e
        logger.info(f"Application config loaded from environment ({settings.verification_mode} mode)")
        return settings


class StaticConfigSource:
    """Serves an already-built settings object. Used for embedding and tests."""

    def __init__(self, settings: HomepageSettings) -> None:
        self._settings = settings

    async def load(self) -> HomepageSettings:
        return self._settings
