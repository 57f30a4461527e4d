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
OIDC Provider component for fetching and caching an issuer's JWKS.
"""

import time
from typing import Any

import anyio
import httpx
from pydantic import ValidationError

from coreason_homepage.exceptions import CoreasonHomepageError, OversizedResponseError
from coreason_homepage.models_internal import OIDCConfig
from coreason_homepage.transport import safe_json_fetch
from coreason_homepage.utils.logger import logger


class OIDCProvider:
    """
    Fetches and caches one issuer's OIDC configuration and JWKS.

    Attributes:
        discovery_url (str): The OIDC discovery URL.
        cache_ttl (int): The cache time-to-live in seconds.
    """

    def __init__(
        self,
        discovery_url: str,
        client: httpx.AsyncClient,
        cache_ttl: int = 3600,
        refresh_cooldown: float = 30.0,
    ) -> None:
        """
        Initialize the OIDCProvider.

        Args:
            discovery_url: The OIDC discovery URL (e.g., https://tenant.auth0.com/.well-known/openid-configuration).
            client: The async HTTP client to use for requests.
            cache_ttl: Time-to-live for the JWKS cache in seconds. Defaults to 3600 (1 hour).
            refresh_cooldown: Minimum time in seconds between forced refreshes. Defaults to 30.0.
        """
        self.discovery_url = discovery_url
        self.client = client
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self._jwks_cache: dict[str, Any] | None = None
        self._oidc_config_cache: OIDCConfig | None = None
        self._last_update: float = 0.0
        self._lock: anyio.Lock | None = None

    @classmethod
    def for_domain(cls, domain: str, client: httpx.AsyncClient, **kwargs: Any) -> "OIDCProvider":
        return cls(f"https://{domain}/.well-known/openid-configuration", client, **kwargs)

    async def _fetch_with_retry(self, url: str) -> Any:
        """
        GETs a JSON document, retrying transport failures up to 3 times with exponential
        backoff (initial=0.1s, max=1.0s). Oversized responses are never retried.
        """
        attempts = 3
        wait_initial = 0.1
        wait_max = 1.0

        for attempt in range(attempts):
            try:
                return await safe_json_fetch(self.client, url)
            except OversizedResponseError:
                raise
            except (CoreasonHomepageError, httpx.HTTPError) as e:
                if attempt == attempts - 1:
                    raise CoreasonHomepageError(f"Failed to fetch {url}: {e}") from e
                await anyio.sleep(min(wait_initial * (2**attempt), wait_max))

        raise CoreasonHomepageError(f"Failed to fetch {url}")  # pragma: no cover

    async def _fetch_oidc_config(self) -> OIDCConfig:
        """
        Fetches the OIDC configuration to find the jwks_uri.

        Raises:
            CoreasonHomepageError: If the request fails after retries or returns invalid data.
        """
        try:
            data = await self._fetch_with_retry(self.discovery_url)
        except OversizedResponseError:
            raise
        except CoreasonHomepageError as e:
            raise CoreasonHomepageError(f"Failed to fetch OIDC configuration from {self.discovery_url}: {e}") from e
        if not isinstance(data, dict):
            raise CoreasonHomepageError(f"Invalid OIDC configuration from {self.discovery_url}")
        try:
            return OIDCConfig(**data)
        except ValidationError as e:
            raise CoreasonHomepageError(f"Invalid OIDC configuration from {self.discovery_url}: {e}") from e

    async def _fetch_jwks(self, jwks_uri: str) -> dict[str, Any]:
        try:
            data = await self._fetch_with_retry(jwks_uri)
        except OversizedResponseError:
            raise
        except CoreasonHomepageError as e:
            raise CoreasonHomepageError(f"Failed to fetch JWKS from {jwks_uri}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            raise CoreasonHomepageError(f"Invalid JWKS document from {jwks_uri}")
        return data

    async def _refresh_jwks_critical_section(self, force_refresh: bool) -> dict[str, Any]:
        """
        Critical section for refreshing JWKS.
        Must be called while holding the lock.
        """
        current_time = time.time()

        # Double check inside lock
        is_cache_valid = self._jwks_cache is not None and (current_time - self._last_update) < self.cache_ttl
        is_in_cooldown = self._jwks_cache is not None and (current_time - self._last_update) < self.refresh_cooldown

        if not force_refresh and is_cache_valid:
            return self._jwks_cache  # type: ignore[return-value]

        # Forced refreshes are rate limited so forged kids cannot hammer the issuer
        if force_refresh and is_in_cooldown:
            logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
            return self._jwks_cache  # type: ignore[return-value]

        oidc_config = await self._fetch_oidc_config()
        jwks = await self._fetch_jwks(oidc_config.jwks_uri)

        self._jwks_cache = jwks
        self._oidc_config_cache = oidc_config
        self._last_update = current_time

        return jwks

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]:
        """
        Returns the JWKS, using the cache if valid.

        Args:
            force_refresh: If True, bypasses the cache and fetches fresh keys.

        Returns:
            dict[str, Any]: The JWKS dictionary.

        Raises:
            CoreasonHomepageError: If fetching fails.
        """
        if self._lock is None:
            self._lock = anyio.Lock()

        if not force_refresh:
            current_time = time.time()
            if self._jwks_cache is not None and (current_time - self._last_update) < self.cache_ttl:
                return self._jwks_cache

        async with self._lock:
            return await self._refresh_jwks_critical_section(force_refresh)
