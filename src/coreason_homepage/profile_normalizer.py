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
Profile normalization: maps each provider's raw profile into a CanonicalIdentity.

Identifiers follow the `{namespace}|{provider_user_id}` convention so documents stored
under earlier broker-issued subjects stay addressable:
    github|{id}  ·  google-oauth2|{id}  ·  windowslive|{id}  ·  apple|{id}
"""

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from coreason_homepage.models import CanonicalIdentity, ProviderName
from coreason_homepage.utils.logger import logger

GITHUB_NAMESPACE = "github"
GOOGLE_NAMESPACE = "google-oauth2"
MICROSOFT_NAMESPACE = "windowslive"
APPLE_NAMESPACE = "apple"


def _as_text(v: Any) -> str:
    if v is None or isinstance(v, bool):
        return ""
    if isinstance(v, (str, int)):
        return str(v).strip()
    return ""


class ProfileValue(BaseModel):
    """A single entry of a profile's `emails` or `photos` list."""

    model_config = ConfigDict(extra="ignore")

    value: str = ""
    verified: bool | None = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("verified", mode="before")
    @classmethod
    def coerce_verified(cls, v: Any) -> bool | None:
        return v if isinstance(v, bool) else None


class RawProfile(BaseModel):
    """
    Lenient model of a provider profile after the strategy has shaped the provider's
    API responses. Every field degrades to an empty default instead of failing.

    Attributes:
        id (str): Provider-local user id (or the broker's namespaced subject).
        display_name (str): Full display name.
        username (str): Login handle (GitHub).
        nickname (str): Broker nickname.
        emails (list[ProfileValue]): Email addresses, preferred first.
        photos (list[ProfileValue]): Avatar URLs, preferred first.
        picture (str): Broker avatar URL.
        user_id (str): Broker raw user identifier.
        sub (str): Raw OIDC subject.
        raw_json (dict[str, Any]): The unshaped provider payload.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = ""
    display_name: str = Field(default="", alias="displayName")
    username: str = ""
    nickname: str = ""
    emails: list[ProfileValue] = Field(default_factory=list)
    photos: list[ProfileValue] = Field(default_factory=list)
    picture: str = ""
    user_id: str = ""
    sub: str = ""
    raw_json: dict[str, Any] = Field(default_factory=dict, alias="_json")

    @field_validator("id", "display_name", "username", "nickname", "picture", "user_id", "sub", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("emails", "photos", mode="before")
    @classmethod
    def ensure_entries(cls, v: Any) -> list[Any]:
        """Accepts a list of dicts or plain strings; anything else becomes empty."""
        if not isinstance(v, (list, tuple)):
            return []
        entries: list[Any] = []
        for item in v:
            if isinstance(item, Mapping):
                entries.append(dict(item))
            elif isinstance(item, str):
                entries.append({"value": item})
        return entries

    @field_validator("raw_json", mode="before")
    @classmethod
    def ensure_mapping(cls, v: Any) -> dict[str, Any]:
        return dict(v) if isinstance(v, Mapping) else {}


def parse_profile(raw: Mapping[str, Any] | RawProfile | None) -> RawProfile:
    """Parses a raw profile without ever raising."""
    if isinstance(raw, RawProfile):
        return raw
    if not isinstance(raw, Mapping):
        return RawProfile()
    try:
        return RawProfile.model_validate(dict(raw))
    except ValidationError as e:
        logger.warning(f"Unparseable provider profile, using empty profile: {e.error_count()} errors")
        return RawProfile()


def _first(entries: list[ProfileValue]) -> str:
    for entry in entries:
        if entry.value:
            return entry.value
    return ""


def normalize_github(profile: RawProfile) -> CanonicalIdentity:
    # Only addresses explicitly flagged unverified are skipped; the public profile email has no flag.
    email = next((e.value for e in profile.emails if e.value and e.verified is not False), "")
    return CanonicalIdentity(
        id=f"{GITHUB_NAMESPACE}|{profile.id}",
        email=email,
        name=profile.display_name or profile.username,
        picture=_first(profile.photos),
    )


def normalize_google(profile: RawProfile) -> CanonicalIdentity:
    return CanonicalIdentity(
        id=f"{GOOGLE_NAMESPACE}|{profile.id}",
        email=_first(profile.emails),
        name=profile.display_name,
        picture=_first(profile.photos),
    )


def normalize_microsoft(profile: RawProfile) -> CanonicalIdentity:
    return CanonicalIdentity(
        id=f"{MICROSOFT_NAMESPACE}|{profile.id}",
        email=_first(profile.emails),
        name=profile.display_name,
        picture="",
    )


def normalize_broker(profile: RawProfile) -> CanonicalIdentity:
    """
    Delegated broker profiles (Apple via Auth0) already carry a namespaced subject.
    The `apple|` prefix is only synthesized when that subject is absent.
    """
    identity_id = profile.id or f"{APPLE_NAMESPACE}|{profile.user_id or profile.sub}"
    email = _first(profile.emails) or _as_text(profile.raw_json.get("email"))
    return CanonicalIdentity(
        id=identity_id,
        email=email,
        name=profile.display_name or profile.nickname,
        picture=profile.picture,
    )


NORMALIZERS: dict[ProviderName, Callable[[RawProfile], CanonicalIdentity]] = {
    ProviderName.GITHUB: normalize_github,
    ProviderName.GOOGLE: normalize_google,
    ProviderName.MICROSOFT: normalize_microsoft,
    ProviderName.APPLE: normalize_broker,
}


def normalize(provider: ProviderName, raw: Mapping[str, Any] | RawProfile | None) -> CanonicalIdentity:
    """
    Transform a provider's raw profile into a CanonicalIdentity.

    Args:
        provider: The provider the profile came from.
        raw: The raw profile (mapping or already-parsed RawProfile).

    Returns:
        CanonicalIdentity: The normalized identity. Missing optional fields are "".
    """
    return NORMALIZERS[ProviderName(provider)](parse_profile(raw))
