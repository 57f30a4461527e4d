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
Data models for the coreason-homepage package.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderName(StrEnum):
    """Login providers reachable under /auth/{provider}."""

    GITHUB = "github"
    GOOGLE = "google"
    MICROSOFT = "microsoft"
    APPLE = "apple"


class CanonicalIdentity(BaseModel):
    """
    The four-field normalized user record produced from any provider's profile.

    This model is frozen (immutable). `id` is namespaced by provider and is the only key
    used to address a user's stored data.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "id": "github|583231",
                "email": "octocat@github.com",
                "name": "The Octocat",
                "picture": "https://avatars.githubusercontent.com/u/583231",
            }
        },
    )

    id: str = Field(..., min_length=1, description="Namespaced identifier, e.g. 'google-oauth2|1234'.")
    email: str = Field(default="", description="Best-effort email address. Empty when the provider omits it.")
    name: str = Field(default="", description="Best-effort display name.")
    picture: str = Field(default="", description="Best-effort avatar URL.")

    def __repr__(self) -> str:
        # PII fields MUST be redacted in __repr__
        return f"CanonicalIdentity(id='<REDACTED>', email='<REDACTED>', name='<REDACTED>', picture={self.picture!r})"

    def __str__(self) -> str:
        return self.__repr__()


class SessionClaims(BaseModel):
    """
    The identity view carried by a session token and returned by /auth/me.
    """

    model_config = ConfigDict(frozen=True)

    sub: str
    email: str = ""
    name: str = ""
    picture: str = ""

    @field_validator("email", "name", "picture", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @classmethod
    def from_identity(cls, identity: CanonicalIdentity) -> "SessionClaims":
        return cls(sub=identity.id, email=identity.email, name=identity.name, picture=identity.picture)


class BookmarkNode(BaseModel):
    """
    A node in the bookmark tree: a link when `url` is set, a folder when it has children.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    url: str | None = None
    children: list["BookmarkNode"] | None = None


class InitDatabaseRequest(BaseModel):
    """Request body of POST /api/admin/init-database."""

    bookmarks: list[BookmarkNode] | None = None
