# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

import pytest
from pydantic import ValidationError

from coreason_homepage.models import BookmarkNode, CanonicalIdentity, InitDatabaseRequest, ProviderName, SessionClaims


def test_canonical_identity_valid() -> None:
    """Test creating a valid CanonicalIdentity."""
    identity = CanonicalIdentity(
        id="google-oauth2|1098765",
        email="ada@gmail.com",
        name="Ada Lovelace",
        picture="https://lh3.googleusercontent.com/a/ada",
    )
    assert identity.id == "google-oauth2|1098765"
    assert identity.email == "ada@gmail.com"


def test_canonical_identity_defaults() -> None:
    """Optional fields default to empty strings, never None."""
    identity = CanonicalIdentity(id="windowslive|abc")
    assert identity.email == ""
    assert identity.name == ""
    assert identity.picture == ""


def test_canonical_identity_requires_id() -> None:
    with pytest.raises(ValidationError) as excinfo:
        CanonicalIdentity(id="")
    assert "at least 1 character" in str(excinfo.value)


def test_canonical_identity_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        CanonicalIdentity(id="github|1", groups=["admin"])  # type: ignore[call-arg]


def test_canonical_identity_immutability() -> None:
    """
    Test that the model is immutable.
    """
    identity = CanonicalIdentity(id="github|1")
    with pytest.raises(ValidationError):
        identity.id = "github|2"  # type: ignore


def test_canonical_identity_repr_redacts_pii() -> None:
    identity = CanonicalIdentity(id="github|583231", email="octocat@github.com", name="The Octocat")
    text = repr(identity)
    assert "583231" not in text
    assert "octocat@github.com" not in text
    assert "The Octocat" not in text
    assert str(identity) == text


def test_session_claims_from_identity() -> None:
    identity = CanonicalIdentity(id="apple|001234", email="tim@privaterelay.appleid.com")
    claims = SessionClaims.from_identity(identity)
    assert claims.model_dump() == {
        "sub": "apple|001234",
        "email": "tim@privaterelay.appleid.com",
        "name": "",
        "picture": "",
    }


def test_session_claims_none_becomes_empty() -> None:
    claims = SessionClaims(sub="github|1", email=None, name=None, picture=None)  # type: ignore[arg-type]
    assert (claims.email, claims.name, claims.picture) == ("", "", "")


def test_provider_names() -> None:
    assert [p.value for p in ProviderName] == ["github", "google", "microsoft", "apple"]
    with pytest.raises(ValueError):
        ProviderName("facebook")


def test_bookmark_node_nesting() -> None:
    node = BookmarkNode.model_validate(
        {"name": "Work", "children": [{"name": "Mail", "url": "https://mail.example.com", "icon": "ignored"}]}
    )
    assert node.url is None
    assert node.children is not None
    assert node.children[0].url == "https://mail.example.com"
    assert node.model_dump(exclude_none=True) == {
        "name": "Work",
        "children": [{"name": "Mail", "url": "https://mail.example.com"}],
    }


def test_bookmark_node_requires_name() -> None:
    with pytest.raises(ValidationError) as excinfo:
        BookmarkNode.model_validate({"url": "https://example.com"})
    assert "Field required" in str(excinfo.value)


def test_init_database_request_optional_seed() -> None:
    assert InitDatabaseRequest().bookmarks is None
    request = InitDatabaseRequest.model_validate({"bookmarks": [{"name": "Search", "url": "https://duckduckgo.com"}]})
    assert request.bookmarks is not None
    assert request.bookmarks[0].name == "Search"
