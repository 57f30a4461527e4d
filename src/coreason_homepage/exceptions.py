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
Custom exceptions for the coreason-homepage package.
"""


class CoreasonHomepageError(Exception):
    """Base exception for all coreason-homepage errors."""


class ConfigurationError(CoreasonHomepageError):
    """Raised when required configuration is missing or invalid. Fatal at startup."""


class InvalidTokenError(CoreasonHomepageError):
    """
    Raised when a session token is invalid (expired, bad signature, wrong audience, etc.).
    The HTTP layer maps every subclass to the same 401 response.
    """


class TokenExpiredError(InvalidTokenError):
    """Raised when the provided token has expired."""


class InvalidAudienceError(InvalidTokenError):
    """Raised when the token's audience does not match the expected value."""


class InvalidIssuerError(InvalidTokenError):
    """Raised when the token's issuer is not one of the trusted issuers."""


class SignatureVerificationError(InvalidTokenError):
    """Raised when the token's signature cannot be verified."""


class ProviderAuthError(CoreasonHomepageError):
    """Raised when an OAuth handshake with an upstream provider fails."""


class UnknownProviderError(CoreasonHomepageError):
    """Raised when a login is attempted for a provider that is not registered."""


class StorageError(CoreasonHomepageError):
    """Raised when the bookmark storage backend fails."""


class OversizedResponseError(CoreasonHomepageError):
    """Raised when an HTTP response is too large."""
