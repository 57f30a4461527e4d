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
Homepage backend: social login, session tokens and per-user bookmark storage.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .app import create_app
from .config import HomepageSettings, VerificationMode
from .exceptions import CoreasonHomepageError, InvalidTokenError
from .gateway import AuthGateway
from .models import CanonicalIdentity, ProviderName, SessionClaims
from .profile_normalizer import normalize

__all__ = [
    "AuthGateway",
    "CanonicalIdentity",
    "CoreasonHomepageError",
    "HomepageSettings",
    "InvalidTokenError",
    "ProviderName",
    "SessionClaims",
    "VerificationMode",
    "create_app",
    "normalize",
]
