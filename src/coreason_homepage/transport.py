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
Size-limited JSON fetching for calls to identity providers.
"""

import json
from typing import Any

import httpx

from coreason_homepage.exceptions import CoreasonHomepageError, OversizedResponseError

MAX_RESPONSE_BYTES = 1_000_000


async def safe_json_fetch(client: httpx.AsyncClient, url: str, method: str = "GET", **kwargs: Any) -> Any:
    """
    Performs a request and decodes the JSON body, refusing bodies larger than `MAX_RESPONSE_BYTES`.

    Args:
        client: The async HTTP client.
        url: The URL to request.
        method: The HTTP method.
        **kwargs: Passed through to `client.stream` (headers, data, ...).

    Returns:
        Any: The decoded JSON document.

    Raises:
        httpx.HTTPStatusError: If the response status is 4xx/5xx.
        httpx.HTTPError: For transport failures.
        OversizedResponseError: If the body exceeds the size limit.
        CoreasonHomepageError: If the body is not valid JSON.
    """
    async with client.stream(method, url, **kwargs) as response:
        content_length = response.headers.get("Content-Length")
        if content_length:
            try:
                declared = int(content_length)
            except ValueError:
                declared = 0
            if declared > MAX_RESPONSE_BYTES:
                raise OversizedResponseError(f"Response from {url} too large ({declared} bytes)")

        response.raise_for_status()

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > MAX_RESPONSE_BYTES:
                raise OversizedResponseError(f"Response from {url} too large")

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise CoreasonHomepageError(f"Invalid JSON response from {url}: {e}") from e
