# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

import hashlib
import hmac
import json
import logging
import os
from collections.abc import Generator
from typing import Any
from unittest.mock import patch

import pytest
from loguru import logger
from opentelemetry.sdk.trace import TracerProvider

from coreason_homepage.utils.logger import anonymize, configure_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    yield
    configure_logging()


def _json_records(out: str, message: str) -> list[dict[str, Any]]:
    records = []
    for line in out.strip().split("\n"):
        if message in line:
            records.append(json.loads(line)["record"])
    return records


def test_json_configuration(capfd: pytest.CaptureFixture[str]) -> None:
    """Test that setting COREASON_LOG_JSON=true produces JSON on stdout only."""
    with patch.dict(os.environ, {"COREASON_LOG_JSON": "true", "COREASON_LOG_LEVEL": "INFO"}):
        configure_logging()
        logger.info("Test JSON message")

        out, err = capfd.readouterr()

    assert not err
    records = _json_records(out, "Test JSON message")
    assert records
    assert records[0]["level"]["name"] == "INFO"


def test_default_text_logging(capfd: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_LOG_JSON": "false"}):
        configure_logging()
        logger.info("Text message")

        _, err = capfd.readouterr()

    assert "Text message" in err
    assert "| INFO" in err


def test_trace_id_injection(capfd: pytest.CaptureFixture[str]) -> None:
    tracer = TracerProvider().get_tracer(__name__)

    with patch.dict(os.environ, {"COREASON_LOG_JSON": "true"}):
        configure_logging()
        with tracer.start_as_current_span("test_span") as span:
            logger.info("Trace message")
            ctx = span.get_span_context()

        out, _ = capfd.readouterr()

    extra = _json_records(out, "Trace message")[0]["extra"]
    assert extra["trace_id"] == format(ctx.trace_id, "032x")
    assert extra["span_id"] == format(ctx.span_id, "016x")


def test_standard_logging_interception(capfd: pytest.CaptureFixture[str]) -> None:
    """Uvicorn and httpx log through the standard library; those records must reach loguru."""
    with patch.dict(os.environ, {"COREASON_LOG_JSON": "true"}):
        configure_logging()
        logging.getLogger("uvicorn.error").warning("Standard logging message")

        out, _ = capfd.readouterr()

    records = _json_records(out, "Standard logging message")
    assert records
    assert records[0]["level"]["name"] == "WARNING"


def test_invalid_log_level_fallback() -> None:
    with patch.dict(os.environ, {"COREASON_LOG_LEVEL": "INVALID_LEVEL"}):
        configure_logging()
    assert logging.getLogger().level == logging.INFO


def test_debug_level_applies_to_standard_logging() -> None:
    with patch.dict(os.environ, {"COREASON_LOG_LEVEL": "debug"}):
        configure_logging()
    assert logging.getLogger().level == logging.DEBUG


def test_unwritable_log_directory_ignored() -> None:
    with patch("pathlib.Path.mkdir", side_effect=PermissionError("read-only filesystem")):
        configure_logging()


def test_multiple_configure_calls_do_not_duplicate_sinks() -> None:
    configure_logging()
    first = len(logger._core.handlers)  # type: ignore[attr-defined]
    configure_logging()
    assert len(logger._core.handlers) == first  # type: ignore[attr-defined]


def test_anonymize_is_salted_hmac() -> None:
    expected = hmac.new(b"salt", b"github|583231", hashlib.sha256).hexdigest()
    assert anonymize("github|583231", "salt") == expected
    assert anonymize("github|583231", "other") != expected
    assert "583231" not in anonymize("github|583231", "salt")
