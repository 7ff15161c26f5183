"""Tests for structured logging setup."""

import io
import json
import logging
import sys
from collections.abc import Generator

import pytest

from armprovider.logging_config import JsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for JSON log formatting."""

    def test_extra_fields_included(self) -> None:
        record = logging.LogRecord(
            "armprovider.reconciler", logging.INFO, __file__, 1, "Creating resource", None, None
        )
        record.resource_id = "/subscriptions/x"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Creating resource"
        assert data["level"] == "INFO"
        assert data["logger"] == "armprovider.reconciler"
        assert data["resource_id"] == "/subscriptions/x"
        assert data["timestamp"].endswith("Z")
        assert "msg" not in data

    def test_exception_included(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]

    def test_non_serializable_values(self) -> None:
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "m", None, None)
        record.path = object()

        data = json.loads(JsonFormatter().format(record))

        assert data["path"].startswith("<object object")


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_output(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.DEBUG, stream=stream)

        logging.getLogger("armprovider.test").debug("hello", extra={"operation": "creating"})

        data = json.loads(stream.getvalue())
        assert data["message"] == "hello"
        assert data["operation"] == "creating"

    def test_text_output(self) -> None:
        stream = io.StringIO()
        setup_logging(json_output=False, stream=stream)

        logging.getLogger("armprovider.test").warning("careful")

        assert "WARNING armprovider.test: careful" in stream.getvalue()

    def test_azure_sdk_quieted(self) -> None:
        setup_logging(level=logging.DEBUG, stream=io.StringIO())

        assert logging.getLogger("azure").level == logging.WARNING
