"""Tests for structlog setup over the stdlib root logger."""

import logging
from collections.abc import Iterator

import pytest
import structlog

from pricewatch.logging import setup_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_single_root_handler_at_level(self) -> None:
        setup_logging("debug")
        setup_logging("warning")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self) -> None:
        setup_logging("chatty")
        assert logging.getLogger().level == logging.INFO

    def test_http_chatter_is_quieted(self) -> None:
        setup_logging("DEBUG")

        assert logging.getLogger("aiohttp").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    @pytest.mark.parametrize(
        "log_format,renderer",
        [("json", structlog.processors.JSONRenderer), ("console", structlog.dev.ConsoleRenderer)],
    )
    def test_renderer_follows_format(self, log_format: str, renderer: type) -> None:
        setup_logging("INFO", log_format)

        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], renderer)
