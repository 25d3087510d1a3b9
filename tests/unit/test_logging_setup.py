"""Unit tests for logging configuration."""
from __future__ import annotations

import logging

import pytest

from ajor.logging_setup import LOG_FORMAT, configure_logging


class TestConfigureLogging:
    def test_sets_info_level(self) -> None:
        configure_logging("INFO")
        assert logging.getLogger().level == logging.INFO

    def test_sets_debug_level(self) -> None:
        configure_logging("debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_silences_aiohttp(self) -> None:
        configure_logging("DEBUG")
        assert logging.getLogger("aiohttp").level == logging.WARNING

    @pytest.mark.parametrize("name", ["asyncio", "urllib3"])
    def test_silences_other_noisy_loggers(self, name: str) -> None:
        configure_logging("DEBUG")
        assert logging.getLogger(name).level == logging.WARNING
        assert not logging.getLogger(name).isEnabledFor(logging.INFO)

    def test_own_loggers_follow_root(self) -> None:
        configure_logging("DEBUG")
        assert logging.getLogger("ajor.services.orchestrator").isEnabledFor(logging.DEBUG)

    def test_root_handler_uses_log_format(self) -> None:
        configure_logging("INFO")
        formats = [h.formatter._fmt for h in logging.getLogger().handlers if h.formatter]
        assert LOG_FORMAT in formats

    def test_invalid_level_defaults_to_info(self) -> None:
        configure_logging("NONEXISTENT")
        assert logging.getLogger().level == logging.INFO
