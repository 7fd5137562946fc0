"""Tests for settings and logging setup."""

from __future__ import annotations

import logging

import pytest
import structlog

from kubepane.config import Settings, get_settings
from kubepane.core import logging as kubepane_logging
from kubepane.core.logging import ColoredFormatter, redact_sensitive, setup_logging


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.request_timeout == (1.0, 10.0)
        assert settings.max_redirects == 5
        assert settings.default_namespace == "default"
        assert settings.new_profile_name == "new context"
        assert settings.is_debug is True

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_REDIRECTS", "2")
        monkeypatch.setenv("READ_TIMEOUT_SECONDS", "30")
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.max_redirects == 2
        assert settings.request_timeout == (1.0, 30.0)

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_timeouts_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            Settings(connect_timeout_seconds=0)


def test_redact_sensitive() -> None:
    event = redact_sensitive(None, "info", {"event": "x", "client_key": b"pem", "token": "", "name": "prod"})
    assert event == {"event": "x", "client_key": "***REDACTED***", "token": "", "name": "prod"}


def test_colored_formatter() -> None:
    record = logging.LogRecord("kubepane", logging.WARNING, __file__, 1, "careful", None, None)
    output = ColoredFormatter("%(levelname)s %(message)s").format(record)
    assert output.startswith("\033[33mWARNING\033[0m")


@pytest.fixture
def fresh_logging(monkeypatch: pytest.MonkeyPatch):
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.setattr(kubepane_logging, "_CONFIGURED", False)
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    structlog.reset_defaults()


def test_setup_logging_writes_key_value_lines(fresh_logging, tmp_path) -> None:
    log_file = tmp_path / "logs" / "kubepane.log"

    setup_logging(level="debug", log_file=str(log_file), use_color=False)
    structlog.get_logger("kubepane.test").info("profile.created", profile_id=3, client_key="pem")
    setup_logging(level="debug", log_file=str(log_file))
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_file.read_text()
    assert "event='profile.created'" in text
    assert "profile_id=3" in text
    assert "pem'" not in text
    assert len(logging.getLogger().handlers) == 2
