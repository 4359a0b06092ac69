"""Unit tests for settings loading and logging setup."""

import logging

import pytest

from toolchat.config.logging import ColoredFormatter, get_logger, setup_logging
from toolchat.config.settings import ChatSettings, Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.chat.max_rounds == 50
        assert settings.chat.title_placeholder == "New Chat"
        assert settings.chat.event_buffer_size == 1
        assert settings.store.backend in ("memory", "jsonl")

    def test_nested_environment_variables(self, monkeypatch):
        monkeypatch.setenv("LLM__MODEL", "anthropic/claude-3-5-sonnet-20241022")
        monkeypatch.setenv("CHAT__MAX_ROUNDS", "7")
        monkeypatch.setenv("STORE__BACKEND", "memory")

        settings = Settings()

        assert settings.llm.model == "anthropic/claude-3-5-sonnet-20241022"
        assert settings.chat.max_rounds == 7
        assert settings.store.backend == "memory"

    def test_allowed_models_from_json(self, monkeypatch):
        monkeypatch.setenv("LLM__ALLOWED_MODELS", '["openai/gpt-4o", "openai/gpt-4o-mini"]')

        assert Settings().llm.allowed_models == ["openai/gpt-4o", "openai/gpt-4o-mini"]

    def test_max_rounds_must_be_positive(self):
        with pytest.raises(ValueError):
            ChatSettings(max_rounds=0)


class TestLogging:
    def test_get_logger_prefixes_outside_names(self):
        assert get_logger("scripts.export").name == "toolchat.scripts.export"
        assert get_logger("toolchat.llm.provider").name == "toolchat.llm.provider"
        assert get_logger("toolchat").name == "toolchat"

    def test_colored_formatter_restores_level_name(self):
        record = logging.LogRecord("toolchat", logging.WARNING, __file__, 1, "careful", None, None)

        output = ColoredFormatter(fmt="%(levelname)s %(message)s").format(record)

        assert "\033[33m" in output
        assert record.levelname == "WARNING"

    def test_setup_logging_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "toolchat.log"
        settings = Settings(log_level="INFO", log_file=log_file)

        setup_logging(settings)
        get_logger("tests").info("hello from the test")
        for handler in logging.getLogger("toolchat").handlers:
            handler.flush()

        logger = logging.getLogger("toolchat")
        assert len(logger.handlers) == 2
        assert "hello from the test" in log_file.read_text()

        # Leave the hierarchy as other tests expect it
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
