"""Tests for logger configuration."""

from loguru import logger

from workout_engine.config.settings import settings
from workout_engine.core.logger import setup_logger


class TestSetupLogger:
    def test_console_only_by_default(self, monkeypatch):
        """Test no file sink is added when LOG_FILE is unset."""
        monkeypatch.setattr(settings, "log_file", None)

        handler_ids = setup_logger(level="WARNING")

        assert len(handler_ids) == 1
        logger.remove(handler_ids[0])

    def test_file_sink_renders_keyword_context(self, tmp_path):
        """Test the file sink is created under missing directories and keeps bound context."""
        log_file = tmp_path / "logs" / "engine.log"

        handler_ids = setup_logger(level="INFO", log_file=str(log_file))
        logger.info("Instance generation started", plan_id="plan-1")
        for handler_id in handler_ids:
            logger.remove(handler_id)

        content = log_file.read_text()
        assert "Instance generation started" in content
        assert "'plan_id': 'plan-1'" in content

    def test_file_path_taken_from_settings(self, tmp_path, monkeypatch):
        """Test LOG_FILE is used when no path is passed."""
        log_file = tmp_path / "engine.log"
        monkeypatch.setattr(settings, "log_file", str(log_file))

        handler_ids = setup_logger()
        for handler_id in handler_ids:
            logger.remove(handler_id)

        assert len(handler_ids) == 2
        assert log_file.exists()
