"""
Tests for configuration loading and logging setup.
"""

import json
import logging

from morphic import logging_config
from morphic.services import ConfigLoader, EngineSettings, get_settings, load_config, reset_settings


# =============================================================================
# ConfigLoader Tests
# =============================================================================

class TestConfigLoader:

    def test_defaults_without_file(self, tmp_path):
        loader = ConfigLoader()
        assert loader.load(tmp_path) is False
        assert loader.config_path is None
        assert loader.settings() == EngineSettings()

    def test_file_values(self, tmp_path):
        (tmp_path / "morphic.json").write_text(json.dumps({
            "fusion_enabled": False,
            "cache_max_entries": 10,
        }))
        loader = ConfigLoader()
        assert loader.load(tmp_path) is True
        assert loader.config_path == tmp_path / "morphic.json"
        settings = loader.settings()
        assert settings.fusion_enabled is False
        assert settings.cache_max_entries == 10
        assert settings.memoization_enabled is True

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        (tmp_path / "morphic.json").write_text(json.dumps({"strict_names": False}))
        monkeypatch.setenv("MORPHIC_STRICT_NAMES", "yes")
        loader = ConfigLoader()
        loader.load(tmp_path)
        assert loader.settings().strict_names is True

    def test_invalid_json_ignored(self, tmp_path, caplog):
        (tmp_path / "morphic.json").write_text("{not json")
        loader = ConfigLoader()
        with caplog.at_level(logging.WARNING, logger="morphic.services.config_loader"):
            assert loader.load(tmp_path) is False
        assert "Invalid JSON" in caplog.text
        assert loader.settings() == EngineSettings()

    def test_non_object_json_ignored(self, tmp_path):
        (tmp_path / "morphic.json").write_text("[1, 2]")
        loader = ConfigLoader()
        assert loader.load(tmp_path) is False

    def test_invalid_int_env_falls_back(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MORPHIC_CACHE_MAX_ENTRIES", "lots")
        loader = ConfigLoader()
        loader.load(tmp_path)
        assert loader.settings().cache_max_entries == 0

    def test_negative_bound_clamped(self, tmp_path):
        (tmp_path / "morphic.json").write_text(json.dumps({"cache_max_entries": -5}))
        loader = ConfigLoader()
        loader.load(tmp_path)
        assert loader.settings().cache_max_entries == 0

    def test_config_copy(self, tmp_path):
        (tmp_path / "morphic.json").write_text(json.dumps({"log_dir": "logs"}))
        loader = ConfigLoader()
        loader.load(tmp_path)
        loader.config["log_dir"] = "changed"
        assert loader.get("log_dir") == "logs"

    def test_load_is_idempotent(self, tmp_path):
        loader = ConfigLoader()
        loader.load(tmp_path)
        (tmp_path / "morphic.json").write_text(json.dumps({"fusion_enabled": False}))
        assert loader.load(tmp_path) is False


# =============================================================================
# Global Settings Tests
# =============================================================================

class TestGlobalSettings:

    def test_project_root_from_env(self, tmp_path):
        (tmp_path / "morphic.json").write_text(json.dumps({"memoization_enabled": False}))
        reset_settings()
        assert get_settings().memoization_enabled is False

    def test_settings_cached_until_reset(self, tmp_path):
        first = get_settings()
        (tmp_path / "morphic.json").write_text(json.dumps({"fusion_enabled": False}))
        assert get_settings() is first
        reset_settings()
        assert get_settings().fusion_enabled is False

    def test_load_config(self, tmp_path):
        (tmp_path / "morphic.json").write_text("{}")
        assert load_config(tmp_path) is True


# =============================================================================
# Logging Tests
# =============================================================================

class TestLogging:

    def test_debug_log_flag(self, monkeypatch):
        monkeypatch.setenv("MORPHIC_DEBUG_LOG", "1")
        assert logging_config.is_debug_log_enabled() is True
        monkeypatch.setenv("MORPHIC_DEBUG_LOG", "false")
        assert logging_config.is_debug_log_enabled() is False

    def test_log_directory_priority(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MORPHIC_LOG_DIR", str(tmp_path / "logs"))
        assert logging_config._get_log_directory() == tmp_path / "logs"
        monkeypatch.delenv("MORPHIC_LOG_DIR")
        assert logging_config._get_log_directory() == tmp_path / ".morphic"

    def test_file_handler_only_when_enabled(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MORPHIC_LOG_DIR", str(tmp_path))
        assert logging_config._create_file_handler("x.log") is None
        monkeypatch.setenv("MORPHIC_DEBUG_LOG", "1")
        handler = logging_config._create_file_handler("x.log")
        try:
            assert handler is not None
            assert (tmp_path / "x.log").exists()
        finally:
            handler.close()

    def test_configure_logger_for_trace(self):
        logger = logging_config.configure_logger_for_trace("morphic.test_component")
        assert logger.level == logging.DEBUG
        for handler in logging_config.trace_logger.handlers:
            assert handler in logger.handlers

    def test_suppress_and_restore_stderr(self):
        logging_config.suppress_stderr_logging()
        stream_handlers = [
            h for h in logging_config.trace_logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]
        assert all(h.level > logging.CRITICAL for h in stream_handlers)
        logging_config.restore_stderr_logging()
        assert all(h.level == logging.WARNING for h in stream_handlers)
