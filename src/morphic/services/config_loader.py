"""
Configuration Loader Service

Loads engine settings from morphic.json in the project root.
Environment variables always take precedence over config file values.

Config file location (in order of precedence):
1. MORPHIC_PROJECT_ROOT/morphic.json (if MORPHIC_PROJECT_ROOT is set)
2. CWD/morphic.json

Supported settings in morphic.json:
{
    "fusion_enabled": true,          // -> MORPHIC_FUSION_ENABLED
    "memoization_enabled": true,     // -> MORPHIC_MEMOIZATION_ENABLED
    "cache_max_entries": 0,          // -> MORPHIC_CACHE_MAX_ENTRIES (0 = unbounded)
    "strict_names": false,           // -> MORPHIC_STRICT_NAMES
    "debug_log": false,              // -> MORPHIC_DEBUG_LOG
    "log_dir": ".morphic"            // -> MORPHIC_LOG_DIR
}
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

from ..logging_config import configure_logger_for_trace

logger = configure_logger_for_trace(__name__)

CONFIG_FILENAME = "morphic.json"


@dataclass(frozen=True)
class EngineSettings:
    """Resolved engine settings.

    ::: This is-in-layer Service-Layer.
    ::: This is a value-object.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    fusion_enabled: bool = True
    memoization_enabled: bool = True
    cache_max_entries: int = 0
    strict_names: bool = False
    debug_log: bool = False
    log_dir: Optional[str] = None


class ConfigLoader:
    """
    Loads configuration from morphic.json file.

    ::: This is-in-layer Service-Layer.
    ::: This is a loader.
    ::: This is-in-process Main-Process.
    ::: This is stateless.

    Priority: Environment variables > morphic.json > defaults
    """

    CONFIG_KEY_TO_ENV = {
        "fusion_enabled": "MORPHIC_FUSION_ENABLED",
        "memoization_enabled": "MORPHIC_MEMOIZATION_ENABLED",
        "cache_max_entries": "MORPHIC_CACHE_MAX_ENTRIES",
        "strict_names": "MORPHIC_STRICT_NAMES",
        "debug_log": "MORPHIC_DEBUG_LOG",
        "log_dir": "MORPHIC_LOG_DIR",
    }

    DEFAULTS = {
        "fusion_enabled": True,
        "memoization_enabled": True,
        "cache_max_entries": 0,
        "strict_names": False,
        "debug_log": False,
        "log_dir": None,
    }

    def __init__(self):
        self._config: Dict[str, Any] = {}
        self._config_path: Optional[Path] = None
        self._loaded = False

    def load(self, project_root: Optional[Path] = None) -> bool:
        """
        Load configuration from morphic.json.

        Args:
            project_root: Project root directory. If None, uses MORPHIC_PROJECT_ROOT or CWD.

        Returns:
            True if config file was found and loaded, False otherwise.
        """
        if self._loaded:
            return self._config_path is not None

        if project_root is None:
            env_root = os.getenv("MORPHIC_PROJECT_ROOT")
            project_root = Path(env_root) if env_root else Path.cwd()

        config_path = Path(project_root) / CONFIG_FILENAME
        if config_path.exists():
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON in {config_path}: {e}")
            else:
                if isinstance(data, dict):
                    self._config = data
                    self._config_path = config_path
                    logger.debug(f"Loaded config from: {config_path}")
                else:
                    logger.warning(f"Ignoring {config_path}: top-level value must be an object")

        self._loaded = True
        return self._config_path is not None

    def get(self, key: str, default: Any = None) -> Any:
        """Get a raw config file value."""
        return self._config.get(key, default)

    def get_engine_config(self) -> Dict[str, Any]:
        """
        Get engine configuration with env overrides and defaults applied.

        Returns:
            Dictionary with every engine setting.
        """
        engine_config = {}

        for key, default_value in self.DEFAULTS.items():
            env_var = self.CONFIG_KEY_TO_ENV[key]
            env_value = os.getenv(env_var)
            if env_value is not None:
                engine_config[key] = _coerce(env_value, default_value)
                continue

            if key in self._config:
                engine_config[key] = self._config[key]
            else:
                engine_config[key] = default_value

        return engine_config

    def settings(self) -> EngineSettings:
        """Build an EngineSettings from the resolved configuration."""
        resolved = self.get_engine_config()
        max_entries = resolved["cache_max_entries"]
        try:
            max_entries = max(0, int(max_entries))
        except (TypeError, ValueError):
            logger.warning(f"Invalid cache_max_entries {max_entries!r}, using unbounded cache")
            max_entries = 0
        return EngineSettings(
            fusion_enabled=bool(resolved["fusion_enabled"]),
            memoization_enabled=bool(resolved["memoization_enabled"]),
            cache_max_entries=max_entries,
            strict_names=bool(resolved["strict_names"]),
            debug_log=bool(resolved["debug_log"]),
            log_dir=resolved["log_dir"],
        )

    @property
    def config_path(self) -> Optional[Path]:
        """Path to the loaded config file, or None if not loaded."""
        return self._config_path

    @property
    def config(self) -> Dict[str, Any]:
        """The loaded configuration dictionary."""
        return self._config.copy()


def _coerce(env_value: str, default_value: Any) -> Any:
    """Convert an environment string to the type of its default."""
    if isinstance(default_value, bool):
        return env_value.strip().lower() in ('true', '1', 'yes')
    if isinstance(default_value, int):
        try:
            return int(env_value)
        except ValueError:
            return default_value
    return env_value


# Global singleton instances
_config_loader: Optional[ConfigLoader] = None
_settings: Optional[EngineSettings] = None


def get_config_loader() -> ConfigLoader:
    """Get the global config loader instance."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def load_config(project_root: Optional[Path] = None) -> bool:
    """
    Load configuration from morphic.json.

    Args:
        project_root: Project root directory. If None, auto-detects.

    Returns:
        True if config was loaded, False otherwise.
    """
    return get_config_loader().load(project_root)


def get_settings() -> EngineSettings:
    """Return the process-wide engine settings, loading them on first use."""
    global _settings
    if _settings is None:
        loader = get_config_loader()
        loader.load()
        _settings = loader.settings()
    return _settings


def reset_settings() -> None:
    """Forget loaded configuration so the next get_settings() re-reads it."""
    global _config_loader, _settings
    _config_loader = None
    _settings = None
