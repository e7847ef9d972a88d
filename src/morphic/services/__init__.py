"""
Service Classes for the morphic engine

Ambient services shared by the DSL: configuration loading and the
resolved engine settings.
"""

from .config_loader import (
    ConfigLoader,
    EngineSettings,
    load_config,
    get_config_loader,
    get_settings,
    reset_settings,
)

__all__ = [
    "ConfigLoader",
    "EngineSettings",
    "load_config",
    "get_config_loader",
    "get_settings",
    "reset_settings",
]
