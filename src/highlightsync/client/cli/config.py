"""Configuration utilities for highlightsync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from highlightsync.client.agent import SyncAgent
from highlightsync.client.settings import SettingsStore
from highlightsync.client.vault import LocalVault
from highlightsync.core.config import ServerConfig

CONFIG_DIR_ENV = "HIGHLIGHTSYNC_HOME"


def get_config_dir() -> Path:
    """Get the configuration directory for highlightsync.

    Returns:
        Path to $HIGHLIGHTSYNC_HOME, or ~/.highlightsync.
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".highlightsync"


def get_settings_file() -> Path:
    """Get the path to the settings file."""
    return get_config_dir() / "settings.json"


def load_store() -> SettingsStore:
    """Load the settings store."""
    return SettingsStore(get_settings_file())


def get_vault_path(store: SettingsStore) -> Path:
    """Get the vault directory.

    Returns:
        Configured vault path, or ~/Highlights.
    """
    configured = store.settings.vault_path
    if configured:
        return Path(configured).expanduser().resolve()
    return Path.home() / "Highlights"


def build_agent(store: SettingsStore | None = None) -> SyncAgent:
    """Create a SyncAgent for the configured vault."""
    store = store or load_store()
    return SyncAgent(store, LocalVault(get_vault_path(store)), ServerConfig())


def setup_logging(verbose: bool = False) -> None:
    """Configure the highlightsync logger for console output.

    Args:
        verbose: Log debug messages as well.
    """
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    root_logger = logging.getLogger("highlightsync")
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    root_logger.propagate = False
