"""
Configuration directory and file management.
Locates and reads the optional config.json file.
"""

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "CLAWD_CONFIG_DIR"
CONFIG_FILE_NAME = "config.json"

# Default paths
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "clawd"


def get_config_dir() -> Path:
    """Return the config directory, honouring CLAWD_CONFIG_DIR."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_DIR


def get_config_file() -> Path:
    return get_config_dir() / CONFIG_FILE_NAME


def load_config_file(config_path: Path | None = None) -> dict:
    """Load config.json file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        Config dictionary. Empty dict if file doesn't exist or is invalid.
    """
    if config_path is None:
        config_path = get_config_file()

    if not config_path.exists():
        logger.debug(f"Config file not found: {config_path}")
        return {}

    try:
        with config_path.open("r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in config file {config_path}: {e}")
        return {}
    except OSError as e:
        logger.warning(f"Error loading config file {config_path}: {e}")
        return {}

    if not isinstance(config, dict):
        logger.warning(f"Config file {config_path} must contain a JSON object, ignoring it")
        return {}

    logger.debug(f"Loaded config from: {config_path}")
    return config
