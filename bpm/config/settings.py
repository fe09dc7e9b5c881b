"""User settings loading.

Settings live in ``$BPM_HOME/config.yaml`` (``~/.bpm`` by default). A few
environment variables override the file so CI jobs can point bpm elsewhere
without writing config.
"""

import logging
import os
from pathlib import Path

from pydantic import ValidationError

from bpm.config.parser import ConfigError, load_yaml, save_yaml
from bpm.config.schemas import Settings

logger = logging.getLogger(__name__)

SETTINGS_FILE = "config.yaml"

_ENV_OVERRIDES = {
    "BPM_REGISTRY": "registry",
    "BPM_CACHE_DIR": "cache_dir",
}


def bpm_home() -> Path:
    """Get the bpm home directory."""
    home = os.environ.get("BPM_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".bpm"


def load_settings(home: Path | None = None) -> Settings:
    """Load user settings, applying environment overrides.

    Args:
        home: bpm home directory (defaults to bpm_home())

    Returns:
        Settings with cache_dir always set

    Raises:
        ConfigError: If the settings file exists but is invalid
    """
    home = home or bpm_home()
    path = home / SETTINGS_FILE

    data = load_yaml(path) if path.exists() else {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            logger.debug("Overriding %s from %s", field_name, env_name)
            data[field_name] = value

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}", path) from e

    if settings.cache_dir is None:
        settings.cache_dir = home / "cache"
    return settings


def save_settings(settings: Settings, home: Path | None = None) -> None:
    """Persist user settings.

    Args:
        settings: Settings to write
        home: bpm home directory (defaults to bpm_home())
    """
    home = home or bpm_home()
    save_yaml(home / SETTINGS_FILE, settings.model_dump(mode="json", exclude_none=True))
