"""Configuration defaults and loading.

Every path the tool touches hangs off a single install root::

    ~/.savefile/
    +-- config.json        (optional overrides)
    +-- database.db        (snapshot ledger)
    +-- profiles/
    |   +-- <name>.json
    +-- saves/
    |   +-- <name>/
    |       +-- 1/
    |       +-- 2/
    +-- locks/
        +-- <name>.lock
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from savefile.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Install root, overridable with SAVEFILE_HOME
DEFAULT_INSTALL_ROOT = os.environ.get(
    "SAVEFILE_HOME", os.path.join(os.path.expanduser("~"), ".savefile")
)

PROFILES_SUBDIR = "profiles"
SAVES_SUBDIR = "saves"
LOCKS_SUBDIR = "locks"
DATABASE_NAME = "database.db"
CONFIG_NAME = "config.json"

# Quiet period (seconds) for newly created profiles
DEFAULT_DELAY = 5.0

# Stored in every ledger row until tags become user-facing
TAG_PLACEHOLDER = "unused"

# Owner-only access on the save root
SAVE_DIR_MODE = 0o700


@dataclass
class SavefileConfig:
    """Resolved locations of the profiles, saves, locks and ledger."""
    install_root: str = DEFAULT_INSTALL_ROOT
    profiles_subdir: str = PROFILES_SUBDIR
    saves_subdir: str = SAVES_SUBDIR
    locks_subdir: str = LOCKS_SUBDIR
    database_name: str = DATABASE_NAME

    @property
    def root(self) -> Path:
        return Path(os.path.expanduser(os.path.expandvars(self.install_root))).resolve()

    @property
    def profiles_dir(self) -> Path:
        return self.root / self.profiles_subdir

    @property
    def saves_dir(self) -> Path:
        return self.root / self.saves_subdir

    @property
    def locks_dir(self) -> Path:
        return self.root / self.locks_subdir

    @property
    def database_path(self) -> Path:
        return self.root / self.database_name


def load_config(path: str = None, install_root: str = None) -> SavefileConfig:
    """Build a config from defaults, overridden by a JSON file if present.

    ``install_root`` wins over both the default and the file. When ``path``
    is omitted, ``<install_root>/config.json`` is used if it exists.
    """
    root = install_root or DEFAULT_INSTALL_ROOT
    cfg_path = Path(path) if path else Path(os.path.expanduser(root)) / CONFIG_NAME

    overrides = {}
    if cfg_path.is_file():
        try:
            with open(cfg_path) as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            raise ConfigError(f"could not read config {cfg_path}: {exc}") from exc
        if not isinstance(overrides, dict):
            raise ConfigError(f"config {cfg_path} must contain a JSON object")
        logger.debug("Loaded config overrides from %s", cfg_path)
    elif path:
        raise ConfigError(f"config file not found: {path}")

    known = {f.name for f in fields(SavefileConfig)}
    unknown = set(overrides) - known
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")

    config = SavefileConfig(**overrides)
    if install_root:
        config.install_root = install_root
    return config
