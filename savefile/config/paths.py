"""Path resolution for profiles, snapshots and ledger tables."""

import logging
import os
import re
from pathlib import Path

from savefile.config.settings import SAVE_DIR_MODE, SavefileConfig
from savefile.core.errors import ProfileError

logger = logging.getLogger(__name__)

PROFILE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
LEDGER_TABLE_PREFIX = "backups_"


def validate_profile_name(name: str) -> str:
    """Return ``name`` unchanged, or raise ProfileError if it is unusable.

    Names end up as file names and as SQL identifiers, so only ASCII
    letters, digits, ``_`` and ``-`` are accepted.
    """
    if not isinstance(name, str) or not PROFILE_NAME_RE.match(name):
        raise ProfileError(
            f"invalid profile name {name!r}: use 1-64 letters, digits, '_' or '-'"
        )
    return name


def ledger_table(profile: str) -> str:
    """Quoted SQL identifier of the ledger table for ``profile``."""
    return f'"{LEDGER_TABLE_PREFIX}{validate_profile_name(profile)}"'


def profile_path(config: SavefileConfig, profile: str) -> Path:
    return config.profiles_dir / f"{validate_profile_name(profile)}.json"


def profile_save_dir(config: SavefileConfig, profile: str) -> Path:
    return config.saves_dir / validate_profile_name(profile)


def backup_dir(config: SavefileConfig, profile: str, backup_id: int) -> Path:
    return profile_save_dir(config, profile) / str(int(backup_id))


def lock_path(config: SavefileConfig, profile: str) -> Path:
    return config.locks_dir / f"{validate_profile_name(profile)}.lock"


def create_required_dirs(config: SavefileConfig):
    """Create the install root and its subdirectories if they are missing."""
    for d in (config.root, config.profiles_dir, config.saves_dir, config.locks_dir):
        d.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(str(config.saves_dir), SAVE_DIR_MODE)
    except OSError:
        logger.debug("Could not set save root permissions (may be on Windows)")
