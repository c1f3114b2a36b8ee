"""Backup profiles.

A profile names the files to back up: glob patterns relative to a base
directory, plus the quiet period the watcher waits after the last change
before taking a snapshot. Profiles are stored as JSON files::

    {
      "base": "/home/user/games/saves",
      "include": ["*.sav", "slot*/**"],
      "delay": 5.0
    }
"""

import glob
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from savefile.config.paths import profile_path, validate_profile_name
from savefile.config.settings import DEFAULT_DELAY, SavefileConfig
from savefile.core.errors import (
    NoSuchProfileError,
    ProfileError,
    ProfileExistsError,
)

logger = logging.getLogger(__name__)


@dataclass
class Profile:
    base: Path
    includes: list[str] = field(default_factory=list)
    delay: float = DEFAULT_DELAY

    def __post_init__(self):
        self.base = Path(os.path.expanduser(str(self.base)))
        self.includes = list(self.includes)
        self.delay = float(self.delay)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self):
        """Raise ProfileError unless base is an existing directory and delay >= 0."""
        if not self.base.is_absolute():
            raise ProfileError(f"invalid base directory (not absolute): {self.base}")
        if not self.base.is_dir():
            raise ProfileError(f"invalid base directory: {self.base}")
        if self.delay < 0:
            raise ProfileError(f"delay must be non-negative, got {self.delay}")

    # ------------------------------------------------------------------
    # Glob expansion
    # ------------------------------------------------------------------

    def expand_includes(self, relative: bool = False) -> list[Path]:
        """Expand the include patterns against the filesystem as it is now.

        Returns a sorted, deduplicated list of paths, absolute or relative to
        ``base``. Entries that cannot be resolved are skipped.
        """
        base = str(self.base)
        found: set[Path] = set()
        for pattern in self.includes:
            try:
                matches = glob.glob(
                    os.path.join(glob.escape(base), pattern),
                    recursive=True,
                    include_hidden=True,
                )
            except (OSError, ValueError) as exc:
                logger.debug("Skipping pattern %r: %s", pattern, exc)
                continue
            for match in matches:
                path = Path(os.path.normpath(match))
                if path == self.base:
                    continue
                if relative:
                    try:
                        path = path.relative_to(self.base)
                    except ValueError:
                        logger.debug("Match outside base, skipping: %s", path)
                        continue
                found.add(path)
        return sorted(found)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "base": str(self.base),
            "include": list(self.includes),
            "delay": self.delay,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Profile":
        if not isinstance(data, dict) or "base" not in data:
            raise ProfileError("profile must be a JSON object with a 'base' key")
        includes = data.get("include", [])
        if not isinstance(includes, list) or not all(isinstance(p, str) for p in includes):
            raise ProfileError("'include' must be a list of glob strings")
        try:
            profile = cls(
                base=data["base"],
                includes=includes,
                delay=data.get("delay", DEFAULT_DELAY),
            )
        except (TypeError, ValueError) as exc:
            raise ProfileError(f"invalid profile: {exc}") from exc
        if profile.delay < 0:
            raise ProfileError(f"delay must be non-negative, got {profile.delay}")
        return profile

    @classmethod
    def load(cls, path) -> "Profile":
        path = Path(path)
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            raise NoSuchProfileError(f"no profile with the given name: {path}") from None
        except (json.JSONDecodeError, OSError) as exc:
            raise ProfileError(f"invalid profile format: {path} ({exc})") from exc
        return cls.from_dict(data)

    def save(self, path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2))


def load_profile(config: SavefileConfig, name: str) -> Profile:
    return Profile.load(profile_path(config, name))


def list_profiles(config: SavefileConfig, prefix: str = None) -> list[tuple[str, Path]]:
    """Return ``(name, path)`` for every profile file, sorted by name."""
    profiles_dir = config.profiles_dir
    if not profiles_dir.is_dir():
        return []
    result = []
    for entry in sorted(profiles_dir.glob("*.json")):
        if not entry.is_file():
            continue
        name = entry.stem
        if prefix and not name.startswith(prefix):
            continue
        result.append((name, entry))
    return result


def create_profile(config: SavefileConfig, name: str, base) -> Path:
    """Write a default profile for ``base`` and return its path."""
    path = profile_path(config, validate_profile_name(name))
    if path.exists():
        raise ProfileExistsError(f"profile already exists: {name}")
    base = Path(os.path.expanduser(str(base))).resolve()
    Profile(base=base).save(path)
    logger.info("Created profile %s at %s", name, path)
    return path


def delete_profile(config: SavefileConfig, name: str):
    """Remove the profile file. Existing snapshots are kept."""
    path = profile_path(config, name)
    try:
        path.unlink()
    except FileNotFoundError:
        raise NoSuchProfileError(f"no profile with the given name: {name}") from None
    logger.info("Deleted profile %s", name)
