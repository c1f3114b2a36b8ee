"""Exception hierarchy shared by the store, the watcher and the front ends."""


class SavefileError(Exception):
    """Base class for every error raised on purpose by savefile."""


class ConfigError(SavefileError):
    """Configuration file is missing or malformed."""


class StorageError(SavefileError):
    """The snapshot ledger could not be read or written."""


class SnapshotIOError(SavefileError):
    """A copy, create or delete on the snapshot tree failed.

    ``ledger_mutated`` is True when the ledger was already changed before the
    filesystem step failed, e.g. a delete that removed the metadata row but
    left the directory behind.
    """

    def __init__(self, message: str, path=None, ledger_mutated: bool = False):
        if ledger_mutated:
            message = f"{message} (metadata removed, directory may be orphaned)"
        super().__init__(message)
        self.path = path
        self.ledger_mutated = ledger_mutated


class ProfileError(SavefileError):
    """Profile is missing, malformed, badly named or has an invalid base."""


class NoSuchProfileError(ProfileError):
    pass


class ProfileExistsError(ProfileError):
    pass


class BackupError(SavefileError):
    """A backup operation cannot proceed in the current state."""


class BackupNotFoundError(BackupError):
    """The referenced snapshot id is not in the profile's ledger."""

    def __init__(self, profile: str, backup_id: int):
        super().__init__(f"no backup with id {backup_id} for profile {profile!r}")
        self.profile = profile
        self.backup_id = backup_id


class WatchError(SavefileError):
    """The watch loop lost its change source and cannot continue."""
