"""Keep-latest-N retention over a profile's snapshots."""

from dataclasses import dataclass, field

from savefile.storage.ledger import Snapshot


def select_for_deletion(snapshots: list[Snapshot], keep: int) -> list[int]:
    """Return the ids to delete so that only the ``keep`` newest remain.

    Newest means latest timestamp; equal timestamps rank the higher id as
    newer. The result is in ascending id order and does not depend on the
    order of ``snapshots``.
    """
    if keep < 0:
        raise ValueError(f"keep must be non-negative, got {keep}")
    ranked = sorted(snapshots, key=lambda s: (s.timestamp, s.id), reverse=True)
    return sorted(s.id for s in ranked[keep:])


@dataclass
class RetentionResult:
    """Outcome of one retention pass."""
    total: int
    kept: list[int] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def nothing_existed(self) -> bool:
        return self.total == 0

    @property
    def nothing_to_delete(self) -> bool:
        return not self.deleted and not self.failed

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "kept": self.kept,
            "deleted": self.deleted,
            "failed": {str(k): v for k, v in self.failed.items()},
        }
