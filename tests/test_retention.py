"""Tests for keep-latest-N retention."""

import random
from datetime import datetime, timedelta, timezone

import pytest

from savefile.config.settings import TAG_PLACEHOLDER
from savefile.storage.ledger import Snapshot
from savefile.storage.retention import RetentionResult, select_for_deletion


def snap(backup_id, minutes=None):
    minutes = backup_id if minutes is None else minutes
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)
    return Snapshot(id=backup_id, tag=TAG_PLACEHOLDER, timestamp=ts)


class TestSelectForDeletion:
    def test_keep_two_of_four(self):
        snapshots = [snap(i) for i in (1, 2, 3, 4)]
        assert select_for_deletion(snapshots, 2) == [1, 2]

    def test_keep_zero_deletes_all(self):
        snapshots = [snap(i) for i in (1, 2, 3)]
        assert select_for_deletion(snapshots, 0) == [1, 2, 3]

    @pytest.mark.parametrize("keep", [3, 4, 100])
    def test_keep_at_least_total_deletes_nothing(self, keep):
        assert select_for_deletion([snap(i) for i in (1, 2, 3)], keep) == []

    def test_empty_input(self):
        assert select_for_deletion([], 3) == []

    def test_uses_timestamp_not_id(self):
        # id 3 was created with the oldest clock reading
        snapshots = [snap(1, 20), snap(2, 30), snap(3, 5)]
        assert select_for_deletion(snapshots, 2) == [3]

    def test_ties_keep_higher_id(self):
        snapshots = [snap(1, 10), snap(2, 10), snap(3, 10)]
        assert select_for_deletion(snapshots, 1) == [1, 2]

    def test_independent_of_input_order(self):
        snapshots = [snap(i) for i in range(1, 11)]
        expected = select_for_deletion(snapshots, 4)
        shuffled = snapshots[:]
        random.Random(7).shuffle(shuffled)
        assert select_for_deletion(shuffled, 4) == expected == [1, 2, 3, 4, 5, 6]

    @pytest.mark.parametrize("n,k", [(5, 0), (5, 1), (5, 4), (8, 3)])
    def test_kept_are_most_recent(self, n, k):
        snapshots = [snap(i) for i in range(1, n + 1)]
        deleted = set(select_for_deletion(snapshots, k))
        kept = [s for s in snapshots if s.id not in deleted]
        assert len(kept) == k
        assert len(deleted) == n - k
        if kept and deleted:
            assert min(s.timestamp for s in kept) > max(
                s.timestamp for s in snapshots if s.id in deleted
            )

    def test_negative_keep_rejected(self):
        with pytest.raises(ValueError):
            select_for_deletion([snap(1)], -1)


class TestRetentionResult:
    def test_nothing_existed_vs_nothing_to_delete(self):
        empty = RetentionResult(total=0)
        assert empty.nothing_existed
        assert empty.nothing_to_delete

        all_kept = RetentionResult(total=3, kept=[1, 2, 3])
        assert not all_kept.nothing_existed
        assert all_kept.nothing_to_delete

    def test_failures_reported(self):
        result = RetentionResult(total=3, kept=[3], deleted=[1], failed={2: "busy"})
        assert not result.ok
        assert not result.nothing_to_delete
        assert result.to_dict()["failed"] == {"2": "busy"}
