"""Tests for the BackupManager facade.

Covers:
- Create / list with newest-first ordering and count limits
- Restore round trip: overwrites matched files, leaves others untouched
- Restore latest, restore of unknown ids, restore with no backups
- Retention round trip, idempotence, best-effort failures
- Destructive operations refused while a watcher holds the lock
- watch() running the engine under the lock
"""

import shutil
import threading
from datetime import datetime, timedelta, timezone

import pytest

from savefile.config.settings import SavefileConfig
from savefile.core.errors import (
    BackupError,
    BackupNotFoundError,
    NoSuchProfileError,
    ProfileError,
    SnapshotIOError,
)
from savefile.profile.profile import Profile, create_profile, load_profile
from savefile.service.backup_manager import BackupManager
from savefile.watch.lock import WatcherLock


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path):
    return SavefileConfig(install_root=str(tmp_path / "home"))


@pytest.fixture
def base(tmp_path):
    d = tmp_path / "base"
    d.mkdir()
    (d / "a.txt").write_text("original a")
    (d / "sub").mkdir()
    (d / "sub" / "b.txt").write_text("original b")
    (d / "keep.log").write_text("unrelated")
    return d


@pytest.fixture
def mgr(config, base):
    manager = BackupManager(config)
    Profile(base=base, includes=["*.txt", "sub/*.txt"], delay=0.2).save(
        config.profiles_dir / "game.json"
    )
    yield manager
    manager.close()


def make_backups(mgr, n):
    profile = mgr.load_profile("game")
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        mgr.store.create("game", profile, timestamp=start + timedelta(hours=i))
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Create and list
# ---------------------------------------------------------------------------

class TestCreateAndList:
    def test_create_returns_snapshot_and_path(self, mgr, config):
        snapshot, path = mgr.create_backup("game")
        assert snapshot.id == 1
        assert path == config.saves_dir / "game" / "1"
        assert (path / "sub" / "b.txt").read_text() == "original b"

    def test_create_unknown_profile(self, mgr):
        with pytest.raises(NoSuchProfileError):
            mgr.create_backup("nope")

    def test_create_with_missing_base(self, mgr, config, tmp_path):
        Profile(base=tmp_path / "gone", includes=["*"]).save(config.profiles_dir / "bad.json")
        with pytest.raises(ProfileError):
            mgr.create_backup("bad")

    def test_list_newest_first(self, mgr):
        make_backups(mgr, 3)
        assert [s.id for s in mgr.list_backups("game")] == [3, 2, 1]

    def test_list_count(self, mgr):
        make_backups(mgr, 5)
        assert [s.id for s in mgr.list_backups("game", count=2)] == [5, 4]

    def test_list_empty(self, mgr):
        assert mgr.list_backups("game") == []


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------

class TestRestore:
    def test_round_trip(self, mgr, base):
        snapshot, _ = mgr.create_backup("game")

        (base / "a.txt").write_text("corrupted")
        (base / "sub" / "b.txt").unlink()
        (base / "new.txt").write_text("created after backup")

        result = mgr.restore_backup("game", snapshot.id)

        assert (base / "a.txt").read_text() == "original a"
        assert (base / "sub" / "b.txt").read_text() == "original b"
        assert (base / "keep.log").read_text() == "unrelated"
        assert (base / "new.txt").read_text() == "created after backup"
        assert result.restored == ["a.txt", "sub/b.txt"]

    def test_restore_deleted_subdirectory(self, mgr, base):
        snapshot, _ = mgr.create_backup("game")
        (base / "sub" / "b.txt").unlink()
        (base / "sub").rmdir()
        mgr.restore_backup("game", snapshot.id)
        assert (base / "sub" / "b.txt").read_text() == "original b"

    def test_restore_latest(self, mgr, base):
        mgr.create_backup("game")
        (base / "a.txt").write_text("second version")
        mgr.create_backup("game")
        (base / "a.txt").write_text("broken")

        result = mgr.restore_backup("game")
        assert result.backup_id == 2
        assert (base / "a.txt").read_text() == "second version"

    def test_restore_latest_without_backups(self, mgr):
        with pytest.raises(BackupError, match="no backups"):
            mgr.restore_backup("game")

    def test_restore_unknown_id(self, mgr):
        mgr.create_backup("game")
        with pytest.raises(BackupNotFoundError):
            mgr.restore_backup("game", 99)

    def test_restore_with_missing_directory(self, mgr):
        snapshot, path = mgr.create_backup("game")
        shutil.rmtree(path)
        with pytest.raises(SnapshotIOError):
            mgr.restore_backup("game", snapshot.id)


# ---------------------------------------------------------------------------
# Delete and retain
# ---------------------------------------------------------------------------

class TestDeleteAndRetain:
    def test_delete_one(self, mgr):
        snapshot, path = mgr.create_backup("game")
        mgr.delete_one_backup("game", snapshot.id)
        assert mgr.store.get("game", snapshot.id) is None
        assert not path.exists()

    def test_delete_all(self, mgr, config):
        make_backups(mgr, 3)
        assert mgr.delete_all_backups("game") == 3
        assert mgr.list_backups("game") == []
        assert not (config.saves_dir / "game").exists()

    def test_retain_example(self, mgr):
        make_backups(mgr, 4)
        result = mgr.retain("game", 2)
        assert result.deleted == [1, 2]
        assert result.kept == [3, 4]
        assert sorted(s.id for s in mgr.list_backups("game")) == [3, 4]

    @pytest.mark.parametrize("n,k", [(5, 0), (5, 2), (3, 2)])
    def test_retain_round_trip_and_idempotence(self, mgr, n, k):
        created = make_backups(mgr, n)
        mgr.retain("game", k)

        remaining = mgr.list_backups("game")
        assert len(remaining) == k
        newest = sorted(created, key=lambda s: s.timestamp)[n - k:]
        assert {s.id for s in remaining} == {s.id for s in newest}

        again = mgr.retain("game", k)
        assert again.nothing_to_delete
        assert again.deleted == []

    def test_retain_nothing_existed(self, mgr):
        result = mgr.retain("game", 3)
        assert result.nothing_existed
        assert result.nothing_to_delete

    def test_retain_best_effort(self, mgr, monkeypatch):
        make_backups(mgr, 4)
        real_delete = mgr.store.delete_one

        def flaky_delete(profile_name, backup_id):
            if backup_id == 1:
                raise SnapshotIOError("busy", ledger_mutated=True)
            real_delete(profile_name, backup_id)

        monkeypatch.setattr(mgr.store, "delete_one", flaky_delete)
        result = mgr.retain("game", 1)

        assert result.deleted == [2, 3]
        assert list(result.failed) == [1]
        assert not result.ok


# ---------------------------------------------------------------------------
# Watcher interaction
# ---------------------------------------------------------------------------

class TestWatcherGuard:
    @pytest.fixture
    def foreign_lock(self, config, monkeypatch):
        lock = WatcherLock(config, "game")
        lock.path.parent.mkdir(parents=True, exist_ok=True)
        lock.path.write_text("4242")
        monkeypatch.setattr("savefile.watch.lock._pid_alive", lambda pid: pid == 4242)
        return lock

    def test_restore_refused_while_watched(self, mgr, foreign_lock):
        snapshot, _ = mgr.create_backup("game")
        with pytest.raises(BackupError, match="being watched"):
            mgr.restore_backup("game", snapshot.id)

    def test_delete_refused_while_watched(self, mgr, foreign_lock):
        snapshot, _ = mgr.create_backup("game")
        with pytest.raises(BackupError):
            mgr.delete_one_backup("game", snapshot.id)
        with pytest.raises(BackupError):
            mgr.delete_all_backups("game")
        with pytest.raises(BackupError):
            mgr.retain("game", 0)

    def test_force_overrides_lock(self, mgr, foreign_lock, base):
        snapshot, _ = mgr.create_backup("game")
        (base / "a.txt").write_text("changed")
        mgr.restore_backup("game", snapshot.id, force=True)
        assert (base / "a.txt").read_text() == "original a"

    def test_create_allowed_while_watched(self, mgr, foreign_lock):
        snapshot, _ = mgr.create_backup("game")
        assert snapshot.id == 1


class TestWatch:
    def test_watch_holds_lock_and_releases(self, mgr, config):
        stop = threading.Event()
        stop.set()
        mgr.watch("game", stop_event=stop)
        assert WatcherLock(config, "game").holder() is None

    def test_watch_negative_delay_profile(self, mgr, config, base):
        path = config.profiles_dir / "g.json"
        path.write_text(f'{{"base": "{base.as_posix()}", "include": ["*.txt"], "delay": -1}}')
        with pytest.raises(ProfileError):
            mgr.watch("g", stop_event=threading.Event())
        assert WatcherLock(config, "g").holder() is None

    def test_watch_unknown_profile(self, mgr):
        with pytest.raises(NoSuchProfileError):
            mgr.watch("nope", stop_event=threading.Event())
