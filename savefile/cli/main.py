"""Command-line interface.

Usage:
    savefile profile list [--prefix PREFIX]
    savefile profile create -n NAME --base DIR
    savefile profile delete -n NAME
    savefile backup create -n NAME
    savefile backup list -n NAME [-c COUNT]
    savefile backup restore -n NAME [-i ID] [--yes] [--force]
    savefile backup delete -n NAME [-i ID] [--yes] [--force]
    savefile backup retain -n NAME -c COUNT [--yes] [--force]
    savefile watch -n NAME
    savefile serve [--host HOST] [--port PORT]
"""

import argparse
import logging
import os
import signal
import sys
import threading

from savefile.config.settings import load_config
from savefile.core.errors import SavefileError
from savefile.profile.profile import create_profile, delete_profile, list_profiles
from savefile.service.backup_manager import BackupManager

logger = logging.getLogger("savefile")


def confirm(message: str, assume_yes: bool = False) -> bool:
    """Ask a yes/no question on stdin. Anything but y/yes means no."""
    if assume_yes:
        return True
    try:
        answer = input(f"{message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="savefile",
        description="Change-triggered backups of save files",
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to config.json (default: <home>/config.json if present)",
    )
    parser.add_argument(
        "--home",
        default=None,
        help="Install root (default: $SAVEFILE_HOME or ~/.savefile)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # profile
    profile = sub.add_parser("profile", help="Manage profiles")
    profile_sub = profile.add_subparsers(dest="action", required=True)
    p = profile_sub.add_parser("list", help="List all profiles")
    p.add_argument("-p", "--prefix", default=None, help="Only names starting with this")
    p = profile_sub.add_parser("create", help="Add a new profile")
    p.add_argument("-n", "--name", required=True)
    p.add_argument("-b", "--base", required=True, help="Directory the includes are relative to")
    p = profile_sub.add_parser("delete", help="Remove a profile")
    p.add_argument("-n", "--name", required=True)

    # backup
    backup = sub.add_parser("backup", help="Manage backups")
    backup_sub = backup.add_subparsers(dest="action", required=True)
    p = backup_sub.add_parser("create", help="Create a new backup")
    p.add_argument("-n", "--name", required=True)
    p = backup_sub.add_parser("list", help="List backups, newest first")
    p.add_argument("-n", "--name", required=True)
    p.add_argument("-c", "--count", type=int, default=None)
    for action, help_text in (
        ("restore", "Restore a backup (latest if no id)"),
        ("delete", "Delete one backup, or all if no id"),
    ):
        p = backup_sub.add_parser(action, help=help_text)
        p.add_argument("-n", "--name", required=True)
        p.add_argument("-i", "--id", type=int, default=None)
        p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
        p.add_argument("--force", action="store_true", help="Proceed even if a watcher is running")
    p = backup_sub.add_parser("retain", help="Keep only the COUNT most recent backups")
    p.add_argument("-n", "--name", required=True)
    p.add_argument("-c", "--count", type=int, required=True)
    p.add_argument("-y", "--yes", action="store_true")
    p.add_argument("--force", action="store_true")

    # watch
    p = sub.add_parser("watch", help="Automatically back up files on change")
    p.add_argument("-n", "--name", required=True)

    # serve
    p = sub.add_parser("serve", help="Run the JSON API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=5000)

    return parser


# ----------------------------------------------------------------------
# Command handlers
# ----------------------------------------------------------------------

def profile_cmd(args, config) -> int:
    if args.action == "list":
        profiles = list_profiles(config, prefix=args.prefix)
        for name, path in profiles:
            print(f"{name}\t{path.as_posix()}")
        print(f"{len(profiles)} profile(s)")
    elif args.action == "create":
        path = create_profile(config, args.name, args.base)
        print(f"created profile {args.name} at {path.as_posix()}")
    elif args.action == "delete":
        if not confirm(f"Delete profile {args.name}? Backups are kept."):
            return 0
        delete_profile(config, args.name)
        print(f"deleted profile {args.name}")
    return 0


def backup_cmd(args, mgr: BackupManager) -> int:
    name = args.name
    if args.action == "create":
        snapshot, path = mgr.create_backup(name)
        print(f"created backup {snapshot.id} for profile {name}")
        print(f"saved to {path.as_posix()}")
        return 0

    if args.action == "list":
        total = len(mgr.store.list_snapshots(name))
        backups = mgr.list_backups(name, count=args.count)
        print("ID\tTimestamp")
        for b in backups:
            print(f"{b.id}\t{b.timestamp.isoformat(sep=' ', timespec='seconds')}")
        print(f"Displayed {len(backups)} of {total} backups")
        return 0

    if args.action == "restore":
        if not (confirm("This will overwrite your current files. Continue?", args.yes)
                and confirm("Is the watcher currently stopped?", args.yes)):
            return 0
        result = mgr.restore_backup(name, args.id, force=args.force)
        print(f"restored backup {result.backup_id} ({len(result.restored)} files) "
              f"to {result.destination}")
        return 0

    if args.action == "delete":
        if not confirm("This will delete the backup(s) permanently. Continue?", args.yes):
            return 0
        if args.id is None:
            count = mgr.delete_all_backups(name, force=args.force)
            print(f"deleted all {count} backup(s) of {name}")
        else:
            mgr.delete_one_backup(name, args.id, force=args.force)
            print(f"deleted backup {args.id} of {name}")
        return 0

    if args.action == "retain":
        if args.count < 0:
            print("error: count must be non-negative", file=sys.stderr)
            return 1
        if not confirm(f"Delete all but the {args.count} most recent backup(s)?", args.yes):
            return 0
        result = mgr.retain(name, args.count, force=args.force)
        if result.nothing_existed:
            print("No backups exist")
        elif result.nothing_to_delete:
            print("No backups to delete")
        else:
            for backup_id in result.deleted:
                print(f"Deleted backup {backup_id}")
            for backup_id, error in result.failed.items():
                print(f"Failed to delete backup {backup_id}: {error}", file=sys.stderr)
        return 0 if result.ok else 1
    return 2


def watch_cmd(args, mgr: BackupManager) -> int:
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    def report(snapshot):
        print(f"{args.name}: created backup {snapshot.id}", flush=True)

    mgr.watch(args.name, stop_event=stop_event, on_backup=report)
    return 0


def serve_cmd(args, mgr: BackupManager) -> int:
    from savefile.api.app import create_app

    app = create_app(backup_manager=mgr)
    logger.info("Serving API on http://%s:%d", args.host, args.port)
    app.run(host=args.host, port=args.port, debug=False)
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    mgr = None
    try:
        config = load_config(args.config, install_root=args.home)
        if args.command == "profile":
            return profile_cmd(args, config)
        mgr = BackupManager(config)
        if args.command == "backup":
            return backup_cmd(args, mgr)
        if args.command == "watch":
            return watch_cmd(args, mgr)
        if args.command == "serve":
            return serve_cmd(args, mgr)
    except SavefileError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if mgr is not None:
            mgr.close()
    return 2


if __name__ == "__main__":
    sys.exit(main())
