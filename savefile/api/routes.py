"""API route handlers.

    GET    /api/status
    GET    /api/profiles
    GET    /api/profiles/<name>/backups         - list (newest first, ?count=)
    POST   /api/profiles/<name>/backups         - create a backup now
    DELETE /api/profiles/<name>/backups         - delete all backups
    DELETE /api/profiles/<name>/backups/<id>    - delete one backup
    POST   /api/profiles/<name>/restore         - restore {"id": n} or latest
    POST   /api/profiles/<name>/retain          - keep {"count": n} newest
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from savefile.core.errors import (
    BackupError,
    BackupNotFoundError,
    NoSuchProfileError,
    ProfileError,
    SavefileError,
)
from savefile.profile.profile import list_profiles

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

# Set by app.py at init time via init_routes()
_backup_manager = None


def init_routes(backup_manager):
    """Wire up shared application state into the route handlers."""
    global _backup_manager
    _backup_manager = backup_manager


@api.errorhandler(SavefileError)
def handle_savefile_error(exc):
    if isinstance(exc, (BackupNotFoundError, NoSuchProfileError)):
        status = 404
    elif isinstance(exc, BackupError):
        status = 409
    elif isinstance(exc, ProfileError):
        status = 400
    else:
        logger.error("Backup operation failed: %s", exc)
        status = 500
    return jsonify({"error": str(exc), "type": type(exc).__name__}), status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _bad_request(message: str):
    return jsonify({"error": message}), 400


# ------------------------------------------------------------------
# Status and profiles
# ------------------------------------------------------------------

@api.route("/status", methods=["GET"])
def get_status():
    config = _backup_manager.config
    return jsonify({
        "status": "running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "install_root": str(config.root),
        "profiles": len(list_profiles(config)),
    })


@api.route("/profiles", methods=["GET"])
def get_profiles():
    prefix = request.args.get("prefix")
    profiles = [
        {"name": name, "path": str(path)}
        for name, path in list_profiles(_backup_manager.config, prefix=prefix)
    ]
    return jsonify({"profiles": profiles, "total": len(profiles)})


# ------------------------------------------------------------------
# Backups
# ------------------------------------------------------------------

@api.route("/profiles/<name>/backups", methods=["GET"])
def get_backups(name):
    count = request.args.get("count", type=int)
    total = len(_backup_manager.store.list_snapshots(name))
    backups = _backup_manager.list_backups(name, count=count)
    return jsonify({
        "backups": [b.to_dict() for b in backups],
        "displayed": len(backups),
        "total": total,
    })


@api.route("/profiles/<name>/backups", methods=["POST"])
def create_backup(name):
    snapshot, path = _backup_manager.create_backup(name)
    return jsonify({"backup": snapshot.to_dict(), "path": str(path)}), 201


@api.route("/profiles/<name>/backups", methods=["DELETE"])
def delete_all_backups(name):
    force = bool(_json_body().get("force", False))
    deleted = _backup_manager.delete_all_backups(name, force=force)
    return jsonify({"deleted": deleted})


@api.route("/profiles/<name>/backups/<int:backup_id>", methods=["DELETE"])
def delete_backup(name, backup_id):
    force = bool(_json_body().get("force", False))
    _backup_manager.delete_one_backup(name, backup_id, force=force)
    return jsonify({"deleted": backup_id})


@api.route("/profiles/<name>/restore", methods=["POST"])
def restore_backup(name):
    data = _json_body()
    backup_id = data.get("id")
    if backup_id is not None and (isinstance(backup_id, bool) or not isinstance(backup_id, int)):
        return _bad_request("'id' must be an integer")
    result = _backup_manager.restore_backup(
        name, backup_id, force=bool(data.get("force", False)),
    )
    return jsonify(result.to_dict())


@api.route("/profiles/<name>/retain", methods=["POST"])
def retain_backups(name):
    data = _json_body()
    count = data.get("count")
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        return _bad_request("'count' must be a non-negative integer")
    result = _backup_manager.retain(name, count, force=bool(data.get("force", False)))
    return jsonify(result.to_dict()), (200 if result.ok else 207)
