"""Flask application exposing backup operations over JSON."""

import logging

from flask import Flask

from savefile.api.routes import api, init_routes
from savefile.config.settings import SavefileConfig
from savefile.service.backup_manager import BackupManager

logger = logging.getLogger(__name__)


def create_app(config: SavefileConfig = None, backup_manager: BackupManager = None) -> Flask:
    """Application factory.

    Accepts a pre-built BackupManager (for testing) or builds one from
    ``config``.
    """
    if backup_manager is None:
        backup_manager = BackupManager(config)

    app = Flask(__name__)
    app.config["BACKUP_MANAGER"] = backup_manager

    init_routes(backup_manager)
    app.register_blueprint(api)

    logger.info("API ready (install root %s)", backup_manager.config.root)
    return app
