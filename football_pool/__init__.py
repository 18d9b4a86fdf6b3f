import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

logger = logging.getLogger(__name__)

db = SQLAlchemy()
cache = Cache()
migrate = Migrate()


def create_app(config_name=None, config_object=None, start_sync=None):
    """
    Build the Flask application.

    Args:
        config_name: key into the config mapping (defaults to FLASK_CONFIG)
        config_object: ready-made configuration object, overrides config_name
        start_sync: start the background sync service (defaults to not TESTING)
    """
    from config import config

    app = Flask(__name__)

    if config_object is None:
        if config_name is None:
            config_name = os.environ.get("FLASK_CONFIG", "default")
        config_object = config[config_name]()

    app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)

    # Setup logging
    from football_pool.utils.logging_config import setup_logging

    setup_logging(app)

    # Import and register blueprints
    from football_pool.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Wire services; every component receives the store explicitly
    from football_pool.services.odds_service import OddsService
    from football_pool.services.sync_service import SyncService
    from football_pool.store import Store

    store = Store(db.session)
    odds_service = OddsService(store, app.config)
    sync_service = SyncService(app, store, odds_service=odds_service)

    app.extensions["store"] = store
    app.extensions["odds_service"] = odds_service
    app.extensions["sync_service"] = sync_service

    if start_sync is None:
        start_sync = not app.config.get("TESTING", False)
    if start_sync:
        sync_service.start()

    show_config_summary(app)

    return app


def show_config_summary(app):
    """Log the effective configuration (without secrets)"""
    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    db_kind = db_url.split("://")[0] if "://" in db_url else "Unknown"

    logger.info(
        f"Football pool starting with '{app.config.get('ENV_NAME')}' environment "
        f"(database: {db_kind}, season: {app.config.get('ESPN_SEASON_YEAR')}, "
        f"sync enabled: {app.config.get('ESPN_SYNC_ENABLED')})"
    )
    if not app.config.get("THEODDSAPI_API_KEY"):
        logger.warning("THEODDSAPI_API_KEY not set; spread refreshes will be skipped")


def register_error_handlers(app):
    """Register global error handlers"""
    from football_pool.errors import PoolError

    @app.errorhandler(PoolError)
    def handle_pool_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{error.__class__.__name__}: {error.message}")
            db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"error": "Bad request"}), 400

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


from football_pool import models  # noqa: F401, E402 - imported for model registration
