"""
Flask application factory.
"""
import os
import logging
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from treasure_hunt.config import HuntConfig
from treasure_hunt.config_manager import ConfigManager
from treasure_hunt.errors import TreasureHuntError
from treasure_hunt.hunt import TreasureHunt
from treasure_hunt.remote import TreasureServerClient

from .extensions import db, cors, migrate
from .config import config

logger = logging.getLogger(__name__)


def create_app(
    config_name: str = None,
    hunt_config: Optional[HuntConfig] = None,
    client: Optional[TreasureServerClient] = None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Load config
    env = config_name or os.getenv('FLASK_ENV', 'development')
    app.config.from_object(config.get(env, config['default']))

    # Treasure hunt settings
    if hunt_config is None:
        manager = ConfigManager(Path(app.config['HUNT_CONFIG_PATH']))
        manager.load_or_default()
        hunt_config = manager.apply_env_overrides()
        hunt_config = hunt_config.resolve_paths(Path(app.config['HUNT_ROOT']))
    _configure_logging(hunt_config.debug_logging)

    # Init extensions
    db.init_app(app)
    cors.init_app(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}})
    migrate.init_app(app, db)

    from .services.authoring_sessions import SessionRegistry
    from .services.container import EXTENSION_KEY, HuntServices
    from .services.team_store import TeamStore

    hunt = TreasureHunt(config=hunt_config, client=client)
    app.extensions[EXTENSION_KEY] = HuntServices(
        hunt=hunt,
        sessions=SessionRegistry(hunt),
        teams=TeamStore(),
    )

    # Register blueprints
    from .api.health import bp as health_bp
    from .api.treasures import bp as treasures_bp
    from .api.authoring import bp as authoring_bp
    from .api.teams import bp as teams_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(treasures_bp, url_prefix='/api/treasures')
    app.register_blueprint(authoring_bp, url_prefix='/api/authoring')
    app.register_blueprint(teams_bp, url_prefix='/api/teams')

    _register_error_handlers(app)

    # Create tables in dev
    with app.app_context():
        db.create_all()

    if not hunt_config.server.base_url:
        logger.warning("No treasure server configured; publishing locally only")

    return app


def _configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('treasure_hunt').setLevel(level)
    logging.getLogger('app').setLevel(level)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(TreasureHuntError)
    def handle_domain_error(exc: TreasureHuntError):
        logger.info(f"{exc.code}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({
            'error': 'invalid_request',
            'message': 'Request failed validation',
            'details': exc.errors(include_url=False, include_context=False, include_input=False),
        }), 400

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({'error': exc.name.lower().replace(' ', '_'), 'message': exc.description}), exc.code
        logger.exception("Unhandled error")
        return jsonify({'error': 'internal_error', 'message': str(exc)}), 500
