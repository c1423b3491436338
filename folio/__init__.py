"""
Flask application factory for the Folio digital library API.

Kuzu is the sole data store; authentication is bearer-token only.
"""

import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_login import LoginManager
from werkzeug.exceptions import HTTPException

from config import Config

from .domain.errors import LibraryError

logger = logging.getLogger(__name__)

login_manager = LoginManager()


@login_manager.request_loader
def load_user_from_request(req):
    """Resolve current_user from the Authorization header."""
    from .api_auth import load_user_from_request as _load
    return _load(req)


def _configure_logging(app: Flask) -> None:
    """Python logging level from LOG_LEVEL (default ERROR)."""
    log_level_name = str(app.config.get('LOG_LEVEL') or 'ERROR').upper()
    log_level = getattr(logging, log_level_name, logging.ERROR)
    logging.getLogger().setLevel(log_level)
    # Also set Flask app logger level
    app.logger.setLevel(log_level)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LibraryError)
    def handle_library_error(e: LibraryError):
        if e.status_code >= 500:
            app.logger.error(f"{e.code} on {request.method} {request.path}: {e.message}")
        else:
            app.logger.info(f"{e.code} ({e.status_code}) on {request.method} {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({
            'status': 'error',
            'message': e.description,
            'code': (e.name or 'http_error').lower().replace(' ', '_'),
        }), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        import traceback
        app.logger.error(f"Unhandled error on {request.method} {request.path}: {e}")
        app.logger.error(traceback.format_exc())
        return jsonify({
            'status': 'error',
            'message': 'Internal server error',
            'code': 'internal_error',
        }), 500


def create_app(config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__, static_folder=None, static_url_path=None)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    app.secret_key = app.config['SECRET_KEY']
    if not app.secret_key:
        raise RuntimeError("SECRET_KEY must be set in environment or config")

    # Point the process-wide Kuzu manager at this app's database
    from .utils.safe_kuzu_manager import reset_safe_kuzu_manager
    from .services import reset_all_services

    reset_safe_kuzu_manager(
        app.config['KUZU_DB_PATH'],
        buffer_pool_size=int(app.config.get('KUZU_BUFFER_POOL_SIZE') or 0),
        max_db_size=int(app.config.get('KUZU_MAX_DB_SIZE') or 0),
    )
    reset_all_services()

    login_manager.init_app(app)

    _register_error_handlers(app)

    from .api.auth import auth_api
    from .api.users import users_api
    from .api.books import books_api
    from .api.ai import ai_api
    from .admin import admin_api

    app.register_blueprint(auth_api)
    app.register_blueprint(users_api)
    app.register_blueprint(books_api)
    app.register_blueprint(ai_api)
    app.register_blueprint(admin_api)

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok', 'site': app.config.get('SITE_NAME', 'Folio')})

    app.logger.info(f"{app.config.get('SITE_NAME', 'Folio')} API ready (db={app.config['KUZU_DB_PATH']})")
    return app
