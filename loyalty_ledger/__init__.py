"""
Loyalty Ledger
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.errors import ErrorCode, bad_request, error_response, internal_error, ledger_error_response, not_found
from .utils.exceptions import LedgerError
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    CORS(
        app,
        origins=app.config['CORS_ORIGINS'],
        allow_headers=['Content-Type', 'Authorization', 'X-Auth-Subject', 'X-Auth-Role'],
    )

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'loyalty-ledger'}

    logger.info(f'Loyalty ledger app created ({config_name})')
    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.transactions import transactions_bp
    from .api.users import users_bp
    from .api.promotions import promotions_bp

    app.register_blueprint(transactions_bp, url_prefix='/transactions')
    app.register_blueprint(users_bp, url_prefix='/users')
    app.register_blueprint(promotions_bp, url_prefix='/promotions')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""

    @app.errorhandler(LedgerError)
    def ledger_error(error):
        return ledger_error_response(error)

    @app.errorhandler(400)
    def handle_bad_request(error):
        return bad_request('Bad request')

    @app.errorhandler(404)
    def handle_not_found(error):
        return not_found('Not found')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('Method not allowed', ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(500)
    def handle_internal_error(error):
        db.session.rollback()
        return internal_error()
