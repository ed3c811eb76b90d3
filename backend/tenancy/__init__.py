"""
Flask Application Factory for the tenant provisioning backend.

The create_app() function initializes the Flask application with:
- Configuration loading
- Database and migration setup for the tenant registry
- Tenancy services (connection manager, migration runner, provisioner, fleet migrator)
- Blueprint registration (organization webhook, health check)
- Error handlers
- Logging configuration
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask
from flask.logging import default_handler
from werkzeug.exceptions import HTTPException

from tenancy.config import config
from tenancy.errors import DatabaseConnectionError, TenancyError
from tenancy.extensions import db, migrate, tenancy
from tenancy.utils.responses import error_response, internal_error, service_unavailable


def create_app(config_name=None, services=None):
    """
    Application factory function to create and configure Flask app instance.

    Args:
        config_name: Configuration name ('development', 'production', 'testing')
                    If None, uses FLASK_ENV environment variable or defaults to 'development'
        services: Prebuilt TenancyServices to attach instead of building them
                  from the configuration (used by tests)

    Returns:
        Flask: Configured Flask application instance

    Example:
        app = create_app('production')
    """
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    config_class = config.get(config_name, config['default'])
    app.config.from_object(config_class)
    config_class.init_app(app)

    configure_logging(app)
    initialize_extensions(app, services)
    register_blueprints(app)
    register_error_handlers(app)
    register_shell_context(app)

    app.logger.info(f"Flask app created with config: {config_name}")
    app.logger.info(f"Debug mode: {app.config.get('DEBUG')}")

    return app


def initialize_extensions(app, services=None):
    """
    Initialize Flask extensions with the app instance.

    Extensions initialized:
        - SQLAlchemy (db): registry ORM
        - Flask-Migrate (migrate): registry table migrations
        - Tenancy services (app.extensions['tenancy'])
    """
    # Registry models must be imported for Flask-Migrate to see them
    from tenancy import models  # noqa: F401

    db.init_app(app)
    migrate.init_app(app, db)
    tenancy.init_app(app, services)

    app.logger.info("Extensions initialized: db, migrate, tenancy")


def register_blueprints(app):
    """
    Register Flask blueprints for API routes.

    Blueprints registered:
        - webhooks: organization lifecycle events (/api/webhooks)
        - health: registry health check (/health)
    """
    from tenancy.routes.health import health_bp
    from tenancy.routes.webhooks import webhooks_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(health_bp)
    app.logger.info("Registered blueprints: webhooks (/api/webhooks), health (/health)")


def register_error_handlers(app):
    """
    Register global error handlers with consistent JSON responses.

    Error handlers registered:
        - 400, 404, 405: client errors
        - DatabaseConnectionError: 503
        - TenancyError: 500 with the error message
        - Exception: catch-all 500
    """
    @app.errorhandler(400)
    def bad_request(error):
        return error_response(
            'BAD_REQUEST',
            str(error.description) if hasattr(error, 'description') else 'Bad request',
            status_code=400
        )

    @app.errorhandler(404)
    def not_found(error):
        return error_response('NOT_FOUND', 'The requested resource was not found', status_code=404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('METHOD_NOT_ALLOWED', 'The method is not allowed for this resource', status_code=405)

    @app.errorhandler(DatabaseConnectionError)
    def database_unavailable(error):
        app.logger.error(f"Database unavailable: {error}")
        return service_unavailable('Database unavailable')

    @app.errorhandler(TenancyError)
    def tenancy_error(error):
        app.logger.error(f"Tenancy error: {error}", exc_info=True)
        return internal_error(error.message, code='TENANCY_ERROR')

    @app.errorhandler(Exception)
    def handle_exception(error):
        if isinstance(error, HTTPException):
            return error_response(
                error.name.upper().replace(" ", "_"),
                error.description or error.name,
                status_code=error.code
            )

        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return internal_error('An unexpected error occurred')


def configure_logging(app):
    """
    Configure application logging.

    Sets up console logging and, when LOG_FILE is set, a rotating log file.

    Configuration:
        - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        - LOG_FORMAT: Log message format
        - LOG_FILE: Path to log file
        - LOG_MAX_BYTES: Maximum log file size before rotation
        - LOG_BACKUP_COUNT: Number of backup log files to keep
    """
    app.logger.removeHandler(default_handler)

    log_level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO').upper())
    formatter = logging.Formatter(
        app.config.get('LOG_FORMAT', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    log_file = app.config.get('LOG_FILE')
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=app.config.get('LOG_MAX_BYTES', 10485760),  # 10MB
            backupCount=app.config.get('LOG_BACKUP_COUNT', 5)
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # app.logger is the "tenancy" logger: every tenancy.* module logger
    # propagates to these handlers
    app.logger.setLevel(log_level)
    for handler in list(app.logger.handlers):
        app.logger.removeHandler(handler)
    for handler in handlers:
        app.logger.addHandler(handler)

    app.logger.info(f"Logging configured: level={logging.getLevelName(log_level)}, file={log_file}")


def register_shell_context(app):
    """Make db, Tenant and the tenancy services available in `flask shell`."""
    @app.shell_context_processor
    def make_shell_context():
        from tenancy.models.tenant import Tenant

        return {
            'db': db,
            'Tenant': Tenant,
            'services': app.extensions['tenancy'],
        }
