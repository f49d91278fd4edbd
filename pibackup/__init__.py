import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask
from flask_sqlalchemy import SQLAlchemy


__version__ = '1.0.0'

# Initialize extensions
db = SQLAlchemy()

# Same layout as the per-run backup log lines
CONSOLE_LOG_FORMAT = '[%(asctime)s] %(message)s'
CONSOLE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(app):
    """Configure application logging"""

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_LOG_FORMAT, CONSOLE_DATE_FORMAT))
    handlers = [console_handler]

    # File handler
    log_dir = app.config.get('APP_LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'pibackup.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=handlers)

    app.logger.setLevel(log_level)
    app.logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('PIBACKUP_ENV', 'production')

    from pibackup.config import config
    app.config.from_object(config[config_name])

    # Optional settings file layered on top of the environment
    app.config.from_envvar('PIBACKUP_SETTINGS', silent=True)

    # Configure logging
    configure_logging(app)

    # Ensure the database directory exists
    db_uri = app.config['SQLALCHEMY_DATABASE_URI']
    if db_uri.startswith('sqlite:///') and ':memory:' not in db_uri:
        db_dir = os.path.dirname(db_uri.replace('sqlite:///', ''))
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    # Register blueprints
    from pibackup.routes import status_routes, history_routes
    app.register_blueprint(status_routes.bp)
    app.register_blueprint(history_routes.bp)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    # Initialize database schema
    from pibackup import models
    from pibackup.migrations import init_database_schema
    init_database_schema(app)

    # Initialize and start scheduler (only when enabled and in the designated worker)
    from pibackup.scheduler import init_scheduler, start_scheduler, stop_scheduler
    import atexit

    is_reloader_child = os.environ.get('WERKZEUG_RUN_MAIN') == 'true'
    is_development = app.config.get('DEBUG', False)
    is_scheduler_worker = os.environ.get('SCHEDULER_WORKER', 'true').lower() == 'true'

    # Scheduler initialization logic:
    # - Development mode: Only in Flask reloader child process (not parent)
    # - Production mode: Only in designated scheduler worker (SCHEDULER_WORKER=true)
    should_init_scheduler = False

    if app.config.get('SCHEDULER_ENABLED', False):
        if is_development:
            should_init_scheduler = is_reloader_child
        else:
            should_init_scheduler = is_scheduler_worker

    if should_init_scheduler:
        app.logger.info("Initializing scheduler in this process...")
        init_scheduler(app)
        start_scheduler()
        atexit.register(stop_scheduler)
    else:
        app.logger.debug("Scheduler initialization skipped in this process")

    return app
