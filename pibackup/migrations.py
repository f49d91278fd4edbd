"""
Database schema setup for pibackup.

Simple schema bootstrap without requiring Alembic.
"""

import logging
from sqlalchemy import inspect
from pibackup import db

logger = logging.getLogger(__name__)


def init_database_schema(app):
    """
    Initialize database schema.

    Creates any missing tables. It's designed to be called from several
    Gunicorn workers (or a CLI run racing a served app) without conflicts.
    """
    with app.app_context():
        inspector = inspect(db.engine)
        existing_tables = set(inspector.get_table_names())
        missing = [name for name in db.metadata.tables if name not in existing_tables]

        if not missing:
            return

        logger.debug(f"Creating missing tables: {', '.join(sorted(missing))}")
        try:
            db.create_all()
        except Exception as e:
            # If another worker beat us to it, that's okay
            logger.warning(f"Failed to create database schema: {e}")
