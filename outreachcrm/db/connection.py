"""
Database Connection Management
PostgreSQL connections for the status overlay, with bounded timeouts.
"""

import psycopg2
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager
import logging

from outreachcrm.config import config

logger = logging.getLogger(__name__)


def _timeout_ms() -> int:
    return int(config.OVERLAY_WRITE_TIMEOUT_SECONDS * 1000)


def connect(autocommit: bool = False):
    """
    Open a raw connection to the status database.
    Both connecting and every statement are bounded by OVERLAY_WRITE_TIMEOUT_SECONDS.
    """
    conn = psycopg2.connect(
        config.STATUS_DATABASE_URL,
        connect_timeout=max(1, int(config.OVERLAY_WRITE_TIMEOUT_SECONDS)),
        options=f"-c statement_timeout={_timeout_ms()}",
    )
    conn.autocommit = autocommit
    logger.debug("Database connection established")
    return conn


@contextmanager
def get_db_connection():
    """
    Context manager for database connections.
    Automatically commits on success, rollbacks on error, and closes connection.

    Usage:
        with get_db_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM contact_status")
            results = cur.fetchall()
    """
    conn = None
    try:
        conn = connect()
        yield conn
        conn.commit()
        logger.debug("Transaction committed")
    except Exception as e:
        if conn:
            conn.rollback()
            logger.error(f"Transaction rolled back due to error: {e}")
        raise
    finally:
        if conn:
            conn.close()
            logger.debug("Database connection closed")


@contextmanager
def get_db_cursor(dict_cursor=True):
    """
    Context manager for database cursor.
    Returns RealDictCursor by default for row-as-dict results.

    Usage:
        with get_db_cursor() as cur:
            cur.execute("SELECT * FROM contact_status WHERE contact_id = %s", ('42',))
            status = cur.fetchone()
    """
    with get_db_connection() as conn:
        cursor_factory = RealDictCursor if dict_cursor else None
        cur = conn.cursor(cursor_factory=cursor_factory)
        try:
            yield cur
        finally:
            cur.close()
