"""
Status Overlay - Live per-contact communication status.

Backed by a PostgreSQL table keyed by roster id:

    CREATE TABLE contact_status (
        contact_id          TEXT PRIMARY KEY,
        estado              TEXT NOT NULL DEFAULT 'Incomunicado',
        ultimo_comunicacion TIMESTAMPTZ,
        comunicado_por      TEXT
    );

Writes merge onto the existing row (only the given columns change) and are
announced with NOTIFY so every listening process re-reads the overlay.
Subscribers always receive a full snapshot mapping, never a delta.
"""

import logging
import select
import time
from typing import Callable, Dict, List, Optional, Any

import psycopg2
from psycopg2 import sql

from outreachcrm.config import config
from outreachcrm.db.connection import connect, get_db_cursor
from outreachcrm.models import (
    CONTACT_STATES, STATE_NOT_CONTACTED, StatusRecord,
    OverlayUnavailable, OverlayWriteFailed,
)
from outreachcrm.bus.events import bus as default_bus, EVENT_STATUS_CHANGED, EVENT_STATUS_WRITE_FAILED

logger = logging.getLogger(__name__)

# Allowlist for upserts; column names never come from user input directly
_STATUS_COLUMNS = ('estado', 'ultimo_comunicacion', 'comunicado_por')

Snapshot = Dict[str, StatusRecord]


def _validate_columns(updates: Dict[str, Any]) -> None:
    """Raise ValueError if any key in updates is not a status column."""
    invalid = set(updates.keys()) - set(_STATUS_COLUMNS)
    if invalid:
        raise ValueError(f"Invalid status fields: {invalid}")


def row_to_status(row: Dict[str, Any]) -> StatusRecord:
    """Convert a contact_status row to a StatusRecord, defaulting unknown states."""
    estado = row.get('estado') or STATE_NOT_CONTACTED
    if estado not in CONTACT_STATES:
        logger.warning(f"Unknown estado {estado!r} for contact {row.get('contact_id')}, treating as {STATE_NOT_CONTACTED}")
        estado = STATE_NOT_CONTACTED
    return StatusRecord(
        estado=estado,
        ultimo_comunicacion=row.get('ultimo_comunicacion'),
        comunicado_por=row.get('comunicado_por'),
    )


class Subscription:
    """Handle returned by StatusOverlay.subscribe(). Call unsubscribe() when the view goes away."""

    def __init__(self, overlay: 'StatusOverlay', callback: Callable[[Snapshot], None]):
        self._overlay = overlay
        self.callback = callback
        self.active = True

    def unsubscribe(self):
        if self.active:
            self.active = False
            self._overlay._remove(self)

    def __call__(self):
        self.unsubscribe()


class StatusOverlay:
    """
    Read / write / subscribe access to the contact_status table.

    The process is single-threaded: notifications from other writers are picked
    up by calling poll(), typically from the view's event loop.
    """

    def __init__(self, table: Optional[str] = None, channel: Optional[str] = None, bus=None):
        self.table = table or config.STATUS_TABLE
        self.channel = channel or self.table
        self.bus = bus or default_bus
        self._subscriptions: List[Subscription] = []
        self._listen_conn = None

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        """Read every status row. Raises OverlayUnavailable on database errors."""
        query = sql.SQL(
            "SELECT contact_id, estado, ultimo_comunicacion, comunicado_por FROM {}"
        ).format(sql.Identifier(self.table))
        try:
            with get_db_cursor() as cur:
                cur.execute(query)
                rows = cur.fetchall()
        except psycopg2.Error as e:
            logger.error(f"Status overlay read failed: {e}")
            raise OverlayUnavailable(f"Could not read status overlay: {e}") from e

        logger.debug(f"snapshot: {len(rows)} status rows")
        return {str(row['contact_id']): row_to_status(row) for row in rows}

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert(self, contact_id: str, updates: Dict[str, Any]) -> None:
        """
        Merge the given status fields onto the contact's row, creating it if needed.
        Columns not present in updates keep their stored values.
        Raises OverlayWriteFailed on database errors or timeouts.
        """
        if not updates:
            raise ValueError("upsert needs at least one status field")

        _validate_columns(updates)

        columns = list(updates.keys())
        query = sql.SQL(
            "INSERT INTO {table} (contact_id, {cols}) VALUES (%(contact_id)s, {vals}) "
            "ON CONFLICT (contact_id) DO UPDATE SET {sets}"
        ).format(
            table=sql.Identifier(self.table),
            cols=sql.SQL(', ').join(sql.Identifier(c) for c in columns),
            vals=sql.SQL(', ').join(sql.Placeholder(c) for c in columns),
            sets=sql.SQL(', ').join(
                sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c in columns
            ),
        )
        params = dict(updates, contact_id=contact_id)

        try:
            with get_db_cursor() as cur:
                cur.execute(query, params)
                cur.execute("SELECT pg_notify(%s, %s)", (self.channel, contact_id))
        except psycopg2.Error as e:
            logger.error(f"Status write failed for contact {contact_id}: {e}")
            self.bus.emit(EVENT_STATUS_WRITE_FAILED, {'contact_id': contact_id, 'error': str(e)})
            raise OverlayWriteFailed(f"Could not write status for contact {contact_id}: {e}") from e

        logger.info(f"Upserted status for contact {contact_id}: {columns}")
        self.bus.emit(EVENT_STATUS_CHANGED, {'contact_id': contact_id, 'updates': updates})
        self._dispatch()

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, on_change: Callable[[Snapshot], None]) -> Subscription:
        """
        Register on_change and immediately deliver the current snapshot to it.
        The first subscriber starts LISTENing for writes from other processes.
        Raises OverlayUnavailable if the overlay cannot be read.
        """
        current = self.snapshot()
        subscription = Subscription(self, on_change)
        self._subscriptions.append(subscription)
        if self._listen_conn is None:
            self._listen()
        on_change(current)
        return subscription

    def poll(self, timeout: float = 0.0) -> int:
        """
        Wait up to timeout seconds for change notifications from other writers.
        If any arrived, subscribers receive one fresh snapshot.
        Returns the number of notifications drained.

        A lost LISTEN connection is dropped and reopened on the next call,
        which then re-delivers a snapshot; database errors never escape.
        """
        if self._listen_conn is None:
            if not self._subscriptions:
                return 0
            if not self._listen():
                time.sleep(timeout)
                return 0
            # Changes made while disconnected were never announced
            logger.info(f"Listening on {self.channel} again")
            self._dispatch()
            return 0

        try:
            ready, _, _ = select.select([self._listen_conn], [], [], timeout)
            if not ready:
                return 0
            self._listen_conn.poll()
        except (psycopg2.Error, OSError) as e:
            logger.warning(f"Lost LISTEN connection on {self.channel}, reconnecting on next poll: {e}")
            self._unlisten()
            return 0

        count = len(self._listen_conn.notifies)
        del self._listen_conn.notifies[:]
        if count:
            logger.debug(f"poll: {count} status notifications")
            self._dispatch()
        return count

    def close(self):
        """Stop listening and drop every subscriber."""
        for subscription in list(self._subscriptions):
            subscription.active = False
        self._subscriptions.clear()
        self._unlisten()

    def _listen(self) -> bool:
        conn = None
        try:
            conn = connect(autocommit=True)
            with conn.cursor() as cur:
                cur.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))
        except psycopg2.Error as e:
            logger.warning(f"LISTEN on {self.channel} failed, only local writes will be seen: {e}")
            if conn is not None:
                conn.close()
            self._listen_conn = None
            return False
        self._listen_conn = conn
        return True

    def _unlisten(self):
        if self._listen_conn is not None:
            self._listen_conn.close()
            self._listen_conn = None
            logger.debug(f"Stopped listening on {self.channel}")

    def _remove(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        if not self._subscriptions:
            self._unlisten()

    def _dispatch(self):
        if not self._subscriptions:
            return
        try:
            current = self.snapshot()
        except OverlayUnavailable as e:
            # The write itself succeeded; the next notification re-delivers
            logger.warning(f"Skipping change dispatch: {e}")
            return
        for subscription in list(self._subscriptions):
            if subscription.active:
                subscription.callback(current)
