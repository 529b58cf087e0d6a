"""
Unit tests for outreachcrm/engine/status_overlay.py.

Strategy: patch status_overlay.get_db_cursor with a contextmanager yielding a MagicMock
cursor whose rows are plain dicts (as RealDictCursor returns them). The LISTEN
connection is patched at status_overlay.connect and select.select.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from outreachcrm.engine.status_overlay import StatusOverlay, row_to_status, _validate_columns
from outreachcrm.models import StatusRecord, OverlayUnavailable, OverlayWriteFailed
from outreachcrm.bus.events import EVENT_STATUS_CHANGED, EVENT_STATUS_WRITE_FAILED

WHEN = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)

ROWS = [
    {'contact_id': '1', 'estado': 'Comunicado', 'ultimo_comunicacion': WHEN, 'comunicado_por': 'Laura Gómez'},
    {'contact_id': '2', 'estado': 'Incomunicado', 'ultimo_comunicacion': None, 'comunicado_por': None},
]


def cursor_patch(cur):
    @contextmanager
    def _mock_ctx():
        yield cur
    return patch('outreachcrm.engine.status_overlay.get_db_cursor', _mock_ctx)


def _cursor(rows=None):
    cur = MagicMock()
    cur.fetchall.return_value = rows if rows is not None else ROWS
    return cur


@pytest.fixture
def mock_bus():
    return MagicMock()


@pytest.fixture
def overlay(mock_bus):
    return StatusOverlay(table='contact_status', bus=mock_bus)


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def test_row_to_status():
    status = row_to_status(ROWS[0])
    assert status == StatusRecord('Comunicado', WHEN, 'Laura Gómez')


def test_row_to_status_unknown_estado_defaults():
    status = row_to_status({'contact_id': '9', 'estado': 'Pendiente'})
    assert status.estado == 'Incomunicado'


def test_validate_columns_rejects_unknown_field():
    with pytest.raises(ValueError, match='Invalid status fields'):
        _validate_columns({'estado': 'Comunicado', 'contact_id': '3'})


# ---------------------------------------------------------------------------
# snapshot
# ---------------------------------------------------------------------------

def test_snapshot_maps_rows_by_contact_id(overlay):
    with cursor_patch(_cursor()):
        snapshot = overlay.snapshot()

    assert set(snapshot) == {'1', '2'}
    assert snapshot['1'].comunicado_por == 'Laura Gómez'
    assert snapshot['2'] == StatusRecord.default()


def test_snapshot_database_error_raises_overlay_unavailable(overlay):
    cur = _cursor()
    cur.execute.side_effect = psycopg2.OperationalError('could not connect')
    with cursor_patch(cur):
        with pytest.raises(OverlayUnavailable, match='could not connect'):
            overlay.snapshot()


# ---------------------------------------------------------------------------
# upsert
# ---------------------------------------------------------------------------

def test_upsert_executes_merge_and_notify(overlay, mock_bus):
    cur = _cursor()
    updates = {'estado': 'Comunicado', 'ultimo_comunicacion': WHEN, 'comunicado_por': 'Laura Gómez'}
    with cursor_patch(cur):
        overlay.upsert('7', updates)

    upsert_call, notify_call = cur.execute.call_args_list
    assert upsert_call[0][1] == dict(updates, contact_id='7')
    assert notify_call[0] == ("SELECT pg_notify(%s, %s)", ('contact_status', '7'))
    mock_bus.emit.assert_called_once_with(EVENT_STATUS_CHANGED, {'contact_id': '7', 'updates': updates})


def test_upsert_partial_update_only_sends_given_columns(overlay):
    cur = _cursor()
    with cursor_patch(cur):
        overlay.upsert('7', {'comunicado_por': 'Laura'})

    assert cur.execute.call_args_list[0][0][1] == {'comunicado_por': 'Laura', 'contact_id': '7'}


def test_upsert_empty_updates_raises(overlay):
    with pytest.raises(ValueError):
        overlay.upsert('7', {})


def test_upsert_invalid_column_raises_before_query(overlay):
    cur = _cursor()
    with cursor_patch(cur):
        with pytest.raises(ValueError):
            overlay.upsert('7', {'nombre': 'Ana'})
    cur.execute.assert_not_called()


def test_upsert_database_error_raises_overlay_write_failed(overlay, mock_bus):
    cur = _cursor()
    cur.execute.side_effect = psycopg2.OperationalError('canceling statement due to statement timeout')
    with cursor_patch(cur):
        with pytest.raises(OverlayWriteFailed, match='contact 7'):
            overlay.upsert('7', {'estado': 'Comunicado'})

    event, data = mock_bus.emit.call_args[0]
    assert event == EVENT_STATUS_WRITE_FAILED
    assert data['contact_id'] == '7'


# ---------------------------------------------------------------------------
# subscribe / poll
# ---------------------------------------------------------------------------

def test_subscribe_delivers_snapshot_and_listens(overlay):
    received = []
    conn = MagicMock()
    with cursor_patch(_cursor()), \
         patch('outreachcrm.engine.status_overlay.connect', return_value=conn) as mock_connect:
        subscription = overlay.subscribe(received.append)

    mock_connect.assert_called_once_with(autocommit=True)
    conn.cursor.return_value.__enter__.return_value.execute.assert_called_once()
    assert len(received) == 1
    assert received[0]['1'].estado == 'Comunicado'
    assert subscription.active


def test_subscribe_when_overlay_unreadable_raises(overlay):
    cur = _cursor()
    cur.execute.side_effect = psycopg2.OperationalError('down')
    with cursor_patch(cur), patch('outreachcrm.engine.status_overlay.connect') as mock_connect:
        with pytest.raises(OverlayUnavailable):
            overlay.subscribe(lambda snapshot: None)
    mock_connect.assert_not_called()


def test_listen_failure_still_subscribes(overlay):
    received = []
    with cursor_patch(_cursor()), \
         patch('outreachcrm.engine.status_overlay.connect', side_effect=psycopg2.OperationalError('no')):
        overlay.subscribe(received.append)
        assert overlay.poll(0) == 0
    assert len(received) == 1


def test_listen_statement_failure_closes_connection(overlay):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value.execute.side_effect = psycopg2.ProgrammingError('denied')
    with cursor_patch(_cursor()), patch('outreachcrm.engine.status_overlay.connect', return_value=conn):
        overlay.subscribe(lambda snapshot: None)
    conn.close.assert_called_once()


def test_lost_listen_connection_is_not_raised(overlay):
    received = []
    conn = MagicMock()
    conn.poll.side_effect = psycopg2.OperationalError('server closed the connection unexpectedly')
    with cursor_patch(_cursor()), \
         patch('outreachcrm.engine.status_overlay.connect', return_value=conn), \
         patch('outreachcrm.engine.status_overlay.select.select', return_value=([conn], [], [])):
        overlay.subscribe(received.append)
        assert overlay.poll(0.1) == 0
    conn.close.assert_called_once()
    assert len(received) == 1


def test_poll_reconnects_and_redelivers_after_lost_connection(overlay):
    received = []
    broken, fresh = MagicMock(), MagicMock()
    broken.poll.side_effect = psycopg2.InterfaceError('connection already closed')
    with cursor_patch(_cursor()), \
         patch('outreachcrm.engine.status_overlay.connect', side_effect=[broken, fresh]) as mock_connect, \
         patch('outreachcrm.engine.status_overlay.select.select', return_value=([broken], [], [])):
        overlay.subscribe(received.append)
        overlay.poll(0.1)
        overlay.poll(0.1)
    assert mock_connect.call_count == 2
    assert len(received) == 2
    fresh.close.assert_not_called()


def test_poll_waits_when_reconnect_fails(overlay):
    with cursor_patch(_cursor()), \
         patch('outreachcrm.engine.status_overlay.connect', side_effect=psycopg2.OperationalError('down')), \
         patch('outreachcrm.engine.status_overlay.time.sleep') as mock_sleep:
        overlay.subscribe(lambda snapshot: None)
        assert overlay.poll(2.0) == 0
    mock_sleep.assert_called_once_with(2.0)


def test_local_write_redelivers_snapshot_to_subscribers(overlay):
    received = []
    with cursor_patch(_cursor()), patch('outreachcrm.engine.status_overlay.connect'):
        overlay.subscribe(received.append)
        overlay.upsert('2', {'estado': 'Comunicado'})
    assert len(received) == 2


def test_poll_dispatches_once_for_many_notifications(overlay):
    received = []
    conn = MagicMock()
    conn.notifies = [MagicMock(payload='1'), MagicMock(payload='2')]
    with cursor_patch(_cursor()), \
         patch('outreachcrm.engine.status_overlay.connect', return_value=conn), \
         patch('outreachcrm.engine.status_overlay.select.select', return_value=([conn], [], [])):
        overlay.subscribe(received.append)
        drained = overlay.poll(1.0)

    assert drained == 2
    assert conn.notifies == []
    assert len(received) == 2


def test_poll_timeout_returns_zero(overlay):
    received = []
    conn = MagicMock()
    with cursor_patch(_cursor()), \
         patch('outreachcrm.engine.status_overlay.connect', return_value=conn), \
         patch('outreachcrm.engine.status_overlay.select.select', return_value=([], [], [])):
        overlay.subscribe(received.append)
        assert overlay.poll(0.1) == 0
    assert len(received) == 1


def test_last_unsubscribe_stops_listening(overlay):
    conn = MagicMock()
    received = []
    with cursor_patch(_cursor()), patch('outreachcrm.engine.status_overlay.connect', return_value=conn):
        first = overlay.subscribe(lambda snapshot: None)
        second = overlay.subscribe(received.append)
        first.unsubscribe()
        conn.close.assert_not_called()
        second()
    conn.close.assert_called_once()
    assert not second.active


def test_unsubscribed_callback_gets_no_more_snapshots(overlay):
    received = []
    with cursor_patch(_cursor()), patch('outreachcrm.engine.status_overlay.connect'):
        subscription = overlay.subscribe(received.append)
        subscription.unsubscribe()
        subscription.unsubscribe()
        overlay.upsert('2', {'estado': 'Comunicado'})
    assert len(received) == 1


def test_dispatch_skips_when_snapshot_fails_after_write(overlay):
    received = []
    cur = _cursor()
    with cursor_patch(cur), patch('outreachcrm.engine.status_overlay.connect'):
        overlay.subscribe(received.append)
        cur.fetchall.side_effect = psycopg2.OperationalError('gone')
        overlay.upsert('2', {'estado': 'Comunicado'})
    assert len(received) == 1


def test_close_drops_subscribers(overlay):
    conn = MagicMock()
    with cursor_patch(_cursor()), patch('outreachcrm.engine.status_overlay.connect', return_value=conn):
        subscription = overlay.subscribe(lambda snapshot: None)
    overlay.close()
    assert not subscription.active
    conn.close.assert_called_once()
    assert overlay.poll(0) == 0
