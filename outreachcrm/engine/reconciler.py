"""
Reconciler - Roster + Status Overlay -> one merged contact list.

reconcile() is a pure function over two snapshots. ContactBoard caches the
latest snapshot of each source and re-runs reconcile() whenever either one
changes: on every explicit sync() and on every overlay notification. The
roster is never polled; only the overlay is live.
"""

import logging
from dataclasses import asdict
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from outreachcrm.models import (
    ContactRecord, MergedContact, StatusRecord, FilterState, Result,
    RosterUnavailable, OverlayUnavailable, ROSTER_UNAVAILABLE, OVERLAY_UNAVAILABLE,
)
from outreachcrm.bus.events import bus as default_bus, EVENT_CONTACTS_MERGED, EVENT_ROSTER_SYNCED, EVENT_ROSTER_SYNC_FAILED
from outreachcrm.engine import filters
from outreachcrm.logging_config import log_call

logger = logging.getLogger(__name__)


def merge_contact(record: ContactRecord, status: Optional[StatusRecord]) -> MergedContact:
    """Flatten one roster record and its status (or the default status) into a MergedContact."""
    status = status or StatusRecord.default()
    return MergedContact(**asdict(record), **asdict(status))


def reconcile(roster: Sequence[ContactRecord], overlay: Mapping[str, StatusRecord]) -> List[MergedContact]:
    """
    Merge roster and overlay, in roster order.

    - one MergedContact per distinct roster id (first occurrence wins)
    - missing status => Incomunicado with no timestamp / actor
    - statuses whose id is not in the roster are ignored
    """
    merged = []
    seen = set()
    for record in roster:
        if record.id in seen:
            logger.warning(f"reconcile: duplicate roster id {record.id!r} ({record.nombre}) dropped")
            continue
        seen.add(record.id)
        merged.append(merge_contact(record, overlay.get(record.id)))
    return merged


class ContactBoard:
    """
    Live merged view of the roster and the status overlay.

    Usage:
        board = ContactBoard(fetch_roster, StatusOverlay())
        with board:                 # subscribes to the overlay
            board.sync()            # fetches the roster
            visible = board.visible(FilterState())
        # leaving the block releases the overlay subscription
    """

    def __init__(self, fetch_roster: Callable[[], List[ContactRecord]], overlay, bus=None):
        self._fetch_roster = fetch_roster
        self._overlay = overlay
        self.bus = bus or default_bus
        self._roster: List[ContactRecord] = []
        self._statuses: Dict[str, StatusRecord] = {}
        self._contacts: List[MergedContact] = []
        self._subscription = None
        self._sync_generation = 0
        self.has_roster = False

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def contacts(self) -> List[MergedContact]:
        """Last successfully merged set (kept across failed syncs)."""
        return list(self._contacts)

    @property
    def overlay(self):
        """The status overlay this board is subscribed to."""
        return self._overlay

    @property
    def attached(self) -> bool:
        return self._subscription is not None

    def get(self, contact_id: str) -> Optional[MergedContact]:
        for contact in self._contacts:
            if contact.id == contact_id:
                return contact
        return None

    def visible(self, filter_state: FilterState) -> List[MergedContact]:
        return filters.apply_filter(self._contacts, filter_state)

    def locality_options(self) -> List[str]:
        return filters.locality_options(self._contacts)

    def counts(self) -> Dict[str, int]:
        return filters.status_counts(self._contacts)

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    @log_call
    def sync(self) -> Result:
        """
        Fetch the roster and re-merge.
        On failure the previous roster and merged set are kept unchanged.
        A sync started later supersedes this one if it finishes first.
        """
        self._sync_generation += 1
        generation = self._sync_generation

        try:
            roster = self._fetch_roster()
        except RosterUnavailable as e:
            if generation != self._sync_generation:
                return Result.success(self.contacts, message='superseded')
            logger.error(f"Roster sync failed, keeping {len(self._contacts)} cached contacts: {e}")
            self.bus.emit(EVENT_ROSTER_SYNC_FAILED, {'error': str(e)})
            return Result.failure(ROSTER_UNAVAILABLE, str(e), value=self.contacts)

        if generation != self._sync_generation:
            logger.info(f"Discarding roster from superseded sync #{generation}")
            return Result.success(self.contacts, message='superseded')

        self._roster = list(roster)
        self.has_roster = True
        self._remerge()
        self.bus.emit(EVENT_ROSTER_SYNCED, {'count': len(self._roster)})
        return Result.success(self.contacts)

    def attach(self) -> Result:
        """Subscribe to overlay changes. Calling it while attached is a no-op."""
        if self._subscription is not None:
            return Result.success(self.contacts)
        try:
            self._subscription = self._overlay.subscribe(self._on_overlay_change)
        except OverlayUnavailable as e:
            logger.error(f"Could not subscribe to status overlay: {e}")
            return Result.failure(OVERLAY_UNAVAILABLE, str(e), value=self.contacts)
        logger.debug("ContactBoard attached to status overlay")
        return Result.success(self.contacts)

    def detach(self):
        """Release the overlay subscription. Safe to call more than once."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.debug("ContactBoard detached from status overlay")

    def __enter__(self):
        self.attach()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.detach()
        return False

    def _on_overlay_change(self, snapshot: Mapping[str, StatusRecord]):
        self._statuses = dict(snapshot)
        self._remerge()

    def _remerge(self):
        self._contacts = reconcile(self._roster, self._statuses)
        logger.debug(f"Merged {len(self._contacts)} contacts with {len(self._statuses)} statuses")
        self.bus.emit(EVENT_CONTACTS_MERGED, {'contacts': self.contacts})
