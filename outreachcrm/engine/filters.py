"""
Filter Engine - Which merged contacts are visible.
Pure functions over the merged set, plus the confirmation guard on the status selector.
"""

import logging
import re
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from outreachcrm.models import (
    MergedContact, FilterState,
    STATE_CONTACTED, STATE_NOT_CONTACTED, STATUS_ALL, STATUS_FILTER_CHOICES,
)

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r'\D')
_PHONE_SHAPED = re.compile(r'[\d\s()+.\-]+')


def _matches_search(contact: MergedContact, term: str) -> bool:
    lowered = term.lower()
    if contact.nombre and lowered in contact.nombre.lower():
        return True
    if contact.email and lowered in contact.email.lower():
        return True
    if contact.telefono:
        if term in contact.telefono:
            return True
        digits = _NON_DIGITS.sub('', term) if _PHONE_SHAPED.fullmatch(term) else ''
        if digits and digits in _NON_DIGITS.sub('', contact.telefono):
            return True
    return False


def apply_filter(merged: Sequence[MergedContact], filter_state: FilterState) -> List[MergedContact]:
    """
    Return the contacts passing search AND status AND locality, in input order.

    - search: blank passes all; otherwise substring of nombre / telefono / email
    - status: 'all' passes all; otherwise exact match on estado
    - localidad: blank passes all; otherwise exact match
    """
    term = (filter_state.search or '').strip()
    status = filter_state.status or STATUS_ALL
    localidad = filter_state.localidad or ''

    visible = []
    for contact in merged:
        if term and not _matches_search(contact, term):
            continue
        if status != STATUS_ALL and contact.estado != status:
            continue
        if localidad and contact.localidad != localidad:
            continue
        visible.append(contact)
    return visible


def locality_options(merged: Sequence[MergedContact]) -> List[str]:
    """De-duplicated localities present in this merged set, sorted for display."""
    return sorted({c.localidad for c in merged if c.localidad})


def status_counts(merged: Sequence[MergedContact]) -> Dict[str, int]:
    """Totals shown in the contacts header."""
    contacted = sum(1 for c in merged if c.estado == STATE_CONTACTED)
    return {
        'total': len(merged),
        STATE_CONTACTED: contacted,
        STATE_NOT_CONTACTED: len(merged) - contacted,
    }


# =============================================================================
# STATUS SELECTOR GUARD
# =============================================================================

APPLIED = 'applied'
CONFIRMATION_REQUIRED = 'confirmation_required'


class StatusFilterGuard:
    """
    Holds the caller's FilterState and gates switching the status selector to
    Comunicado behind a one-shot confirmation. Declining leaves the filter as it was.
    """

    def __init__(self, initial: Optional[FilterState] = None):
        self.state = initial or FilterState()
        self.pending_status: Optional[str] = None

    def request_status(self, status: str) -> str:
        if status not in STATUS_FILTER_CHOICES:
            raise ValueError(f"Unknown status filter '{status}'. Choose from: {', '.join(STATUS_FILTER_CHOICES)}")

        if status == STATE_CONTACTED:
            self.pending_status = status
            logger.debug("Status filter change to Comunicado awaiting confirmation")
            return CONFIRMATION_REQUIRED

        self.pending_status = None
        self.state = replace(self.state, status=status)
        return APPLIED

    def confirm(self) -> FilterState:
        if self.pending_status is not None:
            self.state = replace(self.state, status=self.pending_status)
            self.pending_status = None
        return self.state

    def decline(self) -> FilterState:
        self.pending_status = None
        return self.state

    def set_search(self, term: str) -> FilterState:
        self.state = replace(self.state, search=term or '')
        return self.state

    def set_localidad(self, localidad: str) -> FilterState:
        self.state = replace(self.state, localidad=localidad or '')
        return self.state
