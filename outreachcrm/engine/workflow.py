"""
Communication Workflow - Guarded path from picking a contact to recording the contact.

    idle -> selected -> warning_gate -> composing -> sending -> committed
                     \_____________/^
    cancelled is reachable from every phase except committed / cancelled.

The status overlay is written exactly once per session, in the commit step,
after the messaging link was handed off. Nothing external is touched before
that, so cancelling needs no cleanup.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional
from zoneinfo import ZoneInfo

from outreachcrm.config import config
from outreachcrm.models import (
    MergedContact, StatusRecord, Result,
    STATE_CONTACTED, ValidationFailed, OverlayWriteFailed,
    VALIDATION_FAILED, OVERLAY_WRITE_FAILED, INVALID_TRANSITION, HANDOFF_FAILED,
)
from outreachcrm.bus.events import (
    bus as default_bus,
    EVENT_SESSION_STARTED, EVENT_SESSION_CANCELLED,
    EVENT_MESSAGE_HANDED_OFF, EVENT_CONTACT_COMMUNICATED,
)
from outreachcrm.engine import templates
from outreachcrm.engine.messaging import build_message_link, open_in_host, LinkOpener
from outreachcrm.logging_config import log_call

logger = logging.getLogger(__name__)

# Phases
IDLE = 'idle'
SELECTED = 'selected'
WARNING_GATE = 'warning_gate'
COMPOSING = 'composing'
SENDING = 'sending'
COMMITTED = 'committed'
CANCELLED = 'cancelled'

TERMINAL_PHASES = (COMMITTED, CANCELLED)


def actor_display_name(nombre: str, apellido: str = '') -> str:
    """Operator name as stamped on status writes ('Nombre Apellido')."""
    return ' '.join(part.strip() for part in (nombre or '', apellido or '') if part and part.strip())


def _default_clock() -> datetime:
    return datetime.now(ZoneInfo(config.TIMEZONE))


@dataclass
class WorkflowSession:
    """One attempt to message one contact. Transient, never persisted."""
    contact: MergedContact
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    phase: str = IDLE
    choice: Optional[templates.MessageChoice] = None
    draft: str = ''
    warning_acknowledged: bool = False
    link: Optional[str] = None
    handed_off: bool = False
    last_error: Optional[str] = None
    history: List[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def _move(self, phase: str):
        self.history.append(self.phase)
        self.phase = phase


class CommunicationWorkflow:
    """
    Drives WorkflowSessions. Every operation returns a Result; invalid
    transitions are reported, never raised, and leave the session unchanged.
    """

    def __init__(
        self,
        overlay,
        actor: str,
        open_link: LinkOpener = open_in_host,
        clock: Optional[Callable[[], datetime]] = None,
        country_code: Optional[str] = None,
        organization: Optional[str] = None,
        bus=None,
    ):
        self._overlay = overlay
        self.actor = (actor or '').strip()
        self._open_link = open_link
        self._clock = clock or _default_clock
        self.country_code = config.COUNTRY_CODE if country_code is None else country_code
        self.organization = organization or config.ORGANIZATION_NAME
        self.bus = bus or default_bus
        self.current: Optional[WorkflowSession] = None

    def now(self) -> datetime:
        return self._clock()

    # -------------------------------------------------------------------------
    # Selection and warning gate
    # -------------------------------------------------------------------------

    def initiate(self, contact: MergedContact) -> WorkflowSession:
        """
        Start a fresh session for contact. An unfinished previous session is cancelled.
        Already-contacted people land in the warning gate, everyone else goes straight to composing.
        """
        if self.current is not None and not self.current.is_terminal:
            self.cancel(self.current)

        session = WorkflowSession(contact=contact)
        session._move(SELECTED)
        self.current = session

        if contact.estado == STATE_CONTACTED:
            session._move(WARNING_GATE)
            logger.info(f"Session {session.session_id}: {contact.nombre} was already contacted by "
                        f"{contact.comunicado_por or 'unknown'}, confirmation required")
        else:
            session._move(COMPOSING)

        self.bus.emit(EVENT_SESSION_STARTED, {
            'session_id': session.session_id,
            'contact_id': contact.id,
            'phase': session.phase,
        })
        return session

    def acknowledge(self, session: WorkflowSession) -> Result:
        """Operator confirms messaging someone who was already contacted."""
        rejected = self._require(session, WARNING_GATE, 'acknowledge')
        if rejected:
            return rejected
        session.warning_acknowledged = True
        session._move(COMPOSING)
        return Result.success(session.phase)

    def decline(self, session: WorkflowSession) -> Result:
        """Operator backs out at the warning gate."""
        rejected = self._require(session, WARNING_GATE, 'decline')
        if rejected:
            return rejected
        return self.cancel(session)

    # -------------------------------------------------------------------------
    # Composing
    # -------------------------------------------------------------------------

    def choose(self, session: WorkflowSession, choice: templates.MessageChoice) -> Result:
        """Pick a template (or custom text) and resolve the draft body."""
        rejected = self._require(session, COMPOSING, 'choose')
        if rejected:
            return rejected
        session.choice = choice
        session.draft = templates.render_message(
            choice, session.contact.nombre, self.now(), self.organization,
        )
        session.last_error = None
        return Result.success(session.draft)

    def preview(self, session: WorkflowSession) -> Result:
        rejected = self._require(session, COMPOSING, 'preview')
        if rejected:
            return rejected
        return Result.success(session.draft)

    # -------------------------------------------------------------------------
    # Sending and commit
    # -------------------------------------------------------------------------

    @log_call
    def send(self, session: WorkflowSession) -> Result:
        """
        Hand the draft to the messaging app and record the contact.

        Validation failures keep the session in composing and touch nothing
        external. A failed status write returns the session to composing with
        the draft intact; retry_commit() repeats only the write. Sending again
        after a handoff is refused so the link is never opened twice.
        """
        rejected = self._require(session, COMPOSING, 'send')
        if rejected:
            return rejected
        if session.handed_off:
            message = "Message already handed off, use retry_commit to save the status"
            logger.warning(f"Session {session.session_id}: {message}")
            return Result.failure(INVALID_TRANSITION, message, value=session.draft)

        try:
            self._validate(session)
            link = build_message_link(session.contact.telefono, session.draft, self.country_code)
        except ValidationFailed as e:
            session.last_error = str(e)
            logger.warning(f"Session {session.session_id}: send blocked: {e}")
            return Result.failure(VALIDATION_FAILED, str(e), value=session.draft)

        session.link = link
        session._move(SENDING)

        try:
            self._open_link(link)
        except OSError as e:
            session.last_error = f"Could not open messaging link: {e}"
            session._move(COMPOSING)
            logger.error(f"Session {session.session_id}: handoff failed: {e}")
            return Result.failure(HANDOFF_FAILED, session.last_error, value=session.draft)

        session.handed_off = True
        logger.info(f"Session {session.session_id}: message handed off for {session.contact.nombre}")
        self.bus.emit(EVENT_MESSAGE_HANDED_OFF, {
            'session_id': session.session_id,
            'contact_id': session.contact.id,
        })
        return self._commit(session)

    def retry_commit(self, session: WorkflowSession) -> Result:
        """Repeat the status write for a session whose link was already handed off."""
        rejected = self._require(session, COMPOSING, 'retry_commit')
        if rejected:
            return rejected
        if not session.handed_off:
            return Result.failure(INVALID_TRANSITION, "Nothing was sent yet, use send", value=session.draft)
        session._move(SENDING)
        return self._commit(session)

    def _validate(self, session: WorkflowSession):
        if session.choice is None:
            raise ValidationFailed("Choose a message template first")
        if not session.draft.strip():
            raise ValidationFailed("The message is empty")
        if not self.actor:
            raise ValidationFailed("No operator name to record as comunicadoPor")

    def _commit(self, session: WorkflowSession) -> Result:
        status = StatusRecord(
            estado=STATE_CONTACTED,
            ultimo_comunicacion=self.now(),
            comunicado_por=self.actor,
        )
        try:
            self._overlay.upsert(session.contact.id, {
                'estado': status.estado,
                'ultimo_comunicacion': status.ultimo_comunicacion,
                'comunicado_por': status.comunicado_por,
            })
        except OverlayWriteFailed as e:
            session.last_error = str(e)
            session._move(COMPOSING)
            logger.error(f"Session {session.session_id}: status write failed, draft kept: {e}")
            return Result.failure(OVERLAY_WRITE_FAILED, str(e), value=session.draft)

        session.last_error = None
        session._move(COMMITTED)
        logger.info(f"Session {session.session_id}: {session.contact.nombre} marked {STATE_CONTACTED} by {self.actor}")
        self.bus.emit(EVENT_CONTACT_COMMUNICATED, {
            'session_id': session.session_id,
            'contact_id': session.contact.id,
            'status': status,
        })
        return Result.success(status)

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def cancel(self, session: WorkflowSession) -> Result:
        """Abandon a session. Allowed from any phase except committed / cancelled."""
        if session.is_terminal:
            return Result.failure(INVALID_TRANSITION, f"Session is already {session.phase}")
        previous = session.phase
        session._move(CANCELLED)
        logger.info(f"Session {session.session_id}: cancelled in {previous}")
        self.bus.emit(EVENT_SESSION_CANCELLED, {
            'session_id': session.session_id,
            'contact_id': session.contact.id,
            'phase': previous,
        })
        return Result.success(session.phase)

    def _require(self, session: WorkflowSession, phase: str, action: str) -> Optional[Result]:
        if session.phase != phase:
            message = f"Cannot {action} while {session.phase}"
            logger.debug(f"Session {session.session_id}: {message}")
            return Result.failure(INVALID_TRANSITION, message)
        return None
