"""
Event Bus - Decoupled Module Communication
The board, the overlay and the workflow emit events; views and the CLI listen.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple synchronous event bus.
    Handlers run in registration order on the emitting call stack.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        if event_name not in self._handlers:
            self._handlers[event_name] = []
        self._handlers[event_name].append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {getattr(handler, '__name__', handler)}")

    def off(self, event_name: str, handler: Callable) -> bool:
        """Remove a previously registered handler. Returns False if it was not registered."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.
        A failing handler is logged and does not stop the others.
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with keys: {sorted(event_data)}")

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {getattr(handler, '__name__', handler)} for event '{event_name}': {e}")

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Singleton instance
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Contact board
EVENT_ROSTER_SYNCED = 'roster_synced'
EVENT_ROSTER_SYNC_FAILED = 'roster_sync_failed'
EVENT_CONTACTS_MERGED = 'contacts_merged'

# Status overlay
EVENT_STATUS_CHANGED = 'status_changed'
EVENT_STATUS_WRITE_FAILED = 'status_write_failed'

# Communication workflow
EVENT_SESSION_STARTED = 'session_started'
EVENT_SESSION_CANCELLED = 'session_cancelled'
EVENT_MESSAGE_HANDED_OFF = 'message_handed_off'
EVENT_CONTACT_COMMUNICATED = 'contact_communicated'
