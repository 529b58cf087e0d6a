"""
Data Models
Dataclasses for all entities. These are pure Python objects, no I/O logic.
"""

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, Optional

# Communication states (values as stored in the status overlay)
STATE_CONTACTED = 'Comunicado'
STATE_NOT_CONTACTED = 'Incomunicado'
CONTACT_STATES = (STATE_CONTACTED, STATE_NOT_CONTACTED)

# Status filter selector value that passes every contact
STATUS_ALL = 'all'
STATUS_FILTER_CHOICES = (STATE_NOT_CONTACTED, STATE_CONTACTED, STATUS_ALL)

# Error tags carried by Result
ROSTER_UNAVAILABLE = 'RosterUnavailable'
OVERLAY_WRITE_FAILED = 'OverlayWriteFailed'
VALIDATION_FAILED = 'ValidationFailed'
INVALID_TRANSITION = 'InvalidTransition'
OVERLAY_UNAVAILABLE = 'OverlayUnavailable'
HANDOFF_FAILED = 'HandoffFailed'


class RosterUnavailable(RuntimeError):
    """The roster source could not be reached or returned an unusable payload."""


class OverlayWriteFailed(RuntimeError):
    """A status write to the overlay did not complete."""


class OverlayUnavailable(RuntimeError):
    """The overlay could not be read or subscribed to."""


class ValidationFailed(ValueError):
    """Input rejected locally before reaching any external system."""


# Roster JSON key -> ContactRecord attribute, where they differ
_PAYLOAD_ALIASES = {
    'correoElectronico': 'correo_electronico',
}


def _clean(value: Any) -> Optional[str]:
    """Coerce a roster cell to a stripped string; blanks become None."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        # Sheets serialise long phone numbers as floats
        value = int(value)
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class ContactRecord:
    """Roster entry. Owned by the roster sheet, never mutated here."""
    id: str
    nombre: str
    telefono: Optional[str] = None
    telefono2: Optional[str] = None
    email: Optional[str] = None
    localidad: Optional[str] = None
    rol: Optional[str] = None
    dni: Optional[str] = None
    genero: Optional[str] = None
    experiencia: Optional[str] = None
    correo_electronico: Optional[str] = None
    preferencias: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'ContactRecord':
        """
        Build a record from one element of the roster JSON array.
        Unknown keys are ignored. Raises ValueError when id or nombre is missing.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Roster entry is not an object: {payload!r}")

        known = {f.name for f in fields(cls)}
        values = {}
        for key, raw in payload.items():
            name = _PAYLOAD_ALIASES.get(key, key)
            if name in known:
                values[name] = _clean(raw)

        if not values.get('id'):
            raise ValueError(f"Roster entry has no id: {payload!r}")
        if not values.get('nombre'):
            raise ValueError(f"Roster entry {values['id']} has no nombre")

        return cls(**values)


@dataclass(frozen=True)
class StatusRecord:
    """Per-contact communication status held in the overlay."""
    estado: str = STATE_NOT_CONTACTED
    ultimo_comunicacion: Optional[datetime] = None
    comunicado_por: Optional[str] = None

    @classmethod
    def default(cls) -> 'StatusRecord':
        return cls()


@dataclass(frozen=True)
class MergedContact:
    """Roster profile with its overlay status flattened on top."""
    id: str
    nombre: str
    telefono: Optional[str] = None
    telefono2: Optional[str] = None
    email: Optional[str] = None
    localidad: Optional[str] = None
    rol: Optional[str] = None
    dni: Optional[str] = None
    genero: Optional[str] = None
    experiencia: Optional[str] = None
    correo_electronico: Optional[str] = None
    preferencias: Optional[str] = None
    estado: str = STATE_NOT_CONTACTED
    ultimo_comunicacion: Optional[datetime] = None
    comunicado_por: Optional[str] = None

    @property
    def is_communicated(self) -> bool:
        return self.estado == STATE_CONTACTED


@dataclass(frozen=True)
class FilterState:
    """Search / status / locality selection applied to the merged set."""
    search: str = ''
    status: str = STATE_NOT_CONTACTED
    localidad: str = ''

    @classmethod
    def identity(cls) -> 'FilterState':
        """A filter that passes every contact."""
        return cls(search='', status=STATUS_ALL, localidad='')


@dataclass
class Result:
    """
    Tagged outcome returned by the engine instead of raising.
    error is one of the error tag constants above, or None on success.
    """
    ok: bool
    value: Any = None
    error: Optional[str] = None
    message: str = ''

    @classmethod
    def success(cls, value: Any = None, message: str = '') -> 'Result':
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(cls, error: str, message: str, value: Any = None) -> 'Result':
        return cls(ok=False, value=value, error=error, message=message)
