"""
Logging configuration for Outreach CRM.

Single 'outreachcrm' logger used across all modules.

  Log file : logs/outreachcrm.log
  Rotation : 5 MB × 3 backups
  Level    : LOG_LEVEL env var (DEBUG / INFO / WARNING / ERROR / CRITICAL)
             defaults to INFO when unset

Every line carries the session and contact being worked on, taken from the
arguments of the innermost @log_call function ('-' outside of one). Message
bodies and phone numbers never reach the file: body arguments are logged by
length only and digit runs that look like a phone keep their last 3 digits.

Usage
-----
    from outreachcrm.logging_config import configure_logging, log_call

    # Once at startup (idempotent):
    configure_logging()

    # On any function you want traced:
    @log_call
    def send(self, session):
        ...

Log format per line
-------------------
    2026-10-19 14:32:01 | DEBUG    | contact=17 | CALL message | args=(contact_id='17', text=<42 chars>)
    2026-10-19 14:32:01 | INFO     | session=9f3c01a2b4de contact=17 | Session 9f3c01a2b4de: message handed off for Ana Pérez
    2026-10-19 14:32:02 | ERROR    | - | FAIL sync | RosterUnavailable: timed out | 3ms
"""

import contextvars
import functools
import logging
import logging.handlers
import os
import re
import time
from pathlib import Path

_LOG_DIR = Path(__file__).parent.parent / "logs"
_LOG_FILE = _LOG_DIR / "outreachcrm.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(context)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_BACKUP_COUNT = 3

# Argument names whose values are message text typed by the operator
_BODY_ARGS = frozenset({"text", "draft", "message", "body"})
_PHONE_ARGS = frozenset({"telefono", "phone"})
_PHONE_RUN = re.compile(r"\+?\d[\d\s().\-]{4,}\d")
_MIN_PHONE_DIGITS = 6

_context = contextvars.ContextVar("outreachcrm_log_context", default="-")


class ContextFilter(logging.Filter):
    """Stamps each record with the session/contact of the running @log_call."""

    def filter(self, record):
        record.context = _context.get()
        return True


def mask_phones(text: str) -> str:
    """Replace phone-like digit runs with '***' plus their last 3 digits."""
    def _mask(match):
        digits = re.sub(r"\D", "", match.group())
        if len(digits) < _MIN_PHONE_DIGITS:
            return match.group()
        return "***" + digits[-3:]
    return _PHONE_RUN.sub(_mask, text)


def configure_logging() -> logging.Logger:
    """
    Set up the outreachcrm logger. Safe to call on every CLI entry.
    Returns the configured logger.
    """
    _LOG_DIR.mkdir(exist_ok=True)

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger("outreachcrm")

    if logger.handlers:
        return logger

    logger.setLevel(level)

    handler = logging.handlers.RotatingFileHandler(
        _LOG_FILE,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.addFilter(ContextFilter())
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)

    return logger


def _describe(value) -> str:
    # Sessions and contacts are reduced to ids; their reprs hold the draft and phone
    if hasattr(value, "session_id") and hasattr(value, "contact"):
        return f"<session {value.session_id} contact={value.contact.id} phase={value.phase}>"
    if hasattr(value, "telefono") and hasattr(value, "id"):
        return f"<contact {value.id}>"
    return mask_phones(repr(value))


def _describe_kwarg(key, value) -> str:
    if isinstance(value, str):
        if key in _BODY_ARGS:
            return f"{key}=<{len(value)} chars>"
        if key in _PHONE_ARGS:
            return f"{key}={mask_phones(value)!r}"
    return f"{key}={_describe(value)}"


def _context_for(args, kwargs):
    for value in list(args) + list(kwargs.values()):
        if hasattr(value, "session_id") and hasattr(value, "contact"):
            return f"session={value.session_id} contact={value.contact.id}"
    if kwargs.get("contact_id"):
        return f"contact={kwargs['contact_id']}"
    return None


def log_call(func):
    """
    Decorator: logs entry, clean exit, and exceptions for any function.

    - DEBUG on entry   : CALL <name> | args=(...)   (bodies and phones redacted)
    - INFO  on success : OK   <name> | <N>ms
    - ERROR on failure : FAIL <name> | ExcType: message | <N>ms   (then re-raises)

    A session or contact_id argument becomes the log context of every line
    written while the function runs.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("outreachcrm")
        name = func.__name__
        start = time.perf_counter()

        context = _context_for(args, kwargs)
        token = _context.set(context) if context else None
        try:
            parts = [_describe(a) for a in args] + [_describe_kwarg(k, v) for k, v in kwargs.items()]
            arg_str = ", ".join(parts) if parts else "—"
            logger.debug(f"CALL {name} | args=({arg_str})")

            try:
                result = func(*args, **kwargs)
                ms = int((time.perf_counter() - start) * 1000)
                logger.info(f"OK   {name} | {ms}ms")
                return result
            except Exception as exc:
                ms = int((time.perf_counter() - start) * 1000)
                logger.error(f"FAIL {name} | {type(exc).__name__}: {mask_phones(str(exc))} | {ms}ms")
                raise
        finally:
            if token is not None:
                _context.reset(token)

    return wrapper
