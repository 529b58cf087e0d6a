"""
Messaging Handoff - Builds the WhatsApp deep link and asks the host to open it.
Nothing here can tell whether the message was actually sent.
"""

import logging
import re
from typing import Callable, Optional
from urllib.parse import quote

import click

from outreachcrm.config import config
from outreachcrm.models import ValidationFailed

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r'\D')


def digits_only(phone: Optional[str]) -> str:
    """Strip everything but digits from a phone number."""
    return _NON_DIGITS.sub('', phone or '')


def build_message_link(
    phone: Optional[str],
    message: str,
    country_code: Optional[str] = None,
    base_url: Optional[str] = None,
) -> str:
    """
    Build <base_url><country_code><digits>?text=<url-encoded message>.
    Raises ValidationFailed when the phone has no digits.
    """
    country_code = config.COUNTRY_CODE if country_code is None else country_code
    base_url = base_url or config.MESSAGING_BASE_URL

    digits = digits_only(phone)
    if not digits:
        raise ValidationFailed(f"Phone number {phone!r} has no digits")

    return f"{base_url}{country_code}{digits}?text={quote(message, safe='')}"


def open_in_host(url: str) -> None:
    """Default handoff: let the desktop open the link (browser / WhatsApp)."""
    logger.debug(f"Opening messaging link ({len(url)} chars)")
    click.launch(url)


LinkOpener = Callable[[str], None]
