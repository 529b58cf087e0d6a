"""
Roster Client - Read-only access to the contact sheet.
The sheet is published by an Apps Script web app as a JSON array.
Spreadsheet exports (.csv / .xlsx) of the same sheet can be loaded offline.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple

import pandas as pd
import requests

from outreachcrm.config import config
from outreachcrm.models import ContactRecord, RosterUnavailable

logger = logging.getLogger(__name__)


def parse_roster(payload: Any) -> List[ContactRecord]:
    """
    Validate a decoded roster payload and build ContactRecords in sheet order.
    Raises RosterUnavailable if the payload is not an array or any row is unusable;
    a half-parsed roster is never returned.
    """
    if not isinstance(payload, list):
        raise RosterUnavailable(f"Roster payload is not an array (got {type(payload).__name__})")

    records = []
    for index, row in enumerate(payload):
        try:
            records.append(ContactRecord.from_payload(row))
        except ValueError as e:
            raise RosterUnavailable(f"Roster row {index} is invalid: {e}") from e
    return records


# =============================================================================
# HTTP
# =============================================================================

def fetch_roster(
    url: Optional[str] = None,
    timeout: Optional[Tuple[float, float]] = None,
) -> List[ContactRecord]:
    """
    Fetch the roster from the Apps Script endpoint.

    Args:
        url: Override config.ROSTER_URL
        timeout: (connect, read) seconds; defaults from config

    Returns: list of ContactRecord in sheet order
    Raises: RosterUnavailable on network, HTTP, JSON or shape errors
    """
    url = url or config.ROSTER_URL
    timeout = timeout or (config.ROSTER_CONNECT_TIMEOUT_SECONDS, config.ROSTER_READ_TIMEOUT_SECONDS)

    try:
        logger.debug(f"Fetching roster from {url}")
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        payload = response.json()

    except requests.exceptions.RequestException as e:
        logger.error(f"Roster fetch error: {e}")
        raise RosterUnavailable(f"Failed to fetch roster: {e}") from e
    except ValueError as e:
        logger.error(f"Roster response is not JSON: {e}")
        raise RosterUnavailable(f"Roster response is not valid JSON: {e}") from e

    records = parse_roster(payload)
    logger.info(f"Fetched roster: {len(records)} contacts")
    return records


# =============================================================================
# SPREADSHEET EXPORTS
# =============================================================================

def load_roster_file(path: Path) -> List[ContactRecord]:
    """
    Load the roster from a .csv or .xlsx export of the contact sheet.
    Every column is read as text so phone numbers and DNIs keep their digits.
    """
    path = Path(path)
    if not path.exists():
        raise RosterUnavailable(f"Roster file not found: {path}")

    try:
        if path.suffix.lower() == '.csv':
            df = pd.read_csv(path, dtype=str)
        elif path.suffix.lower() in ('.xlsx', '.xls'):
            df = pd.read_excel(path, dtype=str)
        else:
            raise RosterUnavailable(f"Unsupported roster file type: {path.suffix}")
    except RosterUnavailable:
        raise
    except Exception as e:
        logger.error(f"Could not read roster file {path}: {e}")
        raise RosterUnavailable(f"Could not read roster file {path}: {e}") from e

    df = df.astype(object).where(pd.notna(df), None)
    records = parse_roster(df.to_dict(orient='records'))
    logger.info(f"Loaded roster from {path.name}: {len(records)} contacts")
    return records
