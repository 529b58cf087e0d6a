"""
Outreach CRM Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


class Config:
    """Application configuration."""

    # Roster: the Apps Script endpoint that serves the contact sheet as JSON
    ROSTER_URL = os.getenv('ROSTER_URL')
    if not ROSTER_URL:
        _logger.critical("ROSTER_URL is not set — cannot start. Copy .env.example to .env and configure it.")
        raise ValueError("ROSTER_URL environment variable is not set. Copy .env.example to .env and configure it.")

    # Status overlay: must be set in .env; never hardcode credentials here
    STATUS_DATABASE_URL = os.getenv('STATUS_DATABASE_URL')
    if not STATUS_DATABASE_URL:
        _logger.critical("STATUS_DATABASE_URL is not set — cannot start. Copy .env.example to .env and configure it.")
        raise ValueError("STATUS_DATABASE_URL environment variable is not set. Copy .env.example to .env and configure it.")
    STATUS_TABLE = os.getenv('STATUS_TABLE', 'contact_status')

    # Timeouts (seconds)
    ROSTER_CONNECT_TIMEOUT_SECONDS = float(os.getenv('ROSTER_CONNECT_TIMEOUT_SECONDS', '10'))
    ROSTER_READ_TIMEOUT_SECONDS = float(os.getenv('ROSTER_READ_TIMEOUT_SECONDS', '30'))
    OVERLAY_WRITE_TIMEOUT_SECONDS = float(os.getenv('OVERLAY_WRITE_TIMEOUT_SECONDS', '10'))

    # Timezone used for greetings and status timestamps
    TIMEZONE = os.getenv('TIMEZONE', 'America/Argentina/Buenos_Aires')

    # Messaging handoff
    MESSAGING_BASE_URL = os.getenv('MESSAGING_BASE_URL', 'https://wa.me/')
    COUNTRY_CODE = os.getenv('COUNTRY_CODE', '549')

    # Message templates
    ORGANIZATION_NAME = os.getenv('ORGANIZATION_NAME', 'La Libertad Avanza')

    # Display name stamped on status writes when the CLI gets no --as option
    OPERATOR_NAME = os.getenv('OPERATOR_NAME', '')


# Singleton instance
config = Config()
