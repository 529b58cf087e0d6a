"""
Shared fixtures and step definitions for BDD tests.

- runner, context: available to all scenario files in this directory
- roster_rows / mock_roster: the roster the CLI will fetch, built up by Given steps
- status_overlay: FakeOverlay patched in place of the PostgreSQL overlay
- no_logging: autouse, prevents log file creation during tests
- roster, status and 'the output contains' steps: shared across all feature files
"""

from datetime import datetime

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import given, then, parsers

from outreachcrm.models import ContactRecord, StatusRecord, RosterUnavailable


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture(autouse=True)
def no_logging():
    with patch("outreachcrm.cli.main.configure_logging"):
        yield


@pytest.fixture
def roster_rows():
    return []


@pytest.fixture
def mock_roster(roster_rows):
    with patch("outreachcrm.cli.main.roster_client") as mock:
        mock.fetch_roster.side_effect = lambda: list(roster_rows)
        yield mock


@pytest.fixture
def status_overlay(fake_overlay):
    with patch("outreachcrm.cli.main.StatusOverlay", return_value=fake_overlay):
        yield fake_overlay


@pytest.fixture
def launch():
    with patch("outreachcrm.engine.messaging.click.launch") as mock_launch:
        yield mock_launch


@pytest.fixture
def contact_id(roster_rows):
    """Look up the roster id the Given steps assigned to a name."""
    def _lookup(nombre):
        for row in roster_rows:
            if row.nombre == nombre:
                return row.id
        raise AssertionError(f"{nombre} is not in the roster")
    return _lookup


@given(parsers.parse('the roster has "{nombre}" in "{localidad}"'))
def roster_has_in(roster_rows, mock_roster, status_overlay, nombre, localidad):
    roster_rows.append(ContactRecord(id=str(len(roster_rows) + 1), nombre=nombre, localidad=localidad))


@given(parsers.parse('the roster has "{nombre}" with phone "{telefono}"'))
def roster_has_phone(roster_rows, mock_roster, status_overlay, nombre, telefono):
    roster_rows.append(ContactRecord(id=str(len(roster_rows) + 1), nombre=nombre, telefono=telefono))


@given("the roster is unavailable")
def roster_unavailable(mock_roster, status_overlay):
    mock_roster.fetch_roster.side_effect = RosterUnavailable("Failed to fetch roster: read timed out")


@given(parsers.parse('"{nombre}" was contacted by "{actor}"'))
def was_contacted(contact_id, status_overlay, nombre, actor):
    status_overlay.statuses[contact_id(nombre)] = StatusRecord(
        'Comunicado', datetime(2026, 10, 18, 17, 45), actor,
    )


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )


@then(parsers.parse('the output does not contain "{text}"'))
def output_does_not_contain(context, text):
    assert text not in context["result"].output, (
        f"Did not expect {text!r} in output:\n{context['result'].output}"
    )
