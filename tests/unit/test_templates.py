"""
Unit tests for outreachcrm/engine/templates.py.
"""

from datetime import datetime

import pytest

from outreachcrm.engine.templates import (
    greeting, make_choice, render_message, custom_placeholder,
    TemplateMessage, CustomMessage, TEMPLATES, TEMPLATE_IDS,
    SALUDO, RECORDATORIO, PERSONALIZADO,
)

MORNING = datetime(2026, 10, 19, 9, 0)
AFTERNOON = datetime(2026, 10, 19, 15, 0)
EVENING = datetime(2026, 10, 19, 20, 0)


@pytest.mark.parametrize('now, expected', [
    (MORNING, 'Buenos días'),
    (datetime(2026, 10, 19, 11, 59), 'Buenos días'),
    (datetime(2026, 10, 19, 12, 0), 'Buenas tardes'),
    (AFTERNOON, 'Buenas tardes'),
    (datetime(2026, 10, 19, 18, 0), 'Buenas noches'),
    (EVENING, 'Buenas noches'),
    (datetime(2026, 10, 19, 0, 30), 'Buenos días'),
])
def test_greeting_by_hour(now, expected):
    assert greeting(now) == expected


def test_saludo_renders_greeting_name_and_organization():
    body = render_message(TemplateMessage(SALUDO), 'Ana Pérez', MORNING, 'La Libertad Avanza')
    assert body.startswith('Buenos días Ana Pérez')
    assert 'La Libertad Avanza' in body


def test_every_fixed_template_renders_non_empty():
    for template_id in TEMPLATES:
        body = render_message(TemplateMessage(template_id), 'Ana', EVENING, 'Org')
        assert body.startswith('Buenas noches Ana')
        assert '{' not in body


def test_custom_message_is_returned_stripped():
    body = render_message(CustomMessage('  Hola Ana, ¿nos vemos el sábado?  '), 'Ana', MORNING, 'Org')
    assert body == 'Hola Ana, ¿nos vemos el sábado?'


def test_blank_custom_message_renders_empty():
    assert render_message(CustomMessage('   '), 'Ana', MORNING, 'Org') == ''


def test_unknown_template_id_rejected():
    with pytest.raises(ValueError, match='Unknown template'):
        TemplateMessage('despedida')


def test_personalizado_is_not_a_fixed_template():
    with pytest.raises(ValueError):
        TemplateMessage(PERSONALIZADO)


def test_make_choice():
    assert make_choice(RECORDATORIO) == TemplateMessage(RECORDATORIO)
    assert make_choice(PERSONALIZADO, 'Hola') == CustomMessage('Hola')
    assert make_choice(PERSONALIZADO).text == ''


def test_custom_message_reports_personalizado_id():
    assert CustomMessage('x').template_id == PERSONALIZADO


def test_template_ids_cover_every_choice():
    assert set(TEMPLATE_IDS) == set(TEMPLATES) | {PERSONALIZADO}


def test_custom_placeholder():
    assert custom_placeholder('Ana', AFTERNOON) == 'Buenas tardes Ana, '
