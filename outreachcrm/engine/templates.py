"""
Message Templates - The fixed outreach messages plus one free-text variant.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Union

# Template ids
SALUDO = 'saludo'
RECORDATORIO = 'recordatorio'
INVITACION = 'invitacion'
CONSULTA = 'consulta'
SEGUIMIENTO = 'seguimiento'
PERSONALIZADO = 'personalizado'

# Fixed bodies; {greeting}, {nombre} and {organization} are substituted
TEMPLATES: Dict[str, str] = {
    SALUDO: "{greeting} {nombre}, soy del equipo de {organization}. ¿Cómo está usted?",
    RECORDATORIO: "{greeting} {nombre}, le escribo desde {organization} para recordarle sobre nuestras próximas actividades.",
    INVITACION: "{greeting} {nombre}, lo invitamos cordialmente a participar en nuestras actividades de {organization}.",
    CONSULTA: "{greeting} {nombre}, desde {organization} queremos conocer su opinión sobre los temas que nos ocupan.",
    SEGUIMIENTO: "{greeting} {nombre}, nos comunicamos desde {organization} para hacer un seguimiento de nuestras conversaciones anteriores.",
}

# (id, label, description) in display order
TEMPLATE_CHOICES = (
    (SALUDO, 'Saludo inicial', 'Mensaje de presentación y saludo'),
    (RECORDATORIO, 'Recordatorio', 'Recordatorio de actividades'),
    (INVITACION, 'Invitación', 'Invitación a eventos o actividades'),
    (CONSULTA, 'Consulta', 'Consulta de opinión o feedback'),
    (SEGUIMIENTO, 'Seguimiento', 'Seguimiento de conversaciones previas'),
    (PERSONALIZADO, 'Personalizado', 'Mensaje personalizado'),
)
TEMPLATE_IDS = tuple(choice[0] for choice in TEMPLATE_CHOICES)


@dataclass(frozen=True)
class TemplateMessage:
    """One of the fixed templates."""
    template_id: str

    def __post_init__(self):
        if self.template_id not in TEMPLATES:
            raise ValueError(f"Unknown template '{self.template_id}'. Choose from: {', '.join(TEMPLATES)}")


@dataclass(frozen=True)
class CustomMessage:
    """Free text typed by the operator (the 'personalizado' template)."""
    text: str

    template_id = PERSONALIZADO


MessageChoice = Union[TemplateMessage, CustomMessage]


def greeting(now: datetime) -> str:
    """Time-of-day greeting: mornings until 12:00, afternoons until 18:00, evenings after."""
    if now.hour < 12:
        return "Buenos días"
    if now.hour < 18:
        return "Buenas tardes"
    return "Buenas noches"


def make_choice(template_id: str, text: str = '') -> MessageChoice:
    """Build the right variant from a template id (and text for personalizado)."""
    if template_id == PERSONALIZADO:
        return CustomMessage(text or '')
    return TemplateMessage(template_id)


def render_message(choice: MessageChoice, nombre: str, now: datetime, organization: str) -> str:
    """
    Resolve the message body for a contact.
    Fixed templates are never empty; a custom message is returned stripped and may be ''.
    """
    if isinstance(choice, CustomMessage):
        return choice.text.strip()
    return TEMPLATES[choice.template_id].format(
        greeting=greeting(now),
        nombre=nombre,
        organization=organization,
    )


def custom_placeholder(nombre: str, now: datetime) -> str:
    """Starter text offered when the operator picks personalizado."""
    return f"{greeting(now)} {nombre}, "
