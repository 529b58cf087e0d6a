#!/usr/bin/env python3
"""
Outreach CRM Terminal CLI
Command-line interface over the contact board and the messaging workflow.
"""

import logging
from pathlib import Path
from typing import Optional

import click

from outreachcrm.config import config
from outreachcrm.engine import roster_client, filters, templates
from outreachcrm.engine.reconciler import ContactBoard
from outreachcrm.engine.status_overlay import StatusOverlay
from outreachcrm.engine.workflow import CommunicationWorkflow, WARNING_GATE, COMMITTED
from outreachcrm.models import (
    FilterState, MergedContact,
    STATE_CONTACTED, STATE_NOT_CONTACTED, STATUS_FILTER_CHOICES,
    OVERLAY_WRITE_FAILED,
)
from outreachcrm.bus.events import bus, EVENT_CONTACTS_MERGED
from outreachcrm.logging_config import configure_logging, log_call


def _fmt_when(contact: MergedContact) -> str:
    if not contact.ultimo_comunicacion:
        return '-'
    return contact.ultimo_comunicacion.strftime('%d/%m/%Y %H:%M')


def _make_board(roster_file: Optional[Path]) -> ContactBoard:
    if roster_file:
        fetch = lambda: roster_client.load_roster_file(roster_file)  # noqa: E731
    else:
        fetch = roster_client.fetch_roster
    return ContactBoard(fetch, StatusOverlay())


def _open_board(ctx) -> Optional[ContactBoard]:
    """Attach to the overlay and sync the roster. Returns None when there is nothing to show."""
    logger = logging.getLogger("outreachcrm")
    board = _make_board(ctx.obj.get('roster_file'))

    attached = board.attach()
    if not attached.ok:
        logger.warning(f"overlay unavailable: {attached.message}")
        click.echo(f"Warning: status overlay unavailable ({attached.message}). "
                   f"Every contact will show as {STATE_NOT_CONTACTED}.", err=True)

    synced = board.sync()
    if not synced.ok:
        click.echo(f"Error: roster unavailable ({synced.message})", err=True)
        if not board.has_roster:
            board.detach()
            return None
    return board


def _print_table(contacts):
    click.echo(f"{'ID':<8} {'Nombre':<28} {'Teléfono':<14} {'Localidad':<16} {'Estado':<13} {'Última':<17} {'Por':<20}")
    click.echo("-" * 120)
    for c in contacts:
        click.echo(
            f"{c.id[:7]:<8} {c.nombre[:26]:<28} {(c.telefono or '')[:13]:<14} "
            f"{(c.localidad or '')[:15]:<16} {c.estado:<13} {_fmt_when(c):<17} "
            f"{(c.comunicado_por or '-')[:19]:<20}"
        )


@click.group()
@click.option('--roster-file', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='Read the roster from a .csv/.xlsx export instead of the web endpoint')
@click.pass_context
def cli(ctx, roster_file):
    """Outreach CRM - Contact roster & WhatsApp outreach tracking"""
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj['roster_file'] = roster_file


# =============================================================================
# CONTACTS COMMANDS
# =============================================================================

@cli.group()
def contacts():
    """Browse the merged contact roster"""
    pass


@contacts.command('list')
@click.option('--search', default='', help='Match name, phone or email')
@click.option('--status', type=click.Choice(STATUS_FILTER_CHOICES), default=STATE_NOT_CONTACTED,
              show_default=True, help='Filter by communication status')
@click.option('--locality', default='', help='Exact locality')
@click.option('--yes', is_flag=True, help=f'Skip the confirmation for --status {STATE_CONTACTED}')
@click.pass_context
@log_call
def contacts_list(ctx, search, status, locality, yes):
    """List contacts"""
    logger = logging.getLogger("outreachcrm")
    guard = filters.StatusFilterGuard(FilterState(search=search, localidad=locality))

    if guard.request_status(status) == filters.CONFIRMATION_REQUIRED:
        if yes or click.confirm(
            "Showing people who were already contacted makes it easy to message them twice. Continue?",
            default=False,
        ):
            guard.confirm()
        else:
            guard.decline()
            logger.info("contacts_list | Comunicado filter declined")
            click.echo(f"Keeping status filter: {guard.state.status}")

    board = _open_board(ctx)
    if board is None:
        return

    with board:
        visible = board.visible(guard.state)

    if not visible:
        click.echo("No contacts found.")
        return

    click.echo(f"\nFound {len(visible)} contacts:\n")
    _print_table(visible)


@contacts.command('show')
@click.argument('contact_id')
@click.pass_context
@log_call
def contacts_show(ctx, contact_id):
    """Show full contact details"""
    logger = logging.getLogger("outreachcrm")
    board = _open_board(ctx)
    if board is None:
        return

    with board:
        contact = board.get(contact_id)

    if not contact:
        logger.warning(f"contacts_show | contact_id={contact_id} not found")
        click.echo(f"Contact {contact_id} not found.", err=True)
        return

    click.echo(f"\n{'='*80}")
    click.echo(f"CONTACT {contact.id}: {contact.nombre}")
    click.echo(f"{'='*80}")
    click.echo(f"Teléfono:      {contact.telefono or '(not set)'}")
    click.echo(f"Tel. Alt:      {contact.telefono2 or '(not set)'}")
    click.echo(f"E-Mail:        {contact.email or contact.correo_electronico or '(not set)'}")
    click.echo(f"Localidad:     {contact.localidad or '(not set)'}")
    click.echo(f"DNI:           {contact.dni or '(not set)'}")
    click.echo(f"Función:       {contact.rol or '(not set)'}")
    click.echo(f"Género:        {contact.genero or '(not set)'}")
    click.echo(f"Experiencia:   {contact.experiencia or '(not set)'}")
    click.echo(f"Preferencias:  {contact.preferencias or '(not set)'}")
    click.echo(f"Estado:        {contact.estado}")
    click.echo(f"Última com.:   {_fmt_when(contact)}")
    click.echo(f"Comunicado por: {contact.comunicado_por or '-'}")
    click.echo()


# =============================================================================
# REPORTS
# =============================================================================

@cli.command('localities')
@click.pass_context
@log_call
def localities(ctx):
    """List the localities present in the roster"""
    board = _open_board(ctx)
    if board is None:
        return
    with board:
        options = board.locality_options()

    if not options:
        click.echo("No localities found.")
        return
    for loc in options:
        click.echo(loc)


@cli.command('stats')
@click.pass_context
@log_call
def stats(ctx):
    """Totals of contacted / not contacted people"""
    board = _open_board(ctx)
    if board is None:
        return
    with board:
        counts = board.counts()

    click.echo(f"Total:          {counts['total']}")
    click.echo(f"Comunicados:    {counts[STATE_CONTACTED]}")
    click.echo(f"Incomunicados:  {counts[STATE_NOT_CONTACTED]}")


# =============================================================================
# MESSAGING
# =============================================================================

@cli.command('message')
@click.argument('contact_id')
@click.option('--template', 'template_id', type=click.Choice(templates.TEMPLATE_IDS),
              help='Message template (prompted when omitted)')
@click.option('--text', default=None, help='Message body for the personalizado template')
@click.option('--as', 'actor', default=None, help='Your name, recorded as comunicadoPor (default: OPERATOR_NAME)')
@click.option('--yes', is_flag=True, help='Do not ask before sending')
@click.pass_context
@log_call
def message(ctx, contact_id, template_id, text, actor, yes):
    """Send a WhatsApp message to a contact and mark them Comunicado"""
    logger = logging.getLogger("outreachcrm")
    actor = actor or config.OPERATOR_NAME
    if not actor:
        click.echo("Error: no operator name. Use --as or set OPERATOR_NAME in .env", err=True)
        return

    board = _open_board(ctx)
    if board is None:
        return

    with board:
        contact = board.get(contact_id)
        if not contact:
            logger.warning(f"message | contact_id={contact_id} not found")
            click.echo(f"Contact {contact_id} not found.", err=True)
            return

        workflow = CommunicationWorkflow(board.overlay, actor)
        session = workflow.initiate(contact)

        if session.phase == WARNING_GATE:
            click.echo(f"\n⚠️  {contact.nombre} was already contacted on {_fmt_when(contact)} "
                       f"by {contact.comunicado_por or 'someone'}.")
            if click.confirm("Message them again anyway?", default=False):
                workflow.acknowledge(session)
            else:
                workflow.decline(session)
                click.echo("Cancelled. Nothing was sent.")
                return

        if not template_id:
            click.echo("\nMessage templates:")
            for tid, label, desc in templates.TEMPLATE_CHOICES:
                click.echo(f"  {tid:<14} {label} — {desc}")
            template_id = click.prompt("Template", type=click.Choice(templates.TEMPLATE_IDS),
                                       default=templates.SALUDO)

        if template_id == templates.PERSONALIZADO and text is None:
            text = click.prompt("Message", default=templates.custom_placeholder(contact.nombre, workflow.now()))

        workflow.choose(session, templates.make_choice(template_id, text or ''))

        click.echo(f"\n{'='*80}")
        click.echo(f"TO: {contact.nombre} ({contact.telefono or 'no phone'})")
        click.echo(f"{'='*80}")
        click.echo(workflow.preview(session).value)
        click.echo(f"{'='*80}\n")

        if not yes and not click.confirm("Send via WhatsApp?", default=True):
            workflow.cancel(session)
            click.echo("Cancelled. Nothing was sent.")
            return

        result = workflow.send(session)
        while result.error == OVERLAY_WRITE_FAILED:
            click.echo(f"Error: the message was handed off but the status could not be saved: {result.message}", err=True)
            if not click.confirm("Retry saving the status?", default=True):
                workflow.cancel(session)
                click.echo(f"Status NOT updated. {contact.nombre} still shows as {contact.estado}.", err=True)
                return
            result = workflow.retry_commit(session)

        if not result.ok:
            logger.warning(f"message | contact_id={contact_id} send failed: {result.error}: {result.message}")
            click.echo(f"Error: {result.message}", err=True)
            workflow.cancel(session)
            return

        if session.phase == COMMITTED:
            click.echo(f"✓ Opened WhatsApp for {contact.nombre} and marked {STATE_CONTACTED}")


# =============================================================================
# LIVE VIEW
# =============================================================================

@cli.command('watch')
@click.option('--status', type=click.Choice([STATE_NOT_CONTACTED, 'all']), default=STATE_NOT_CONTACTED,
              show_default=True, help='Which contacts to show')
@click.option('--locality', default='', help='Exact locality')
@click.option('--interval', default=5.0, show_default=True, help='Seconds to wait for changes between checks')
@click.pass_context
@log_call
def watch(ctx, status, locality, interval):
    """Live contact list, refreshed whenever someone records a contact (Ctrl+C to stop)"""
    board = _open_board(ctx)
    if board is None:
        return

    filter_state = FilterState(status=status, localidad=locality)

    def render(event_data):
        click.clear()
        counts = board.counts()
        click.echo(f"Total: {counts['total']}   Comunicados: {counts[STATE_CONTACTED]}   "
                   f"Incomunicados: {counts[STATE_NOT_CONTACTED]}\n")
        _print_table(board.visible(filter_state))

    bus.on(EVENT_CONTACTS_MERGED, render)
    try:
        with board:
            render({})
            while True:
                board.overlay.poll(interval)
    except KeyboardInterrupt:
        click.echo("\nStopped.")
    finally:
        bus.off(EVENT_CONTACTS_MERGED, render)


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
