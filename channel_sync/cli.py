#!/usr/bin/env python3
"""
Channel Sync CLI
Command-line entry point for schedulers and operators
"""

import asyncio
import json
import sys
from datetime import datetime
from typing import Optional

import click

from channel_sync.admin import ChannelAdminService
from channel_sync.config import get_settings
from channel_sync.contracts import ChannelSyncError
from channel_sync.credentials import CredentialCipher
from channel_sync.database.connection import Database
from channel_sync.database.repository import ChannelConnectionRepository
from channel_sync.events import EventBus
from channel_sync.factory import ClientFactory
from channel_sync.importer import ReservationImporter
from channel_sync.orchestrator import ChannelSyncService
from channel_sync.utils.logging import configure_logging


class ChannelSyncCLI:
    """Wires the services for one CLI invocation"""

    def __init__(self, database_url: Optional[str] = None):
        self.settings = get_settings()
        self.database_url = database_url or self.settings.database_url
        self.db = None
        self.sync_service = None
        self.admin = None

    async def initialize(self):
        self.db = Database(self.database_url)
        cipher = CredentialCipher(self.settings.resolved_credentials_key())
        event_bus = EventBus()
        factory = ClientFactory(cipher, self.settings)
        self.sync_service = ChannelSyncService(
            self.db,
            factory,
            importer=ReservationImporter(self.db, event_bus),
            event_bus=event_bus,
            settings=self.settings,
        )
        self.admin = ChannelAdminService(
            self.db, cipher, self.sync_service, factory, self.settings
        )

    async def cleanup(self):
        if self.db is not None:
            await self.db.dispose()


def _echo(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _run(ctx, func):
    """Run an async command body against a freshly initialized CLI instance"""
    instance = ctx.obj["cli"]

    async def _main():
        await instance.initialize()
        try:
            return await func(instance)
        finally:
            await instance.cleanup()

    try:
        return asyncio.run(_main())
    except ChannelSyncError as e:
        _echo({"error": e.error_code, "message": e.message, "details": e.details})
        sys.exit(1)


@click.group()
@click.option('--database-url', default=None, help='Database connection URL (defaults to settings)')
@click.pass_context
def cli(ctx, database_url):
    """Hotel channel synchronization"""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    ctx.ensure_object(dict)
    ctx.obj['cli'] = ChannelSyncCLI(database_url)


@cli.command('init-db')
@click.pass_context
def init_db(ctx):
    """Create the channel sync tables"""

    async def _init(instance):
        await instance.db.create_all()

    _run(ctx, _init)
    click.echo("✓ Database schema created")


def _push_command(name, sync_type):
    @cli.command(name, help=f"Push {sync_type} to a channel")
    @click.argument('channel')
    @click.option('--room-type', type=int, default=None, help='Limit to one local room type')
    @click.option('--start', 'start_date', type=click.DateTime(formats=['%Y-%m-%d']), default=None,
                  help='First night (YYYY-MM-DD), defaults to today')
    @click.option('--end', 'end_date', type=click.DateTime(formats=['%Y-%m-%d']), default=None,
                  help='Last night (YYYY-MM-DD)')
    @click.pass_context
    def command(ctx, channel, room_type, start_date, end_date):

        async def _push(instance):
            push = getattr(instance.sync_service, f"push_{sync_type}")
            return await push(
                channel,
                room_type_id=room_type,
                start_date=start_date.date() if start_date else None,
                end_date=end_date.date() if end_date else None,
            )

        outcome = _run(ctx, _push)
        _echo(outcome.as_dict())
        if not outcome.success:
            sys.exit(1)

    return command


push_availability = _push_command('push-availability', 'availability')
push_rates = _push_command('push-rates', 'rates')


@cli.command('pull-reservations')
@click.argument('channel')
@click.option('--since', type=click.DateTime(), default=None,
              help='Only reservations created since this time (defaults to the last sync)')
@click.pass_context
def pull_reservations(ctx, channel, since: Optional[datetime]):
    """Pull reservations from a channel and import them"""

    async def _pull(instance):
        return await instance.sync_service.pull_reservations(channel, since=since)

    outcome = _run(ctx, _pull)
    _echo(outcome.as_dict())
    if not outcome.success:
        sys.exit(1)


@cli.command('full-sync')
@click.argument('channel')
@click.pass_context
def full_sync(ctx, channel):
    """Push availability and rates, then pull reservations"""

    async def _sync(instance):
        return await instance.sync_service.full_sync(channel)

    outcome = _run(ctx, _sync)
    _echo(outcome.as_dict())
    if not outcome.success:
        sys.exit(1)


@cli.command('test-connection')
@click.argument('channel')
@click.pass_context
def check_connection(ctx, channel):
    """Validate the stored credentials of a channel"""

    async def _test(instance):
        async with instance.db.session() as session:
            connection = await ChannelConnectionRepository(session).get_by_channel_name(channel)
        if connection is None:
            return None
        return await instance.admin.test_connection(connection.id)

    result = _run(ctx, _test)
    if result is None:
        _echo({"success": False, "message": "Connection not found."})
        sys.exit(1)

    _echo({
        "success": result.success,
        "message": result.message,
        "failure": result.failure.value if result.failure else None,
    })
    if not result.success:
        sys.exit(1)


@cli.command('sync-log')
@click.option('--channel', default=None, help='Filter by channel')
@click.option('--direction', type=click.Choice(['push', 'pull']), default=None)
@click.option('--status', type=click.Choice(['pending', 'success', 'partial', 'failed']), default=None)
@click.option('--page', type=int, default=1, show_default=True)
@click.option('--per-page', type=int, default=20, show_default=True)
@click.pass_context
def sync_log(ctx, channel, direction, status, page, per_page):
    """Show sync log entries, newest first"""

    async def _list(instance):
        return await instance.admin.list_sync_log(
            channel=channel,
            direction=direction,
            status=status,
            page=page,
            per_page=per_page,
        )

    _echo(_run(ctx, _list))


@cli.command('purge-log')
@click.option('--days', type=int, default=None, help='Retention in days (defaults to settings)')
@click.pass_context
def purge_log(ctx, days):
    """Delete sync log entries older than the retention period"""

    async def _purge(instance):
        return await instance.admin.purge_sync_log(days)

    removed = _run(ctx, _purge)
    click.echo(f"✓ Removed {removed} sync log entries")


if __name__ == '__main__':
    cli()
