import click
from flask.cli import AppGroup

from skillbridge.firestore_models import parse_datetime
from skillbridge.services import counters
from skillbridge.services import session_lifecycle as lifecycle

lifecycle_cli = AppGroup('lifecycle', help='Scheduled jobs for the session lifecycle.')


@lifecycle_cli.command('complete-sessions')
@click.option('--now', 'now', type=str, default=None, help='ISO timestamp to use as the current time')
def complete_sessions(now):
    """Mark approved sessions whose date has passed as completed"""
    when = parse_datetime(now) if now else None
    if now and when is None:
        raise click.BadParameter('Expected an ISO 8601 timestamp', param_hint='--now')
    completed = lifecycle.complete_elapsed_sessions(when)
    for session_id in completed:
        click.echo(f'completed {session_id}')
    click.echo(f'{len(completed)} session(s) completed')


@lifecycle_cli.command('reconcile-counters')
@click.option('-s', '--session-id', type=str, default=None, help='Only reconcile this session')
def reconcile_counters(session_id):
    """Recompute attendee and upvote counters from the ledgers"""
    repaired = counters.reconcile_all(session_id)
    for repaired_id, values in sorted(repaired.items()):
        click.echo(f"{repaired_id}: attendeeCount={values['attendeeCount']} upvotes={values['upvotes']}")
    click.echo(f'{len(repaired)} session(s) repaired')


@lifecycle_cli.command('seed')
def seed():
    """Populate the store with demo users, sessions and proposals"""
    from seed import seed_database
    summary = seed_database()
    for key, value in summary.items():
        click.echo(f'{key}: {value}')


def register_cli(app):
    app.cli.add_command(lifecycle_cli)
