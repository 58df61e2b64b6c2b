from datetime import timedelta
import click # Flask's CLI is built on click.
from flask.cli import AppGroup

from services import get_subscription_service

# `flask subscriptions ...` maintenance commands, registered in create_app.
subscriptions_cli = AppGroup('subscriptions', help='Subscription maintenance tasks.')


@subscriptions_cli.command('expire')
def expire_command():
    """Expire every active subscription whose billing window has ended."""
    expired = get_subscription_service().expire_stale()
    click.echo(f"Expired {expired} subscription(s).")


@subscriptions_cli.command('prune-pending')
@click.option('--older-than-hours', default=24, show_default=True, type=click.IntRange(min=1),
              help='Cancel pending checkouts created more than this many hours ago.')
def prune_pending_command(older_than_hours):
    """Cancel abandoned pending checkouts."""
    canceled = get_subscription_service().prune_pending(timedelta(hours=older_than_hours))
    click.echo(f"Canceled {canceled} pending subscription(s).")
