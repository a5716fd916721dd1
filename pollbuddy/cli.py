# pollbuddy/cli.py

# Flask CLI commands: `flask --app pollbuddy <command>`.

import logging
import time

import click

from pollbuddy import app, db
from pollbuddy.operations.cleanup import cleanup_orphans
from pollbuddy.transport.telegram import TransportError

logger = logging.getLogger(__name__)

POLL_RETRY_SECONDS = 5


@app.cli.command('init-db')
def init_db():
    """Create all tables (use `flask db upgrade` for migrations)."""
    db.create_all()
    click.echo("Database tables created.")


@app.cli.command('cleanup-db')
def cleanup_db():
    """Remove rows that reference deleted users."""
    removed = cleanup_orphans()
    for table, count in removed.items():
        click.echo(f"{table}: {count}")
    click.echo("Database cleanup completed.")


@app.cli.command('export-public-key')
@click.option('--output', '-o', type=click.Path(dir_okay=False), default=None,
              help="Write the PEM to a file instead of stdout.")
def export_public_key(output):
    """Print the election public key so ballots can be independently checked."""
    from pollbuddy.routes import encryption_service
    pem = encryption_service.get_public_key_pem()
    if output:
        with open(output, 'w') as f:
            f.write(pem)
        click.echo(f"Public key written to {output}")
    else:
        click.echo(pem, nl=False)


@app.cli.command('set-webhook')
@click.argument('url')
def set_webhook(url):
    """Point the bot at this deployment's /telegram/webhook URL."""
    from pollbuddy.routes import transport
    try:
        transport.set_webhook(url, app.config['WEBHOOK_SECRET'] or None)
    except TransportError as e:
        raise click.ClickException(str(e))
    click.echo(f"Webhook set to {url}")


@app.cli.command('poll')
@click.option('--timeout', default=20, show_default=True, help="Long-poll timeout in seconds.")
def poll(timeout):
    """Run the bot with long polling instead of a webhook."""
    from pollbuddy.routes import handle_update, reconcile_campaign, transport

    reconcile_campaign()
    click.echo("NACOSPollBuddy is running (long polling)...")
    offset = None
    while True:
        try:
            updates = transport.get_updates(offset, timeout=timeout)
        except TransportError as e:
            logger.warning(f"getUpdates failed: {e}")
            time.sleep(POLL_RETRY_SECONDS)
            continue
        for update in updates:
            offset = update['update_id'] + 1
            with app.app_context():
                handle_update(update)
