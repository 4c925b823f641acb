"""Flask CLI commands for operators."""
import time
from datetime import timedelta

import click
from flask import current_app


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        from toonify.extensions import db

        db.create_all()
        click.echo("Database initialized.")

    @app.cli.command("dispatch")
    @click.option("--interval", type=float, default=None, help="Seconds between polls")
    @click.option("--api-url", default="", help="Process through this API instead of in-process")
    @click.option("--token", default="", help="Bearer token for --api-url")
    def dispatch(interval, api_url, token):
        """Poll for queued images and process them one at a time."""
        from toonify.dispatcher import Dispatcher, http_callables, local_callables

        if api_url:
            if not token:
                raise click.UsageError("--token is required with --api-url")
            find_next, process = http_callables(api_url, token)
        else:
            find_next, process = local_callables(current_app._get_current_object())

        interval = interval or current_app.config["DISPATCH_INTERVAL"]
        dispatcher = Dispatcher(
            find_next,
            process,
            interval=interval,
            on_change=lambda busy: click.echo("processing..." if busy else "idle"),
        ).start()
        click.echo(f"Dispatcher polling every {interval:g}s (Ctrl+C to stop)")
        try:
            while dispatcher.active:
                time.sleep(1)
        except KeyboardInterrupt:
            click.echo("Stopping dispatcher...")
        finally:
            dispatcher.stop(timeout=interval + 5)

    @app.cli.command("stats")
    def stats():
        """Show image job counts per status."""
        from toonify.services.job_store import count_by_status

        s = count_by_status()
        total = sum(s.values())
        click.echo(f"Total images: {total}")
        for status, count in sorted(s.items()):
            click.echo(f"  {status}: {count}")

    @app.cli.command("requeue-stale")
    @click.option("--minutes", type=int, default=15, show_default=True)
    def requeue_stale(minutes):
        """Fail images stuck in processing so their owners can retry."""
        from toonify.models.image_job import ImageJob
        from toonify.services import job_store

        stale = job_store.find_stale(ImageJob.PROCESSING, timedelta(minutes=minutes))
        for job_id in [job.id for job in stale]:
            job_store.update_status(
                job_id,
                ImageJob.ERROR,
                error_message=f"Processing timed out after {minutes} minutes",
            )
        click.echo(f"Marked {len(stale)} stale image(s) as error.")
