"""CLI commands for Herald."""

import asyncio
import sys
from pathlib import Path

import click
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from herald.config import get_settings
from herald.db.services.membership_service import MembershipSynchronizer, ReconcileReport
from herald.db.stores import SQLGroupStore, SQLInstanceStore
from herald.lib.exceptions import HeraldError


@click.group()
@click.version_option(package_name="herald")
def cli():
    """Herald - alert plugin instance management service."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, log_level):
    """Run the Herald API server until SIGINT or SIGTERM."""
    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    from herald.app_factory import create_app

    config = Config()
    config.bind = [f"{host}:{port}"]
    config.loglevel = log_level.upper()
    config.include_server_header = False
    asyncio.run(hypercorn_serve(create_app(), config))


def _run_alembic(args: list[str]) -> None:
    """Run an Alembic command against the migrations shipped with Herald."""
    from alembic.config import CommandLine, Config

    herald_dir = Path(__file__).parent
    cfg = Config(str(herald_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(herald_dir / "alembic"))

    cmd = CommandLine(prog="herald db")
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    cfg.cmd_opts = options
    cmd.run_cmd(cfg, options)


@cli.command(context_settings={"ignore_unknown_options": True, "allow_extra_args": True})
@click.pass_context
def db(ctx):
    """Run database migrations via Alembic, e.g. ``herald db upgrade head``."""
    if not ctx.args:
        click.echo(ctx.get_help())
        return

    _run_alembic(ctx.args)


async def _with_synchronizer(action):
    """Open a database session, build a synchronizer and run ``action`` on it."""
    settings = get_settings()
    engine = create_async_engine(settings.db.url)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_maker() as session:
            synchronizer = MembershipSynchronizer(
                SQLGroupStore(session),
                SQLInstanceStore(session),
                global_group_id=settings.alerts.global_alert_group_id,
                retry_limit=settings.alerts.membership_retry_limit,
            )
            return await action(synchronizer)
    finally:
        await engine.dispose()


@cli.command("check-global-group")
def check_global_group():
    """Verify that the configured global alert group exists."""

    async def _check(synchronizer: MembershipSynchronizer) -> None:
        await synchronizer.validate_global_group()

    try:
        asyncio.run(_with_synchronizer(_check))
    except HeraldError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    click.echo(f"Global alert group {get_settings().alerts.global_alert_group_id} exists")


@cli.command("reconcile-global-group")
def reconcile_global_group():
    """Make the global alert group list exactly the GLOBAL alert plugin instances."""

    async def _reconcile(synchronizer: MembershipSynchronizer) -> ReconcileReport:
        return await synchronizer.reconcile_global_group()

    try:
        report = asyncio.run(_with_synchronizer(_reconcile))
    except HeraldError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if not report.changed:
        click.echo("Global alert group already consistent")
        return
    if report.added:
        click.echo(f"Added: {', '.join(str(i) for i in report.added)}")
    if report.removed:
        click.echo(f"Removed: {', '.join(str(i) for i in report.removed)}")


if __name__ == "__main__":
    cli()
