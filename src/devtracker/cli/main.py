"""Typer CLI entrypoint and command definitions for devtracker."""

import json
from pathlib import Path

import typer

from devtracker.core.defaults import DEFAULT_DATA_DIR, DEFAULT_STATS_DAYS

app = typer.Typer()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Local developer activity tracker."""
    from devtracker.core.logging import configure_logging

    configure_logging(verbose)


# -- stats --------------------------------------------------------------------


@app.command("stats")
def stats_cmd(
    days: int = typer.Option(DEFAULT_STATS_DAYS, min=1, help="Window length in days"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Tracker data directory"),
) -> None:
    """Print activity statistics for the last N days as JSON."""
    from devtracker.service import open_store
    from devtracker.stats.report import compute_stats, dump_stats

    store = open_store(data_dir)
    events = store.query()
    stats = compute_stats(events, days, all_events=events)
    typer.echo(json.dumps(dump_stats(stats), indent=2))


@app.command("summary")
def summary_cmd(
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Tracker data directory"),
) -> None:
    """Print today's summary line (respects enableNotifications)."""
    from devtracker.core.config import TrackerConfig
    from devtracker.service import open_store
    from devtracker.stats.report import compute_stats, summary_line

    if not TrackerConfig(data_dir).enable_notifications:
        typer.echo("Notifications are disabled.")
        return
    events = open_store(data_dir).query()
    line = summary_line(compute_stats(events, 1))
    typer.echo(line or "No activity recorded today.")


# -- export -------------------------------------------------------------------


@app.command("export")
def export_cmd(
    out: str = typer.Option(..., "--out", help="Destination file"),
    fmt: str = typer.Option(None, "--format", help="json, csv or parquet (default: exportFormat setting)"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Tracker data directory"),
) -> None:
    """Export all events, sessions and 30-day stats."""
    from devtracker.core.config import TrackerConfig
    from devtracker.report.export import EXPORT_FORMATS, build_snapshot, export_snapshot
    from devtracker.service import open_store

    fmt = fmt or TrackerConfig(data_dir).export_format
    if fmt not in EXPORT_FORMATS:
        typer.echo(f"Failed to export data: unsupported format {fmt!r}", err=True)
        raise typer.Exit(code=1)

    store = open_store(data_dir)
    snapshot = build_snapshot(store.query(), store.sessions.sessions)
    try:
        out_path = export_snapshot(snapshot, Path(out), fmt)
    except OSError as exc:
        typer.echo(f"Failed to export data: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Exported {snapshot.total_events} events to {out_path}")


# -- sync ---------------------------------------------------------------------


@app.command("sync")
def sync_cmd(
    token: str = typer.Option(None, "--token", help="Session token to store before syncing"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Tracker data directory"),
) -> None:
    """Push new events and sessions to the remote API (enables sync)."""
    import asyncio

    from devtracker.core.config import TrackerConfig
    from devtracker.service import open_store
    from devtracker.sync.client import SyncClient

    config = TrackerConfig(data_dir)
    client = SyncClient(
        Path(data_dir),
        open_store(data_dir),
        enabled=lambda: config.enable_sync,
        api_url=lambda: config.api_url,
    )
    if token:
        client.set_token(token)
    if not config.enable_sync:
        config.update({"enableSync": True})

    result = asyncio.run(client.sync())
    if not result.success:
        typer.echo(f"Sync failed: {result.error or 'Unknown error'}", err=True)
        raise typer.Exit(code=1)
    if result.message:
        typer.echo(result.message)
    else:
        typer.echo(f"Synced {result.events_synced} events and {result.sessions_synced} sessions")


# -- clear / toggle -----------------------------------------------------------


@app.command("clear")
def clear_cmd(
    yes: bool = typer.Option(False, "--yes", help="Confirm deletion of all activity data"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Tracker data directory"),
) -> None:
    """Delete every stored event and session."""
    from devtracker.service import open_store

    if not yes:
        typer.echo("Refusing to clear activity data without --yes", err=True)
        raise typer.Exit(code=1)
    if not open_store(data_dir).clear():
        typer.echo("Failed to clear data", err=True)
        raise typer.Exit(code=1)
    typer.echo("Activity data cleared")


@app.command("toggle")
def toggle_cmd(
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Tracker data directory"),
) -> None:
    """Flip the enableTracking setting."""
    from devtracker.core.config import TrackerConfig

    config = TrackerConfig(data_dir)
    enabled = not config.enable_tracking
    config.update({"enableTracking": enabled})
    typer.echo("Activity tracking enabled" if enabled else "Activity tracking disabled")


# -- config -------------------------------------------------------------------
config_app = typer.Typer()
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show_cmd(
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Tracker data directory"),
) -> None:
    """Print the resolved configuration as JSON."""
    from devtracker.core.config import TrackerConfig

    typer.echo(json.dumps(TrackerConfig(data_dir).as_dict(), indent=2))


@config_app.command("set")
def config_set_cmd(
    key: str = typer.Argument(..., help="Option name, e.g. dataRetentionDays"),
    value: str = typer.Argument(..., help="New value; JSON literals are decoded"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Tracker data directory"),
) -> None:
    """Validate and persist one configuration option."""
    from devtracker.core.config import TrackerConfig

    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value

    try:
        TrackerConfig(data_dir).update({key: parsed})
    except ValueError as exc:
        typer.echo(f"Invalid setting: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {json.dumps(parsed)}")


if __name__ == "__main__":
    app()
