"""Command-line interface for invoicegrid."""

from __future__ import annotations

import json
from pathlib import Path

import click

from invoicegrid import __version__


@click.group()
@click.version_option(version=__version__, prog_name="invoicegrid")
def main() -> None:
    """invoicegrid -- commercial invoice line-item editor.

    Import -> Edit -> Export
    """


# ---------------------------------------------------------------------------
# New
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(file_okay=False))
def new(directory: str) -> None:
    """Create a session directory at DIRECTORY with a default invoicegrid.yaml."""
    from invoicegrid.config import CONFIG_FILENAME, write_default_config

    target = Path(directory)
    if (target / CONFIG_FILENAME).exists():
        raise click.ClickException(f"{target / CONFIG_FILENAME} already exists")
    result = write_default_config(target)
    click.echo(f"Created session config at {result}")


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


@main.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--out", "out_path", default=None, type=click.Path(dir_okay=False), help="Write the normalized rows to .xlsx or .csv.")
@click.option("--totals", "include_totals", is_flag=True, help="Append a TOTAL row to the export.")
@click.option("--json", "as_json", is_flag=True, help="Print normalized rows as JSON.")
@click.option("--header-marker", default=None, help="Override the header marker (default from config).")
@click.option("--config-dir", default=".", type=click.Path(file_okay=False), help="Session directory holding invoicegrid.yaml and logs/.")
def import_cmd(
    file: str,
    out_path: str | None,
    include_totals: bool,
    as_json: bool,
    header_marker: str | None,
    config_dir: str,
) -> None:
    """Normalize an invoice spreadsheet FILE into line-item rows.

    Lifecycle: *Import* -> Edit -> Export
    """
    from invoicegrid.config import load_config
    from invoicegrid.errors import ImportFailedError
    from invoicegrid.export import write_export
    from invoicegrid.importer import normalize_grid, read_grid
    from invoicegrid.logging.events import (
        EventType,
        emit_error,
        emit_info,
        import_error_code,
        set_session_dir,
    )
    from invoicegrid.query import column_totals

    session_dir = Path(config_dir)
    config = load_config(session_dir)
    set_session_dir(session_dir)

    path = Path(file)
    emit_info(EventType.import_started, f"Import started: {path.name}", {"filename": path.name})
    try:
        grid = read_grid(path.read_bytes(), path.name)
        rows = normalize_grid(
            grid,
            header_marker=header_marker or str(config["header_marker"]),
            trailer_marker=str(config["trailer_marker"]),
        )
    except ImportFailedError as exc:
        emit_error(
            EventType.import_failed,
            str(exc),
            {"filename": path.name},
            error_code=import_error_code(exc),
        )
        raise click.ClickException(str(exc))
    emit_info(
        EventType.import_completed,
        f"Imported {len(rows)} rows from {path.name}",
        {"filename": path.name, "rows": len(rows)},
    )

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in rows], indent=2))
    else:
        click.echo(f"Imported {len(rows)} rows from {path.name}")
        for key, total in column_totals(rows).items():
            click.echo(f"  {key:20s} {total:,.2f}")

    if out_path:
        try:
            written = write_export(
                rows,
                Path(out_path),
                include_totals=include_totals,
                sheet_title=str(config["export_sheet_title"]),
            )
        except ValueError as exc:
            raise click.ClickException(str(exc))
        emit_info(
            EventType.export_completed,
            f"Exported {len(rows)} rows to {written.name}",
            {"format": written.suffix.lstrip("."), "rows": len(rows), "totals": include_totals},
        )
        click.echo(f"Export: {written}", err=as_json)


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(file_okay=False))
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--port", type=int, default=None, help="Port (auto-select if omitted).")
@click.option("--no-open", is_flag=True, help="Don't auto-open the browser.")
def serve(directory: str, host: str, port: int | None, no_open: bool) -> None:
    """Serve the editor API for the session in DIRECTORY."""
    import socket
    import webbrowser

    import uvicorn

    from invoicegrid.ui.server import create_app

    app = create_app(Path(directory))

    if port is None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, 0))
            port = s.getsockname()[1]

    url = f"http://{host}:{port}"
    click.echo(f"Serving API at {url}/api/state")
    click.echo("Press Ctrl+C to stop")

    if not no_open:
        import threading
        threading.Timer(0.8, lambda: webbrowser.open(f"{url}/docs")).start()

    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        click.echo("\nStopped.")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--limit", default=50, type=int, help="Maximum events to show.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def events(directory: str, level: str | None, event_type: str | None, limit: int, as_json: bool) -> None:
    """Show logged events for the session in DIRECTORY, newest first."""
    from invoicegrid.logging.sink import EventSink

    sink = EventSink(Path(directory))
    found = sink.read_global(level=level, event_type=event_type, limit=limit)

    if as_json:
        click.echo(json.dumps(found, indent=2))
        return
    if not found:
        click.echo("No events found.")
        return
    for evt in found:
        code = f" [{evt['error_code']}]" if evt.get("error_code") else ""
        click.echo(f"{evt.get('ts', '')}  {evt.get('level', ''):7s} {evt.get('event_type', '')}{code}  {evt.get('message', '')}")
