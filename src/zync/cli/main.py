"""zync CLI main entry point."""

from __future__ import annotations

from typing import Annotated, Any

import typer

from zync.cli._helpers import get_config, get_storage, load_snapshot, output_result, run_async
from zync.cli.tui import render_conflicts, render_pending, render_status
from zync.config import configure_logging
from zync.core.models import SyncState

app = typer.Typer(
    name="zync",
    help="zync - offline-first sync engine tools",
    no_args_is_help=True,
)

JsonOption = Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")]


@app.callback()
def _configure() -> None:
    configure_logging(get_config().sync.min_log_level)


# =============================================================================
# State Inspection
# =============================================================================


@app.command()
def status(json_output: JsonOption = False) -> None:
    """Show the persisted sync state: queue size, watermarks, conflicts.

    Examples:
        zync status
        zync status --json
    """
    config = get_config()

    async def _status() -> tuple[dict[str, Any], SyncState]:
        data, state = await load_snapshot(config)
        collections = {
            name: len(items) for name, items in ((data or {}).get("collections") or {}).items()
        }
        result = {
            "store": config.sync.storage_name,
            "backend": config.sync.storage_backend,
            "stored": data is not None,
            "first_load_done": state.first_load_done,
            "pending_count": len(state.pending_changes),
            "conflict_count": len(state.conflicts),
            "last_pulled": dict(state.last_pulled),
            "collections": collections,
        }
        return result, state

    result, state = run_async(_status())
    if json_output:
        output_result(result, as_json=True)
        return
    if not result["stored"]:
        typer.secho(f"No stored state for {config.sync.storage_name}", fg=typer.colors.YELLOW)
        return

    render_status(state, result["collections"], config.sync.storage_name)


@app.command()
def pending(json_output: JsonOption = False) -> None:
    """List pending changes waiting to be pushed."""
    config = get_config()
    _, state = run_async(load_snapshot(config))
    if json_output:
        output_result({"pending": [p.to_dict() for p in state.pending_changes]}, as_json=True)
        return
    render_pending(state)


@app.command()
def conflicts(json_output: JsonOption = False) -> None:
    """List unresolved conflicts."""
    config = get_config()
    _, state = run_async(load_snapshot(config))
    if json_output:
        output_result(
            {"conflicts": {k: c.to_dict() for k, c in state.conflicts.items()}}, as_json=True
        )
        return
    render_conflicts(state)


@app.command()
def reset(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete the persisted state (records, queue, watermarks)."""
    config = get_config()
    if not yes:
        typer.confirm(
            f"Delete stored state '{config.sync.storage_name}'? Pending changes will be lost",
            abort=True,
        )

    async def _reset() -> None:
        storage = await get_storage(config)
        await storage.remove_item(config.sync.storage_name)

    run_async(_reset())
    output_result({"message": f"Reset stored state '{config.sync.storage_name}'"})


# =============================================================================
# Configuration
# =============================================================================


@app.command("config")
def config_cmd(
    init: Annotated[bool, typer.Option("--init", help="Write config.toml with defaults")] = False,
    json_output: JsonOption = False,
) -> None:
    """Show the effective configuration."""
    config = get_config()
    if init:
        config.save()
        output_result({"message": f"Wrote {config.config_path}"})
        return
    if json_output:
        output_result(config.to_dict(), as_json=True)
        return

    typer.secho(f"Config: {config.config_path}", fg=typer.colors.BRIGHT_BLACK)
    for key, value in config.sync.to_dict().items():
        typer.echo(f"  {key} = {value}")
    typer.echo(f"  server = {config.server.host}:{config.server.port}")


# =============================================================================
# Utility Commands
# =============================================================================


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", "-h", help="Host to bind to")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Port to bind to")] = None,
    reload: Annotated[
        bool, typer.Option("--reload", "-r", help="Enable auto-reload for development")
    ] = False,
) -> None:
    """Run the reference backend (in-memory tables).

    Examples:
        zync serve                    # Run on localhost:8000
        zync serve -p 9000            # Run on port 9000
    """
    try:
        import uvicorn
    except ImportError:
        typer.echo("Error: uvicorn not installed. Run: pip install zync[server]", err=True)
        raise typer.Exit(1)

    config = get_config()
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    typer.echo(f"Starting zync backend on http://{bind_host}:{bind_port}")
    typer.echo(f"  Docs: http://{bind_host}:{bind_port}/docs")

    uvicorn.run(
        "zync.server.app:create_app",
        host=bind_host,
        port=bind_port,
        reload=reload,
        factory=True,
    )


@app.command()
def version() -> None:
    """Show version information."""
    from zync import __version__

    typer.echo(f"zync v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
