"""Entry-point for the Mentora media service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from mentora.bootstrap import initialize_app
from mentora.logging_utils import build_log_handlers, configure_logging
from mentora.services.chunks import ChunkStore
from mentora.services.duration import DurationProbe, ProbeFailure
from mentora.services.naming import format_duration
from mentora.services.storage import LectureRepository
from mentora.web import create_app


LOGGER = logging.getLogger("mentora.cli")


cli = typer.Typer(add_completion=False, help="Mentora media management commands")


def _prepare_logging(uploads_root: Path) -> None:
    configure_logging(handlers=build_log_handlers(uploads_root))


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None)


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="MENTORA_ROOT_PATH",
    ),
) -> None:
    """Run the FastAPI upload service."""

    app_config = initialize_app()
    _prepare_logging(app_config.uploads_root)

    repository = LectureRepository(app_config)
    normalized_root = _normalize_root_path(root_path)
    app = create_app(repository, config=app_config, root_path=normalized_root)

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    LOGGER.info("Serving uploads from %s on %s:%s", app_config.uploads_root, host, port)
    server.run()


@cli.command()
def probe(
    video: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="Path to the video file to measure.",
    ),
) -> None:
    """Print the duration the upload pipeline would record for VIDEO."""

    config = initialize_app()
    _prepare_logging(config.uploads_root)

    duration_probe = DurationProbe(config.duration_policy, ffprobe_binary=config.ffprobe_binary)
    try:
        seconds = duration_probe.probe(video)
    except ProbeFailure as error:
        typer.echo(f"Duration unavailable: {error}")
        raise typer.Exit(code=1) from error
    typer.echo(f"{seconds} seconds ({format_duration(seconds)})")


@cli.command("purge-fragments")
def purge_fragments(
    older_than: float = typer.Option(
        24.0,
        "--older-than",
        min=0.0,
        help="Remove staged fragments untouched for this many hours.",
    ),
) -> None:
    """Delete orphaned upload fragments left behind by abandoned uploads."""

    config = initialize_app()
    _prepare_logging(config.uploads_root)

    removed = ChunkStore(config.temp_root).purge_orphans(older_than * 3600.0)
    for path in removed:
        typer.echo(f"Removed {path.name}")
    typer.echo(f"Purged {len(removed)} fragment(s) from {config.temp_root}")


if __name__ == "__main__":
    cli()
