"""storygraph index command."""

from __future__ import annotations

from pathlib import Path

import typer

from storygraph.cli.output import error, output_json, progress
from storygraph.core.config import get_config
from storygraph.core.exceptions import StoryGraphError
from storygraph.db.repository import Repository
from storygraph.pipeline.indexer import index_media


def register(app: typer.Typer) -> None:
    @app.command("index")
    def index_cmd(
        path: str = typer.Argument(None, help="Media folder or file (defaults to the configured media root)"),
        no_probe: bool = typer.Option(False, "--no-probe", help="Skip ffprobe duration lookup"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Register local media files in the asset registry."""
        config = get_config(db_path=Path(db) if db else None)
        root = path or config.media_root
        if not root:
            error("No path given and no media_root configured (storygraph config set media_root <dir>)")
            raise typer.Exit(1)

        target = Path(root).expanduser()
        if not target.exists():
            error(f"Path not found: {target}")
            raise typer.Exit(1)

        repo = Repository(config.db_path)
        try:
            progress(f"Indexing: {target}")
            result = index_media(target, repo, probe_duration=not no_probe)
            if not result["total"]:
                error(f"No media files found at: {target}")
                raise typer.Exit(1)
            output_json(result)
        except StoryGraphError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()
