"""storygraph align command."""

from __future__ import annotations

from pathlib import Path

import typer

from storygraph.cli.output import error, output_json, progress
from storygraph.core.config import get_config
from storygraph.core.exceptions import StoryGraphError
from storygraph.db.repository import Repository
from storygraph.pipeline.batch import PhaseToken, run_alignment


def register(app: typer.Typer) -> None:
    @app.command("align")
    def align_cmd(
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Sync interview angles to the master audio by waveform correlation."""
        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)
        try:
            progress("Decoding master audio...")
            output_json(run_alignment(repo, config, PhaseToken()))
        except StoryGraphError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()
