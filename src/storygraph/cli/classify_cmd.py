"""storygraph classify command."""

from __future__ import annotations

from pathlib import Path

import typer

from storygraph.cli.output import error, output_json, progress
from storygraph.core.config import get_config
from storygraph.core.exceptions import StoryGraphError
from storygraph.db.repository import Repository
from storygraph.pipeline.batch import SELECTORS, PhaseToken, run_classification_batch
from storygraph.pipeline.classify import build_engine


def register(app: typer.Typer) -> None:
    @app.command("classify")
    def classify_cmd(
        batch: str = typer.Argument(
            "categorize",
            help="Batch to run: categorize, broll, tech, transcribe, auto",
        ),
        asset_id: str = typer.Option(None, "--asset", "-a", help="Run on a single asset only"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Run a forensic classification phase over the registry."""
        if batch not in SELECTORS:
            error(f"Unknown batch: {batch}. Use one of: {', '.join(SELECTORS)}")
            raise typer.Exit(1)
        select, phase = SELECTORS[batch]

        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)
        try:
            if asset_id:
                assets = [repo.get_asset(asset_id)]
            else:
                assets = select(repo.list_all())
            if not assets:
                progress(f"Nothing to do for batch '{batch}'.")
                output_json({"phase": batch, "total": 0, "failed": 0, "pending": 0, "assets": []})
                return

            progress(f"Running '{batch}' on {len(assets)} asset(s).")
            engine = build_engine(repo, config)
            output_json(run_classification_batch(engine, assets, phase, PhaseToken()))
        except StoryGraphError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()
