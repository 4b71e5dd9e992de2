"""storygraph poll command."""

from __future__ import annotations

from pathlib import Path

import typer

from storygraph.cli.output import error, output_json, progress
from storygraph.core.config import get_config
from storygraph.core.exceptions import StoryGraphError
from storygraph.db.repository import Repository
from storygraph.pipeline.classify import build_engine
from storygraph.pipeline.poller import PollSummary, poll_pending, run_poller


def register(app: typer.Typer) -> None:
    @app.command("poll")
    def poll_cmd(
        watch: bool = typer.Option(False, "--watch", "-w", help="Keep polling until interrupted"),
        interval: float = typer.Option(None, "--interval", help="Seconds between ticks (with --watch)"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Check in-flight annotation jobs and store finished results."""
        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)
        try:
            engine = build_engine(repo, config)
            if not watch:
                output_json(poll_pending(repo, engine).as_dict())
                return

            def on_tick(summary: PollSummary) -> None:
                output_json(summary.as_dict())

            interval_sec = interval or config.poll_interval_sec
            progress(f"Polling every {interval_sec:g}s. Ctrl-C to stop.")
            try:
                run_poller(repo, engine, interval_sec, on_tick=on_tick)
            except KeyboardInterrupt:
                progress("Stopped.")
        except StoryGraphError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()
