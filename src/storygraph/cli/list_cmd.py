"""storygraph list command."""

from __future__ import annotations

from pathlib import Path

import typer

from storygraph.cli.output import output_json
from storygraph.core.config import get_config
from storygraph.db.repository import Repository


def register(app: typer.Typer) -> None:
    @app.command("list")
    def list_cmd(
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """List all registered assets."""
        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)

        try:
            items = repo.list_items()
            output_json({
                "assets": [i.model_dump() for i in items],
                "total": len(items),
            })
        finally:
            repo.close()
