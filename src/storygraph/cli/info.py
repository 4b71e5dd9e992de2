"""storygraph info command."""

from __future__ import annotations

from pathlib import Path

import typer

from storygraph.cli.output import error, output_json
from storygraph.core.config import get_config
from storygraph.core.exceptions import AssetNotFoundError
from storygraph.db.repository import Repository


def register(app: typer.Typer) -> None:
    @app.command("info")
    def info_cmd(
        asset_id: str = typer.Argument(..., help="Asset ID to inspect"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Show the full registry record for one asset."""
        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)

        try:
            output_json(repo.get_asset(asset_id).model_dump(mode="json"))
        except AssetNotFoundError:
            error(f"Asset not found: {asset_id}")
            raise typer.Exit(1)
        finally:
            repo.close()
