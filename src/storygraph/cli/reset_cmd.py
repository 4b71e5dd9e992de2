"""storygraph reset command."""

from __future__ import annotations

from pathlib import Path

import typer

from storygraph.cli.output import error, output_json
from storygraph.core.config import get_config
from storygraph.core.exceptions import AssetNotFoundError
from storygraph.db.repository import Repository


def register(app: typer.Typer) -> None:
    @app.command("reset")
    def reset_cmd(
        asset_id: str = typer.Argument(None, help="Reset one asset's forensic state"),
        all_assets: bool = typer.Option(False, "--all", help="Remove every asset from the registry"),
        yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Reset one asset, or clear the whole registry with --all."""
        if not asset_id and not all_assets:
            error("Give an asset ID or --all")
            raise typer.Exit(1)

        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)
        try:
            if all_assets:
                if not yes and not typer.confirm("Remove every asset from the registry?", err=True):
                    raise typer.Exit(1)
                repo.clear()
                output_json({"status": "cleared"})
            else:
                repo.reset_asset(asset_id)
                output_json({"status": "reset", "asset_id": asset_id})
        except AssetNotFoundError:
            error(f"Asset not found: {asset_id}")
            raise typer.Exit(1)
        finally:
            repo.close()
