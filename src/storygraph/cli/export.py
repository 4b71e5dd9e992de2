"""storygraph export command — FCP7 XML timeline."""

from __future__ import annotations

from pathlib import Path

import typer

from storygraph.cli.output import error, output_json, progress, warn
from storygraph.core.config import get_config
from storygraph.core.exceptions import FrameRateMismatchError, StoryGraphError
from storygraph.db.repository import Repository
from storygraph.pipeline.timeline import assemble_timeline


def register(app: typer.Typer) -> None:
    @app.command("export")
    def export_cmd(
        output: str = typer.Option(None, "--output", "-o", help="Write XML here instead of stdout"),
        name: str = typer.Option(None, "--name", help="Sequence name"),
        media_root: str = typer.Option(None, "--media-root", help="Root the XML paths point at"),
        strict: bool = typer.Option(False, "--strict", help="Fail on frame-rate mismatches"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Export the synced multicam timeline as FCP7 XML."""
        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)

        try:
            timeline = assemble_timeline(
                repo.list_all(),
                media_root if media_root is not None else config.media_root,
                name or config.sequence_name,
                fallback_timebase=config.fallback_timebase,
                strict=strict,
            )
        except FrameRateMismatchError as e:
            error(str(e))
            for filename in e.mismatches:
                warn(f"rate mismatch: {filename}")
            raise typer.Exit(1)
        except StoryGraphError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()

        if not timeline.video_tracks and not timeline.audio_tracks:
            warn("No interview angles or master audio in the registry; timeline is empty.")
        for note in timeline.notes:
            warn(str(note))

        xml = timeline.to_xml()
        if output is None:
            print(xml, end="")
            return

        out = Path(output).expanduser()
        out.write_text(xml, encoding="utf-8")
        progress(f"Wrote {out}")
        output_json({
            "path": str(out),
            "sequence": timeline.name,
            "timebase": timeline.format.timebase,
            "display_format": timeline.format.display_format,
            "video_tracks": len(timeline.video_tracks),
            "audio_tracks": len(timeline.audio_tracks),
            "warnings": [str(n) for n in timeline.warnings],
        })
