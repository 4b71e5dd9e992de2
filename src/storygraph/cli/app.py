"""Typer root app — wires all subcommands together."""

from __future__ import annotations

import json

import typer

from storygraph import __version__

app = typer.Typer(
    name="storygraph",
    help="storygraph — forensic media registry and multicam sync for documentary footage.",
    add_completion=False,
    no_args_is_help=True,
)


@app.command("version")
def version_cmd() -> None:
    """Print version info as JSON."""
    print(json.dumps({"version": __version__, "package": "storygraph"}))


# --- Register direct commands ---

from storygraph.cli.index_cmd import register as register_index  # noqa: E402
from storygraph.cli.classify_cmd import register as register_classify  # noqa: E402
from storygraph.cli.poll_cmd import register as register_poll  # noqa: E402
from storygraph.cli.align_cmd import register as register_align  # noqa: E402
from storygraph.cli.export import register as register_export  # noqa: E402
from storygraph.cli.list_cmd import register as register_list  # noqa: E402
from storygraph.cli.info import register as register_info  # noqa: E402
from storygraph.cli.reset_cmd import register as register_reset  # noqa: E402
from storygraph.cli.config_cmd import config_app  # noqa: E402

register_index(app)
register_classify(app)
register_poll(app)
register_align(app)
register_export(app)
register_list(app)
register_info(app)
register_reset(app)
app.add_typer(config_app, name="config", help="Show/set configuration")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
