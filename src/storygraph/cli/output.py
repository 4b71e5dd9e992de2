"""JSON output to stdout, progress and diagnostics to stderr."""

from __future__ import annotations

import json
import sys


def output_json(data: dict | list, pretty: bool = False) -> None:
    """Write JSON to stdout."""
    if pretty:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(json.dumps(data, default=str))


def output_text(text: str) -> None:
    print(text)


def error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr)


def progress(message: str) -> None:
    print(message, file=sys.stderr)
