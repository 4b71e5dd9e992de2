"""Background polling of long-running annotation jobs."""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass, field
from typing import Callable

from storygraph.db.repository import Repository
from storygraph.pipeline.classify import ClassificationEngine


@dataclass
class PollSummary:
    checked: int = 0
    pending: int = 0
    completed: int = 0
    failed: int = 0
    stale: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "checked": self.checked,
            "pending": self.pending,
            "completed": self.completed,
            "failed": self.failed,
            "stale": self.stale,
            "errors": self.errors,
        }


def poll_pending(repo: Repository, engine: ClassificationEngine) -> PollSummary:
    """One tick: poll every asset whose operation is in flight.

    Completions are written with a compare-and-set on the handle, so a result for
    an asset that was reset or re-run since enumeration is dropped.
    """
    summary = PollSummary()
    for asset in repo.list_pending():
        summary.checked += 1
        try:
            result = engine.poll_operation(asset.operation)
        except Exception as e:
            msg = f"{asset.filename}: {e}"
            summary.errors.append(msg)
            print(f"  Warning: poll failed for {msg}", file=sys.stderr)
            continue

        if result is None:
            continue
        if result.pending:
            summary.pending += 1
            continue

        applied = repo.complete_operation(
            asset.id, asset.operation.handle, result.content or "", error=result.error
        )
        if not applied:
            summary.stale += 1
            print(f"  Discarded stale result for {asset.filename}", file=sys.stderr)
        elif result.error:
            summary.failed += 1
        else:
            summary.completed += 1
            print(f"  Completed: {asset.filename}", file=sys.stderr)
    return summary


def run_poller(
    repo: Repository,
    engine: ClassificationEngine,
    interval_sec: float,
    *,
    stop_event: threading.Event | None = None,
    max_ticks: int | None = None,
    on_tick: Callable[[PollSummary], None] | None = None,
) -> int:
    """Poll on a fixed interval until stopped. Returns the number of ticks run."""
    stop_event = stop_event or threading.Event()
    ticks = 0
    while not stop_event.is_set():
        summary = poll_pending(repo, engine)
        ticks += 1
        if on_tick is not None:
            on_tick(summary)
        if max_ticks is not None and ticks >= max_ticks:
            break
        stop_event.wait(interval_sec)
    return ticks
