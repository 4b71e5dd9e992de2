"""Tests for the operation poller."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from storygraph.core.config import StoryGraphConfig
from storygraph.core.exceptions import APIError
from storygraph.db.models import Asset, Completed, Failed, ForensicStage, LightDone, Pending
from storygraph.db.repository import Repository
from storygraph.pipeline.classify import ClassificationEngine
from storygraph.pipeline.poller import poll_pending, run_poller
from storygraph.providers.base import OperationStatus

_LABELS = {"annotationResults": [{"segmentLabelAnnotations": [{"entity": {"description": "beach"}}]}]}


@pytest.fixture()
def repo(tmp_path: Path) -> Repository:
    r = Repository(tmp_path / "test.db")
    yield r
    r.close()


@pytest.fixture()
def engine(repo: Repository) -> ClassificationEngine:
    return ClassificationEngine(
        repo,
        mirror=MagicMock(),
        probe=MagicMock(),
        inference=MagicMock(),
        annotator=MagicMock(),
        config=StoryGraphConfig(),
    )


def _add(repo: Repository, asset_id: str, operation) -> None:
    repo.upsert(Asset(id=asset_id, filename=f"{asset_id}.mov", operation=operation))


def test_poll_completes_finished_jobs(repo: Repository, engine: ClassificationEngine) -> None:
    _add(repo, "a1", Pending(handle="op-1"))
    _add(repo, "a2", Pending(handle="op-2"))
    _add(repo, "a3", LightDone())
    engine.annotator.poll.side_effect = lambda handle: (
        OperationStatus(done=True, response=_LABELS) if handle == "op-1" else OperationStatus(done=False)
    )

    summary = poll_pending(repo, engine)

    assert summary.checked == 2
    assert summary.completed == 1
    assert summary.pending == 1
    done = repo.get_asset("a1")
    assert done.operation == Completed()
    assert done.forensic_stage == ForensicStage.COMPLETED
    assert done.analysis_content == "Visual Labels: beach"
    assert repo.get_asset("a2").operation == Pending(handle="op-2")


def test_poll_records_remote_failure(repo: Repository, engine: ClassificationEngine) -> None:
    _add(repo, "a1", Pending(handle="op-1"))
    engine.annotator.poll.return_value = OperationStatus(done=True, error="Unsupported codec")

    summary = poll_pending(repo, engine)

    assert summary.failed == 1
    stored = repo.get_asset("a1")
    assert stored.operation == Failed(message="Unsupported codec")
    assert stored.analysis_content == "Error: Unsupported codec"


def test_poll_error_does_not_stop_tick(repo: Repository, engine: ClassificationEngine) -> None:
    _add(repo, "a1", Pending(handle="op-1"))
    _add(repo, "a2", Pending(handle="op-2"))

    def poll(handle: str) -> OperationStatus:
        if handle == "op-1":
            raise APIError("connection reset", provider="videointelligence")
        return OperationStatus(done=True, response=_LABELS)

    engine.annotator.poll.side_effect = poll
    summary = poll_pending(repo, engine)

    assert len(summary.errors) == 1
    assert summary.completed == 1
    assert repo.get_asset("a1").operation == Pending(handle="op-1")


def test_poll_discards_result_for_reset_asset(repo: Repository, engine: ClassificationEngine) -> None:
    _add(repo, "a1", Pending(handle="op-1"))

    def poll(handle: str) -> OperationStatus:
        # The user resets the asset while the request is in flight
        repo.reset_asset("a1")
        return OperationStatus(done=True, response=_LABELS)

    engine.annotator.poll.side_effect = poll
    summary = poll_pending(repo, engine)

    assert summary.stale == 1
    assert summary.completed == 0
    assert repo.get_asset("a1").analysis_content is None


def test_run_poller_stops_after_max_ticks(repo: Repository, engine: ClassificationEngine) -> None:
    ticks = []
    count = run_poller(repo, engine, 0.0, max_ticks=3, on_tick=ticks.append)
    assert count == 3
    assert len(ticks) == 3


def test_run_poller_honours_stop_event(repo: Repository, engine: ClassificationEngine) -> None:
    stop = threading.Event()
    stop.set()
    assert run_poller(repo, engine, 10.0, stop_event=stop) == 0
