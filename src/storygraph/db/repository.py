"""Asset registry: field-level CRUD over the storygraph database."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from storygraph.core.exceptions import AssetNotFoundError, DatabaseError
from storygraph.db.connection import get_connection
from storygraph.db.models import (
    Asset,
    AssetListItem,
    Completed,
    Failed,
    NotStarted,
    Pending,
    TechnicalMetadata,
    operation_adapter,
    operation_marker,
)
from storygraph.db.schema import migrate

# Asset attribute -> column(s). "operation" and "tech" are encoded specially.
_SCALAR_COLUMNS = {
    "filename": "filename",
    "mime_type": "mime_type",
    "size_bytes": "size_bytes",
    "category": "category",
    "classification": "classification",
    "forensic_stage": "forensic_stage",
    "analysis_content": "analysis_content",
    "sync_offset_frames": "sync_offset_frames",
    "duration_ms": "duration_ms",
    "relative_path": "relative_path",
}
UPDATABLE_FIELDS = frozenset(_SCALAR_COLUMNS) | {"operation", "tech"}

# Fields owned by discovery; re-indexing never touches anything else
DISCOVERY_FIELDS = ("filename", "mime_type", "size_bytes", "category", "duration_ms", "relative_path")


def _enum_value(value):
    return getattr(value, "value", value)


def _encode_operation(op) -> dict[str, str | None]:
    if isinstance(op, dict):
        op = operation_adapter.validate_python(op)
    return {
        "op_state": op.state,
        "op_handle": op.handle if isinstance(op, Pending) else None,
        "op_message": op.message if isinstance(op, Failed) else None,
    }


def _decode_operation(row: sqlite3.Row):
    state = row["op_state"]
    if state == "pending":
        return Pending(handle=row["op_handle"] or "")
    if state == "error":
        return Failed(message=row["op_message"] or "")
    return operation_adapter.validate_python({"state": state})


def _encode_tech(tech) -> str | None:
    if tech is None:
        return None
    if isinstance(tech, dict):
        tech = TechnicalMetadata(**tech)
    return tech.model_dump_json()


def _row_to_asset(row: sqlite3.Row) -> Asset:
    tech = TechnicalMetadata(**json.loads(row["tech_json"])) if row["tech_json"] else None
    return Asset(
        id=row["id"],
        filename=row["filename"],
        mime_type=row["mime_type"],
        size_bytes=row["size_bytes"],
        category=row["category"],
        classification=row["classification"],
        forensic_stage=row["forensic_stage"],
        operation=_decode_operation(row),
        analysis_content=row["analysis_content"],
        tech=tech,
        sync_offset_frames=row["sync_offset_frames"],
        duration_ms=row["duration_ms"],
        relative_path=row["relative_path"],
        indexed_at=row["indexed_at"],
        updated_at=row["updated_at"],
    )


def _columns_for(fields: dict) -> dict:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise DatabaseError(f"Unknown asset fields: {sorted(unknown)}")
    cols: dict = {}
    for key, value in fields.items():
        if key == "operation":
            cols.update(_encode_operation(value))
        elif key == "tech":
            cols["tech_json"] = _encode_tech(value)
        else:
            cols[_SCALAR_COLUMNS[key]] = _enum_value(value)
    return cols


class Repository:
    def __init__(self, db_path: Path | None = None):
        self.conn = get_connection(db_path)
        migrate(self.conn)

    def close(self) -> None:
        self.conn.close()

    # --- Reads ---

    def get(self, asset_id: str) -> Asset | None:
        row = self.conn.execute("SELECT * FROM assets WHERE id = ?", (asset_id,)).fetchone()
        return _row_to_asset(row) if row else None

    def get_asset(self, asset_id: str) -> Asset:
        asset = self.get(asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset not found: {asset_id}")
        return asset

    def list_all(self) -> list[Asset]:
        """All assets in registration order."""
        rows = self.conn.execute("SELECT * FROM assets ORDER BY rowid").fetchall()
        return [_row_to_asset(r) for r in rows]

    def list_pending(self) -> list[Asset]:
        rows = self.conn.execute(
            "SELECT * FROM assets WHERE op_state = 'pending' ORDER BY rowid"
        ).fetchall()
        return [_row_to_asset(r) for r in rows]

    def list_items(self) -> list[AssetListItem]:
        return [
            AssetListItem(
                asset_id=a.id,
                filename=a.filename,
                category=a.category.value,
                classification=a.classification.value,
                forensic_stage=a.forensic_stage.value,
                operation=operation_marker(a.operation),
                sync_offset_frames=a.sync_offset_frames,
            )
            for a in self.list_all()
        ]

    # --- Writes ---

    def upsert(self, asset: Asset) -> None:
        """Insert or merge every field of ``asset`` into the row with the same id."""
        cols = {"id": asset.id}
        cols.update(_columns_for({k: getattr(asset, k) for k in UPDATABLE_FIELDS}))
        self._upsert_columns(cols, update=[c for c in cols if c != "id"])

    def register(self, asset: Asset) -> None:
        """Insert a discovered asset, refreshing discovery fields only if it already exists."""
        cols = {"id": asset.id}
        cols.update(_columns_for({k: getattr(asset, k) for k in UPDATABLE_FIELDS}))
        update = [_SCALAR_COLUMNS[k] for k in DISCOVERY_FIELDS]
        self._upsert_columns(cols, update=update)

    def _upsert_columns(self, cols: dict, update: list[str]) -> None:
        names = ", ".join(cols)
        placeholders = ", ".join("?" for _ in cols)
        assignments = ", ".join(f"{c} = excluded.{c}" for c in update)
        try:
            self.conn.execute(
                f"""INSERT INTO assets ({names}) VALUES ({placeholders})
                    ON CONFLICT(id) DO UPDATE SET {assignments}, updated_at = datetime('now')""",
                tuple(cols.values()),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"Upsert failed for {cols.get('id')}: {e}") from e

    def update_fields(self, asset_id: str, **fields) -> None:
        """Merge the given fields into one asset row. Untouched columns keep their values."""
        if not fields:
            return
        cols = _columns_for(fields)
        assignments = ", ".join(f"{c} = ?" for c in cols)
        cur = self.conn.execute(
            f"UPDATE assets SET {assignments}, updated_at = datetime('now') WHERE id = ?",
            (*cols.values(), asset_id),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            raise AssetNotFoundError(f"Asset not found: {asset_id}")

    def complete_operation(
        self, asset_id: str, handle: str, content: str, error: str | None = None
    ) -> bool:
        """Apply a finished remote job, but only if the asset is still waiting on ``handle``.

        Returns False when the asset has moved on (reset, re-run, or already completed),
        in which case the result is stale and nothing is written.
        """
        if error is None:
            cols = _columns_for({"operation": Completed(), "forensic_stage": "completed"})
        else:
            cols = _columns_for({"operation": Failed(message=error), "forensic_stage": "error"})
        cur = self.conn.execute(
            """UPDATE assets
               SET op_state = ?, op_handle = ?, op_message = ?, forensic_stage = ?,
                   analysis_content = ?, updated_at = datetime('now')
               WHERE id = ? AND op_state = 'pending' AND op_handle = ?""",
            (
                cols["op_state"], cols["op_handle"], cols["op_message"], cols["forensic_stage"],
                content, asset_id, handle,
            ),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def reset_asset(self, asset_id: str) -> None:
        """Forget forensic progress for one asset. Any in-flight remote job is orphaned."""
        self.update_fields(
            asset_id,
            operation=NotStarted(),
            forensic_stage="none",
            analysis_content=None,
        )

    def clear(self) -> None:
        self.conn.execute("DELETE FROM assets")
        self.conn.commit()
