"""SQLite vector persistence.

Embeddings are stored as packed float32 BLOBs (``sqlite_vec.serialize_float32``)
next to the chunk JSON, one row per record. A project's rows are replaced in a
single transaction on every save.
"""

from __future__ import annotations

import json
import sqlite3
import struct
from pathlib import Path

import sqlite_vec

from purpleiq.store.models import Chunk, EmbeddingRecord
from purpleiq.store.persistence import validate_project_id

_CREATE_VECTORS = """
CREATE TABLE IF NOT EXISTS vectors (
    project_id  TEXT NOT NULL,
    position    INTEGER NOT NULL,
    dimension   INTEGER NOT NULL,
    chunk       TEXT NOT NULL,
    embedding   BLOB NOT NULL,
    created_at  DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (project_id, position)
)
"""


def _deserialize_float32(blob: bytes, dimension: int) -> tuple[float, ...]:
    return struct.unpack(f"{dimension}f", blob)


class SqlitePersistence:
    """All projects in one SQLite file, keyed by project id."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._initialized = False

    def connect(self) -> sqlite3.Connection:
        """Open a connection and make sure the schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        if not self._initialized:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute(_CREATE_VECTORS)
            conn.commit()
            self._initialized = True
        return conn

    def load(self, project_id: str) -> list[EmbeddingRecord]:
        validate_project_id(project_id)
        conn = self.connect()
        try:
            rows = conn.execute(
                "SELECT chunk, embedding, dimension FROM vectors "
                "WHERE project_id = ? ORDER BY position",
                (project_id,),
            ).fetchall()
        finally:
            conn.close()
        return [
            EmbeddingRecord(
                chunk=Chunk.from_dict(json.loads(row["chunk"])),
                vector=_deserialize_float32(row["embedding"], row["dimension"]),
                project_id=project_id,
            )
            for row in rows
        ]

    def save(self, project_id: str, records: list[EmbeddingRecord]) -> None:
        validate_project_id(project_id)
        conn = self.connect()
        try:
            with conn:
                conn.execute("DELETE FROM vectors WHERE project_id = ?", (project_id,))
                conn.executemany(
                    "INSERT INTO vectors (project_id, position, dimension, chunk, embedding) "
                    "VALUES (?, ?, ?, ?, ?)",
                    [
                        (
                            project_id,
                            i,
                            r.dimension,
                            json.dumps(r.chunk.to_dict()),
                            sqlite_vec.serialize_float32(list(r.vector)),
                        )
                        for i, r in enumerate(records)
                    ],
                )
        finally:
            conn.close()

    def delete(self, project_id: str) -> None:
        validate_project_id(project_id)
        conn = self.connect()
        try:
            with conn:
                conn.execute("DELETE FROM vectors WHERE project_id = ?", (project_id,))
        finally:
            conn.close()

    def list_projects(self) -> list[str]:
        conn = self.connect()
        try:
            rows = conn.execute(
                "SELECT DISTINCT project_id FROM vectors ORDER BY project_id"
            ).fetchall()
        finally:
            conn.close()
        return [row["project_id"] for row in rows]
