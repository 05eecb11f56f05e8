"""Vector persistence backends.

A backend stores the full record list of one project as a unit. All methods
are synchronous; the vector store runs them in a worker thread.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from purpleiq.errors import InvalidProjectIdError
from purpleiq.store.models import EmbeddingRecord

_PROJECT_ID_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")


def validate_project_id(project_id: str) -> str:
    """Return *project_id* unchanged, or raise InvalidProjectIdError.

    Identifiers become file names and table keys, so path separators,
    ``..`` and empty strings are rejected.
    """
    if not isinstance(project_id, str) or not _PROJECT_ID_RE.fullmatch(project_id):
        raise InvalidProjectIdError(
            f"Invalid project id {project_id!r}: use 1-128 letters, digits, '.', '_' or '-'."
        )
    if project_id in (".", ".."):
        raise InvalidProjectIdError(f"Invalid project id {project_id!r}.")
    return project_id


class VectorPersistence(Protocol):
    """Storage contract used by VectorStore."""

    def load(self, project_id: str) -> list[EmbeddingRecord]: ...

    def save(self, project_id: str, records: list[EmbeddingRecord]) -> None: ...

    def delete(self, project_id: str) -> None: ...

    def list_projects(self) -> list[str]: ...


class InMemoryPersistence:
    """Process-local backend; contents vanish with the process."""

    def __init__(self) -> None:
        self._data: dict[str, list[EmbeddingRecord]] = {}

    def load(self, project_id: str) -> list[EmbeddingRecord]:
        return list(self._data.get(project_id, []))

    def save(self, project_id: str, records: list[EmbeddingRecord]) -> None:
        self._data[project_id] = list(records)

    def delete(self, project_id: str) -> None:
        self._data.pop(project_id, None)

    def list_projects(self) -> list[str]:
        return sorted(self._data)


class JsonFilePersistence:
    """One ``<project_id>.json`` file per project.

    File layout::

        {"projectId": "...", "vectors": [record, ...], "updatedAt": "<iso8601>"}

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace`` so a crash never leaves a half-written file.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, project_id: str) -> Path:
        return self.directory / f"{validate_project_id(project_id)}.json"

    def load(self, project_id: str) -> list[EmbeddingRecord]:
        path = self._path(project_id)
        if not path.exists():
            return []
        data = json.loads(path.read_text(encoding="utf-8"))
        return [EmbeddingRecord.from_dict(v) for v in data.get("vectors", [])]

    def save(self, project_id: str, records: list[EmbeddingRecord]) -> None:
        path = self._path(project_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = {
            "projectId": project_id,
            "vectors": [r.to_dict() for r in records],
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{project_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, project_id: str) -> None:
        self._path(project_id).unlink(missing_ok=True)

    def list_projects(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))
