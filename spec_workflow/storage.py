"""Document and stage record storage.

The workflow keeps its state in two places: the markdown documents of a
feature directory, and a small JSON file with the confirmed and skipped
flags of each stage. Both stores write through a temporary file so a
reader never sees a half-written document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from .config import DEFAULT_CONFIRMATIONS_FILE
from .models import StageRecord

logger = logging.getLogger("spec_workflow.storage")


class DocumentNotFoundError(FileNotFoundError):
    """Raised when a requested document does not exist."""


class DocumentStore(Protocol):
    def read(self, key: str) -> str: ...

    def write(self, key: str, text: str) -> None: ...

    def exists(self, key: str) -> bool: ...


class StageStore(Protocol):
    def read(self, key: str) -> StageRecord: ...

    def write(self, key: str, record: StageRecord) -> None: ...


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class FileDocumentStore:
    """Markdown documents stored as files under a feature directory."""

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser().resolve()

    def path_for(self, key: str) -> Path:
        return self.root / key

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def read(self, key: str) -> str:
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8", newline="") as handle:
                return handle.read()
        except FileNotFoundError as e:
            raise DocumentNotFoundError(f"{key} does not exist in {self.root}") from e

    def write(self, key: str, text: str) -> None:
        path = self.path_for(key)
        _atomic_write(path, text)
        logger.debug(f"Wrote {len(text)} characters to {path}")


class FileStageStore:
    """Stage records persisted as JSON inside the feature directory.

    The ``key`` is the feature directory; the record lives in the
    confirmations file directly beneath it.
    """

    def __init__(self, file_name: str = DEFAULT_CONFIRMATIONS_FILE):
        self.file_name = file_name

    def path_for(self, key: str) -> Path:
        return Path(key).expanduser().resolve() / self.file_name

    def read(self, key: str) -> StageRecord:
        path = self.path_for(key)
        if not path.exists():
            return StageRecord()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read stage record at {path}, using defaults: {e}")
            return StageRecord()
        if not isinstance(data, dict):
            logger.warning(f"Unexpected stage record format at {path}, using defaults")
            return StageRecord()
        return StageRecord.from_dict(data)

    def write(self, key: str, record: StageRecord) -> None:
        _atomic_write(self.path_for(key), json.dumps(record.to_dict(), indent=2))


class MemoryDocumentStore:
    """In-memory document store."""

    def __init__(self, documents: Optional[Dict[str, str]] = None):
        self.documents: Dict[str, str] = dict(documents or {})

    def exists(self, key: str) -> bool:
        return key in self.documents

    def read(self, key: str) -> str:
        if key not in self.documents:
            raise DocumentNotFoundError(f"{key} does not exist")
        return self.documents[key]

    def write(self, key: str, text: str) -> None:
        self.documents[key] = text


class MemoryStageStore:
    """In-memory stage store; unknown keys read as an all-false record."""

    def __init__(self):
        self.records: Dict[str, StageRecord] = {}

    def read(self, key: str) -> StageRecord:
        return self.records.get(key) or StageRecord()

    def write(self, key: str, record: StageRecord) -> None:
        self.records[key] = record
