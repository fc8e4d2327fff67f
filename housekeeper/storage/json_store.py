# housekeeper/storage/json_store.py
"""
JSON document persistence for housekeeping runs.

Two documents are kept on disk, both JSON arrays:
- the artifact summary (one entry per project, upserted and saved after every project)
- the raw project statistics snapshot (overwritten wholesale each run)

A missing or unreadable document loads as an empty collection; corruption is
never fatal, the next save replaces it.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, List, Protocol

from housekeeper.logging.logger import get_logger


class DocumentStore(Protocol):
    def load(self) -> List[Any]: ...

    def save(self, collection: List[Any]) -> None: ...


class JsonDocumentStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.logger = get_logger("storage.json_store")

    def load(self) -> List[Any]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Could not parse existing {self.path.name}. Starting fresh.", extra={
                "path": str(self.path),
                "error": str(e),
            })
            return []

        if not isinstance(data, list):
            self.logger.warning(f"{self.path.name} is not a JSON array. Starting fresh.", extra={
                "path": str(self.path),
                "type": type(data).__name__,
            })
            return []

        self.logger.info(f"Loaded existing data from {self.path.name}.", extra={
            "path": str(self.path),
            "entries": len(data),
        })
        return data

    def save(self, collection: List[Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(collection, f, indent=2, ensure_ascii=False)


class MemoryDocumentStore:
    """In-process store with the JsonDocumentStore contract; keeps every saved version."""

    def __init__(self, initial: List[Any] | None = None) -> None:
        self.document: List[Any] = copy.deepcopy(initial) if initial is not None else []
        self.saves: List[List[Any]] = []

    def load(self) -> List[Any]:
        return copy.deepcopy(self.document)

    def save(self, collection: List[Any]) -> None:
        self.document = copy.deepcopy(collection)
        self.saves.append(copy.deepcopy(collection))
