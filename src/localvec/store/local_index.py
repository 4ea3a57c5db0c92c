from __future__ import annotations

import json
import logging
import math
import os
import shutil
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from ..errors import (
    IndexAlreadyExists,
    IndexCreationFailed,
    IndexNotFound,
    ItemAlreadyExists,
    NoUpdateInProgress,
    PersistenceFailed,
    UpdateAlreadyInProgress,
    VectorRequired,
)
from ..metadata_filter import MetadataFilter, matches
from ..models import IndexItem, IndexStats, MetadataTypes, QueryResult
from ..similarity import normalize, normalized_cosine_similarity

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write `data` to a sibling temp file, then swap it into place."""
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(_json_dumps(data), encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


class UpdateState(Enum):
    IDLE = "idle"
    UPDATING = "updating"


@dataclass
class IndexData:
    """In-memory snapshot of index.json."""
    version: int
    metadata_config: dict[str, Any] = field(default_factory=dict)
    items: list[IndexItem] = field(default_factory=list)

    @property
    def indexed_keys(self) -> list[str]:
        return list(self.metadata_config.get("indexed") or [])

    def clone(self) -> "IndexData":
        # Items are frozen, so a new list is enough to isolate the staging copy.
        return IndexData(
            version=self.version,
            metadata_config=dict(self.metadata_config),
            items=list(self.items),
        )

    def find(self, item_id: str) -> int:
        for i, item in enumerate(self.items):
            if item.id == item_id:
                return i
        return -1

    def to_json(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "metadata_config": self.metadata_config,
            "items": [item.to_json() for item in self.items],
        }

    @staticmethod
    def from_json(data: dict[str, Any]) -> "IndexData":
        return IndexData(
            version=int(data.get("version", 1)),
            metadata_config=dict(data.get("metadata_config") or {}),
            items=[IndexItem.from_json(d) for d in data.get("items", [])],
        )


class LocalIndex:
    """File-backed vector index.

    A folder holds ``index.json`` plus one ``<uuid>.json`` side file per item
    whose metadata has keys outside the indexed set. Writes go to a staging
    snapshot opened by :meth:`begin_update` and become visible only when
    :meth:`end_update` has swapped the new ``index.json`` into place. Reads
    always see the last committed snapshot.

    Only one update may be open per instance; a second :meth:`begin_update`
    fails instead of waiting.
    """

    def __init__(self, folder_path: str | Path) -> None:
        self.folder_path = Path(folder_path)
        self._data: Optional[IndexData] = None
        self._update: Optional[IndexData] = None
        self._state = UpdateState.IDLE
        self._lock = threading.Lock()
        # Side files created by the open update, and side files it made obsolete.
        self._created_files: list[str] = []
        self._obsolete_files: list[str] = []

    @property
    def index_path(self) -> Path:
        return self.folder_path / INDEX_FILE

    @property
    def state(self) -> UpdateState:
        return self._state

    # -- lifecycle -------------------------------------------------------

    def is_index_created(self) -> bool:
        return self.index_path.is_file()

    def create_index(
        self,
        version: int = 1,
        indexed_keys: Optional[Sequence[str]] = None,
        delete_if_exists: bool = False,
    ) -> None:
        if self.is_index_created():
            if not delete_if_exists:
                raise IndexAlreadyExists(str(self.folder_path))
            self.delete_index()

        metadata_config: dict[str, Any] = {}
        if indexed_keys:
            metadata_config["indexed"] = list(indexed_keys)
        data = IndexData(version=version, metadata_config=metadata_config)
        try:
            self.folder_path.mkdir(parents=True, exist_ok=True)
            write_json_atomic(self.index_path, data.to_json())
        except OSError as e:
            shutil.rmtree(self.folder_path, ignore_errors=True)
            self._data = None
            raise IndexCreationFailed(str(self.folder_path), e) from e

        self._data = data
        logger.info(f"Created index at {self.folder_path} (version={version}, indexed={list(indexed_keys or [])})")

    def delete_index(self) -> None:
        """Remove the index folder and forget any loaded or staged state."""
        self._discard_update()
        self._data = None
        if self.folder_path.exists():
            shutil.rmtree(self.folder_path)
        logger.info(f"Deleted index at {self.folder_path}")

    # -- transactions ----------------------------------------------------

    def begin_update(self) -> None:
        if not self._lock.acquire(blocking=False):
            raise UpdateAlreadyInProgress()
        try:
            self._load()
        except BaseException:
            self._lock.release()
            raise
        self._update = self._data.clone()
        self._state = UpdateState.UPDATING
        self._created_files = []
        self._obsolete_files = []
        logger.debug(f"Began update on {self.folder_path}")

    def end_update(self) -> None:
        if self._state is not UpdateState.UPDATING:
            raise NoUpdateInProgress()
        try:
            write_json_atomic(self.index_path, self._update.to_json())
        except OSError as e:
            self._discard_update()
            raise PersistenceFailed("index", e) from e

        self._data = self._update
        obsolete = self._obsolete_files
        self._finish_update()
        for name in obsolete:
            (self.folder_path / name).unlink(missing_ok=True)
        logger.debug(f"Committed update on {self.folder_path} ({len(self._data.items)} items)")

    def cancel_update(self) -> None:
        if self._state is UpdateState.UPDATING:
            self._discard_update()
            logger.debug(f"Cancelled update on {self.folder_path}")

    def _discard_update(self) -> None:
        if self._state is not UpdateState.UPDATING:
            return
        for name in self._created_files:
            (self.folder_path / name).unlink(missing_ok=True)
        self._finish_update()

    def _finish_update(self) -> None:
        self._update = None
        self._created_files = []
        self._obsolete_files = []
        self._state = UpdateState.IDLE
        self._lock.release()

    @contextmanager
    def _auto_update(self) -> Iterator[IndexData]:
        """Yield the staging snapshot, opening and committing an update if none is open."""
        if self._state is UpdateState.UPDATING:
            yield self._update
            return

        self.begin_update()
        try:
            yield self._update
        except BaseException:
            self.cancel_update()
            raise
        self.end_update()

    # -- writes ----------------------------------------------------------

    def insert_item(
        self,
        vector: Optional[Sequence[float]],
        metadata: Optional[dict[str, MetadataTypes]] = None,
        id: Optional[str] = None,
    ) -> IndexItem:
        """Add an item; fails with ItemAlreadyExists if `id` is taken."""
        with self._auto_update() as update:
            return self._add_item(update, vector, metadata, id, unique=True)

    def upsert_item(
        self,
        vector: Optional[Sequence[float]],
        metadata: Optional[dict[str, MetadataTypes]] = None,
        id: Optional[str] = None,
    ) -> IndexItem:
        """Add an item, replacing in place any item with the same id."""
        with self._auto_update() as update:
            return self._add_item(update, vector, metadata, id, unique=False)

    def delete_item(self, id: str) -> None:
        with self._auto_update() as update:
            pos = update.find(id)
            if pos < 0:
                return
            removed = update.items.pop(pos)
            if removed.metadata_file:
                self._obsolete_files.append(removed.metadata_file)

    def _add_item(
        self,
        update: IndexData,
        vector: Optional[Sequence[float]],
        metadata: Optional[dict[str, MetadataTypes]],
        item_id: Optional[str],
        unique: bool,
    ) -> IndexItem:
        if vector is None:
            raise VectorRequired()

        item_id = item_id or str(uuid.uuid4())
        pos = update.find(item_id)
        if unique and pos >= 0:
            raise ItemAlreadyExists(item_id)

        metadata = dict(metadata or {})
        indexed = update.indexed_keys
        metadata_file = None
        inline = metadata
        if indexed and any(k not in indexed for k in metadata):
            inline = {k: metadata[k] for k in indexed if metadata.get(k) is not None}
            metadata_file = f"{uuid.uuid4()}.json"
            (self.folder_path / metadata_file).write_text(_json_dumps(metadata), encoding="utf-8")
            self._created_files.append(metadata_file)

        vector = [float(v) for v in vector]
        item = IndexItem(
            id=item_id,
            vector=vector,
            norm=normalize(vector),
            metadata=inline,
            metadata_file=metadata_file,
        )

        if pos >= 0:
            previous = update.items[pos]
            if previous.metadata_file:
                self._obsolete_files.append(previous.metadata_file)
            update.items[pos] = item
        else:
            update.items.append(item)
        return item

    # -- reads -----------------------------------------------------------

    def _load(self) -> IndexData:
        if self._data is None:
            if not self.is_index_created():
                raise IndexNotFound(str(self.folder_path))
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
            self._data = IndexData.from_json(raw)
            logger.debug(f"Loaded {len(self._data.items)} items from {self.index_path}")
        return self._data

    def load_metadata(self, item: IndexItem) -> dict[str, MetadataTypes]:
        if not item.metadata_file:
            return item.metadata
        path = self.folder_path / item.metadata_file
        return json.loads(path.read_text(encoding="utf-8"))

    def _select(self, items: list[IndexItem], filter: Optional[MetadataFilter]) -> list[IndexItem]:
        if not filter:
            return list(items)
        return [item for item in items if matches(self.load_metadata(item), filter)]

    def get_stats(self) -> IndexStats:
        data = self._load()
        return IndexStats(
            version=data.version,
            metadata_config=dict(data.metadata_config),
            items=len(data.items),
        )

    def get_item(self, id: str) -> Optional[IndexItem]:
        data = self._load()
        pos = data.find(id)
        return data.items[pos] if pos >= 0 else None

    def list_items(self) -> list[IndexItem]:
        return list(self._load().items)

    def list_items_by_metadata(self, filter: MetadataFilter) -> list[IndexItem]:
        return self._select(self._load().items, filter)

    def query_items(
        self,
        vector: Sequence[float],
        top_k: int,
        filter: Optional[MetadataFilter] = None,
    ) -> list[QueryResult]:
        """Return the `top_k` committed items most similar to `vector`.

        Results are ordered by similarity, highest first; ties keep insertion
        order. Items whose similarity is undefined (zero norm) sort last.
        Returned items carry their full metadata, side file included.
        """
        items = self._select(self._load().items, filter)
        norm = normalize(vector)

        scored = []
        for item in items:
            score = normalized_cosine_similarity(vector, norm, item.vector, item.norm)
            scored.append((score, item))
        scored.sort(key=lambda x: -math.inf if math.isnan(x[0]) else x[0], reverse=True)

        results: list[QueryResult] = []
        for score, item in scored[:max(top_k, 0)]:
            if item.metadata_file:
                item = replace(item, metadata=self.load_metadata(item))
            results.append(QueryResult(item=item, score=score))
        return results
