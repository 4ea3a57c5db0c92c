"""
Tests for the file-backed vector index.
Covers creation, the update protocol, item writes, side-file metadata and ranking.
"""

import json
import math
from pathlib import Path
from unittest.mock import patch

import pytest

from localvec.errors import (
    IndexAlreadyExists,
    IndexCreationFailed,
    IndexNotFound,
    ItemAlreadyExists,
    NoUpdateInProgress,
    PersistenceFailed,
    UpdateAlreadyInProgress,
    VectorRequired,
)
from localvec.store import LocalIndex, UpdateState


@pytest.fixture
def index(tmp_path: Path) -> LocalIndex:
    """Create an empty index."""
    idx = LocalIndex(tmp_path / "index")
    idx.create_index()
    return idx


def _side_files(folder: Path) -> list[Path]:
    return [p for p in folder.glob("*.json") if p.name != "index.json"]


class TestIndexLifecycle:
    """Test index creation and deletion."""

    def test_create_writes_index_file(self, tmp_path: Path):
        idx = LocalIndex(tmp_path / "idx")
        idx.create_index(version=2, indexed_keys=["category"])

        data = json.loads((tmp_path / "idx" / "index.json").read_text())
        assert data == {"version": 2, "metadata_config": {"indexed": ["category"]}, "items": []}
        assert idx.is_index_created()

    def test_create_twice_fails(self, index: LocalIndex):
        with pytest.raises(IndexAlreadyExists):
            index.create_index()

    def test_create_delete_if_exists_resets(self, index: LocalIndex):
        index.insert_item([1.0, 0.0])
        index.create_index(delete_if_exists=True)
        assert index.list_items() == []

    def test_create_failure_cleans_up(self, tmp_path: Path):
        idx = LocalIndex(tmp_path / "idx")
        with patch("localvec.store.local_index.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(IndexCreationFailed):
                idx.create_index()
        assert not (tmp_path / "idx").exists()

    def test_delete_index(self, index: LocalIndex):
        index.delete_index()
        assert not index.folder_path.exists()
        assert not index.is_index_created()

    def test_reads_without_index_fail(self, tmp_path: Path):
        idx = LocalIndex(tmp_path / "missing")
        with pytest.raises(IndexNotFound):
            idx.list_items()
        with pytest.raises(IndexNotFound):
            idx.begin_update()
        # A failed begin must not leave the update lock held.
        idx.create_index()
        idx.begin_update()
        idx.cancel_update()

    def test_stats(self, index: LocalIndex):
        index.insert_item([1.0, 2.0])
        stats = index.get_stats()
        assert stats.version == 1
        assert stats.items == 1
        assert stats.metadata_config == {}


class TestUpdateProtocol:
    """Test begin/end/cancel semantics."""

    def test_begin_twice_fails(self, index: LocalIndex):
        index.begin_update()
        with pytest.raises(UpdateAlreadyInProgress):
            index.begin_update()
        index.cancel_update()

    def test_state_transitions(self, index: LocalIndex):
        assert index.state is UpdateState.IDLE
        index.begin_update()
        assert index.state is UpdateState.UPDATING
        index.end_update()
        assert index.state is UpdateState.IDLE

    def test_end_without_begin_fails(self, index: LocalIndex):
        with pytest.raises(NoUpdateInProgress):
            index.end_update()

    def test_reads_see_committed_state_only(self, index: LocalIndex):
        index.begin_update()
        index.insert_item([1.0, 0.0], id="a")
        assert index.list_items() == []
        assert index.get_item("a") is None
        index.end_update()
        assert [i.id for i in index.list_items()] == ["a"]

    def test_cancel_discards_staging(self, index: LocalIndex):
        index.insert_item([1.0, 0.0], id="a")
        index.begin_update()
        index.delete_item("a")
        index.insert_item([0.0, 1.0], id="b")
        index.cancel_update()
        assert [i.id for i in index.list_items()] == ["a"]
        index.begin_update()
        index.cancel_update()

    def test_commit_persists_to_disk(self, index: LocalIndex):
        index.insert_item([1.0, 0.0], metadata={"k": "v"}, id="a")
        reopened = LocalIndex(index.folder_path)
        item = reopened.get_item("a")
        assert item.vector == [1.0, 0.0]
        assert item.metadata == {"k": "v"}

    def test_persistence_failure_keeps_committed_state(self, index: LocalIndex):
        index.insert_item([1.0, 0.0], id="a")
        index.begin_update()
        index.insert_item([0.0, 1.0], id="b")
        with patch("localvec.store.local_index.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(PersistenceFailed):
                index.end_update()

        assert index.state is UpdateState.IDLE
        assert [i.id for i in index.list_items()] == ["a"]
        assert [i.id for i in LocalIndex(index.folder_path).list_items()] == ["a"]
        assert not (index.folder_path / "index.json.tmp").exists()


class TestItemWrites:
    """Test insert, upsert and delete."""

    def test_insert_computes_norm_and_id(self, index: LocalIndex):
        item = index.insert_item([3.0, 4.0])
        assert item.norm == 5.0
        assert item.id

    def test_insert_requires_vector(self, index: LocalIndex):
        with pytest.raises(VectorRequired):
            index.insert_item(None)
        assert index.state is UpdateState.IDLE

    def test_insert_duplicate_fails(self, index: LocalIndex):
        index.insert_item([1.0, 0.0], id="a")
        with pytest.raises(ItemAlreadyExists) as exc:
            index.insert_item([0.0, 1.0], id="a")
        assert exc.value.item_id == "a"
        assert index.get_item("a").vector == [1.0, 0.0]

    def test_upsert_replaces_in_place(self, index: LocalIndex):
        index.insert_item([1.0, 0.0], id="a")
        index.insert_item([1.0, 1.0], id="b")
        index.upsert_item([0.0, 2.0], id="a")

        items = index.list_items()
        assert [i.id for i in items] == ["a", "b"]
        assert items[0].vector == [0.0, 2.0]
        assert items[0].norm == 2.0

    def test_delete_missing_is_noop(self, index: LocalIndex):
        index.insert_item([1.0, 0.0], id="a")
        index.delete_item("zzz")
        assert len(index.list_items()) == 1

    def test_delete_item(self, index: LocalIndex):
        index.insert_item([1.0, 0.0], id="a")
        index.delete_item("a")
        assert index.list_items() == []


class TestIndexedMetadata:
    """Test splitting metadata into inline keys and side files."""

    @pytest.fixture
    def indexed(self, tmp_path: Path) -> LocalIndex:
        idx = LocalIndex(tmp_path / "indexed")
        idx.create_index(indexed_keys=["category"])
        return idx

    def test_non_indexed_keys_go_to_side_file(self, indexed: LocalIndex):
        item = indexed.insert_item([1.0, 0.0], metadata={"category": "food", "note": "long text"})
        assert item.metadata == {"category": "food"}
        assert item.metadata_file
        side = json.loads((indexed.folder_path / item.metadata_file).read_text())
        assert side == {"category": "food", "note": "long text"}

    def test_only_indexed_keys_stay_inline(self, indexed: LocalIndex):
        item = indexed.insert_item([1.0, 0.0], metadata={"category": "food"})
        assert item.metadata_file is None
        assert _side_files(indexed.folder_path) == []

    def test_query_returns_full_metadata(self, indexed: LocalIndex):
        indexed.insert_item([1.0, 0.0], metadata={"category": "food", "note": "n1"}, id="a")
        results = indexed.query_items([1.0, 0.0], 1)
        assert results[0].item.metadata == {"category": "food", "note": "n1"}

    def test_filter_sees_side_file_metadata(self, indexed: LocalIndex):
        indexed.insert_item([1.0, 0.0], metadata={"category": "food", "note": "n1"}, id="a")
        indexed.insert_item([1.0, 0.0], metadata={"category": "food", "note": "n2"}, id="b")
        assert [i.id for i in indexed.list_items_by_metadata({"note": "n2"})] == ["b"]

    def test_cancel_removes_new_side_files(self, indexed: LocalIndex):
        indexed.begin_update()
        indexed.insert_item([1.0, 0.0], metadata={"category": "food", "note": "n1"})
        indexed.cancel_update()
        assert _side_files(indexed.folder_path) == []

    def test_upsert_removes_replaced_side_file(self, indexed: LocalIndex):
        first = indexed.insert_item([1.0, 0.0], metadata={"category": "a", "note": "1"}, id="x")
        second = indexed.upsert_item([1.0, 0.0], metadata={"category": "a", "note": "2"}, id="x")
        assert not (indexed.folder_path / first.metadata_file).exists()
        assert (indexed.folder_path / second.metadata_file).exists()


class TestQueryItems:
    """Test similarity ranking and filtering."""

    def test_most_similar_first(self, index: LocalIndex):
        index.insert_item([0.0, 1.0], id="far")
        index.insert_item([1.0, 0.0], id="exact")
        index.insert_item([1.0, 1.0], id="near")

        results = index.query_items([1.0, 0.0], 3)
        assert [r.item.id for r in results] == ["exact", "near", "far"]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(1 / math.sqrt(2))

    def test_top_k_limits(self, index: LocalIndex):
        for i in range(5):
            index.insert_item([1.0, float(i)], id=str(i))
        assert len(index.query_items([1.0, 0.0], 2)) == 2

    def test_ties_keep_insertion_order(self, index: LocalIndex):
        index.begin_update()
        for name in ["c", "a", "b"]:
            index.insert_item([2.0, 2.0], id=name)
        index.end_update()
        assert [r.item.id for r in index.query_items([1.0, 1.0], 3)] == ["c", "a", "b"]

    def test_zero_norm_items_sort_last(self, index: LocalIndex):
        index.insert_item([0.0, 0.0], id="zero")
        index.insert_item([0.0, 1.0], id="orthogonal")
        results = index.query_items([1.0, 0.0], 2)
        assert [r.item.id for r in results] == ["orthogonal", "zero"]
        assert math.isnan(results[1].score)

    def test_eq_filter_scenario(self, index: LocalIndex):
        index.begin_update()
        for i, category in enumerate(["food", "food", "electronics", "drink", "food"], start=1):
            index.insert_item([1.0, 0.0], metadata={"category": category}, id=str(i))
        index.end_update()

        results = index.query_items([1.0, 0.0], 10, {"category": {"$eq": "food"}})
        assert [r.item.id for r in results] == ["1", "2", "5"]
        assert [i.id for i in index.list_items_by_metadata({"category": "food"})] == ["1", "2", "5"]
