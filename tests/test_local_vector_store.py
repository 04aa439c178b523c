"""Tests for LocalVectorStore functionality."""

import json
from pathlib import Path

import numpy as np
import pytest

from notemind.domain.note import EmbeddingRecord
from notemind.errors import RetrievalError
from notemind.vector_dbs.local_db import LocalVectorStore


def make_record(
    note_id: str, order: int, vector: list[float], digest: str = "d1", **metadata
) -> EmbeddingRecord:
    chunk_id = f"{note_id}:{digest}:{order}"
    return EmbeddingRecord(
        id=f"emb_{chunk_id}",
        note_id=note_id,
        chunk_id=chunk_id,
        text=f"text of {chunk_id}",
        vector=vector,
        metadata={"title": note_id.title(), "order": order, "content_digest": digest, **metadata},
    )


@pytest.fixture
def records() -> list[EmbeddingRecord]:
    return [
        make_record("a", 0, [1.0, 0.0, 0.0], tags=["x"], notebook="work"),
        make_record("a", 1, [0.8, 0.6, 0.0], tags=["x"], notebook="work"),
        make_record("b", 0, [0.0, 1.0, 0.0], tags=["y"], notebook="home"),
        make_record("c", 0, [0.6, 0.8, 0.0], tags=["x", "y"], notebook="home"),
    ]


@pytest.fixture
def store(records: list[EmbeddingRecord]) -> LocalVectorStore:
    return LocalVectorStore.from_records(records)


def test_search_sorted_limited_and_thresholded(store: LocalVectorStore) -> None:
    results = store.search(np.array([1.0, 0.0, 0.0]), limit=3, threshold=0.5, note_ids=None)

    assert len(results) <= 3
    assert [r.chunk_id for r in results] == ["a:d1:0", "a:d1:1", "c:d1:0"]
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert all(score >= 0.5 for score in scores)
    assert results[0].score == pytest.approx(1.0)
    assert results[0].title == "A"


def test_search_limit_truncates(store: LocalVectorStore) -> None:
    results = store.search(np.array([1.0, 1.0, 0.0]), limit=2, threshold=-1.0, note_ids=None)

    assert len(results) == 2


def test_search_ties_keep_insertion_order() -> None:
    store = LocalVectorStore.from_records(
        [
            make_record("first", 0, [0.0, 1.0]),
            make_record("second", 0, [0.0, 1.0]),
            make_record("third", 0, [0.0, 1.0]),
        ]
    )

    results = store.search(np.array([0.0, 1.0]), limit=3, threshold=0.0, note_ids=None)

    assert [r.note_id for r in results] == ["first", "second", "third"]


def test_search_scoped_to_note_ids(store: LocalVectorStore) -> None:
    results = store.search(np.array([1.0, 0.0, 0.0]), limit=10, threshold=-1.0, note_ids=["b"])

    assert {r.note_id for r in results} == {"b"}


def test_search_excludes_notes(store: LocalVectorStore) -> None:
    results = store.search(
        np.array([1.0, 0.0, 0.0]),
        limit=10,
        threshold=-1.0,
        note_ids=None,
        exclude_note_ids=["a"],
    )

    assert "a" not in {r.note_id for r in results}
    assert len(results) == 2


def test_search_metadata_filter(store: LocalVectorStore) -> None:
    by_tag = store.search(
        np.array([1.0, 0.0, 0.0]),
        limit=10,
        threshold=-1.0,
        note_ids=None,
        metadata_filter={"tags": ["y"]},
    )
    by_notebook = store.search(
        np.array([1.0, 0.0, 0.0]),
        limit=10,
        threshold=-1.0,
        note_ids=None,
        metadata_filter={"notebook": "work"},
    )

    assert {r.note_id for r in by_tag} == {"b", "c"}
    assert {r.note_id for r in by_notebook} == {"a"}


def test_search_empty_store_and_zero_limit(store: LocalVectorStore) -> None:
    assert LocalVectorStore().search(np.array([1.0]), limit=5, threshold=0.0, note_ids=None) == []
    assert store.search(np.array([1.0, 0.0, 0.0]), limit=0, threshold=0.0, note_ids=None) == []


def test_dimension_mismatch_raises(store: LocalVectorStore) -> None:
    assert store.dimension == 3

    with pytest.raises(ValueError):
        store.upsert([make_record("d", 0, [1.0, 0.0])])
    with pytest.raises(ValueError):
        store.search(np.array([1.0, 0.0]), limit=1, threshold=0.0, note_ids=None)


def test_upsert_replaces_same_key(store: LocalVectorStore) -> None:
    store.upsert([make_record("b", 0, [0.0, 0.0, 1.0])])

    records = store.get_records_for_note("b")
    assert len(records) == 1
    assert records[0].vector.tolist() == [0.0, 0.0, 1.0]


def test_replace_note_swaps_all_records(store: LocalVectorStore) -> None:
    store.replace_note("a", [make_record("a", 0, [0.0, 0.0, 1.0], digest="d2")])

    chunk_ids = [r.chunk_id for r in store.get_records_for_note("a")]
    assert chunk_ids == ["a:d2:0"]
    assert store.get_content_digest("a") == "d2"


def test_replace_note_validates_before_removing(store: LocalVectorStore) -> None:
    with pytest.raises(ValueError):
        store.replace_note("a", [make_record("a", 0, [1.0, 0.0], digest="d2")])
    with pytest.raises(ValueError):
        store.replace_note("a", [make_record("b", 0, [1.0, 0.0, 0.0], digest="d2")])

    assert [r.chunk_id for r in store.get_records_for_note("a")] == ["a:d1:0", "a:d1:1"]


def test_remove_by_note(store: LocalVectorStore) -> None:
    assert store.remove_by_note("a") == 2
    assert store.remove_by_note("a") == 0
    assert store.get_indexed_note_ids() == {"b", "c"}
    assert store.get_content_digest("a") is None


def test_get_stats(store: LocalVectorStore) -> None:
    stats = store.get_stats()

    assert stats["total_vectors"] == 4
    assert stats["unique_notes"] == 3
    assert stats["dimension"] == 3


def test_clear_keeps_dimension(store: LocalVectorStore) -> None:
    store.clear()

    assert store.get_stats()["total_vectors"] == 0
    assert store.dimension == 3
    with pytest.raises(ValueError):
        store.upsert([make_record("d", 0, [1.0, 0.0])])


def test_save_and_load_round_trip(tmp_path: Path, records: list[EmbeddingRecord]) -> None:
    filepath = tmp_path / "store" / "vectors.json"
    store = LocalVectorStore(filepath=filepath)
    store.load()
    store.upsert(records)
    store.save()

    with open(filepath) as f:
        data = json.load(f)
    assert data["dimension"] == 3
    assert len(data["records"]) == 4

    loaded = LocalVectorStore(filepath=filepath)
    loaded.load()

    assert loaded.get_indexed_note_ids() == {"a", "b", "c"}
    assert loaded.dimension == 3
    assert loaded.get_records_for_note("a")[1].vector.dtype == np.float32
    results = loaded.search(np.array([0.0, 1.0, 0.0]), limit=1, threshold=0.0, note_ids=None)
    assert results[0].note_id == "b"


def test_load_missing_file_starts_empty(tmp_path: Path) -> None:
    store = LocalVectorStore(filepath=tmp_path / "missing.json")
    store.load()

    assert store.get_stats()["total_vectors"] == 0


def test_load_corrupt_file_raises(tmp_path: Path) -> None:
    filepath = tmp_path / "vectors.json"
    filepath.write_text("{not json")

    with pytest.raises(RetrievalError):
        LocalVectorStore(filepath=filepath).load()


def test_save_without_filepath_raises(store: LocalVectorStore) -> None:
    assert not store.is_persistent
    with pytest.raises(ValueError):
        store.save()


def test_closed_store_raises(tmp_path: Path, records: list[EmbeddingRecord]) -> None:
    filepath = tmp_path / "vectors.json"
    store = LocalVectorStore(filepath=filepath)
    store.load()
    store.upsert(records)
    store.close()

    assert filepath.exists()
    with pytest.raises(RetrievalError):
        store.search(np.array([1.0, 0.0, 0.0]), limit=1, threshold=0.0, note_ids=None)
    with pytest.raises(RetrievalError):
        store.upsert(records)

    store.load()
    assert store.get_stats()["total_vectors"] == 4


def test_unloaded_store_never_overwrites_file(
    tmp_path: Path, records: list[EmbeddingRecord]
) -> None:
    filepath = tmp_path / "vectors.json"
    store = LocalVectorStore(filepath=filepath)
    store.load()
    store.upsert(records)
    store.close()
    saved = filepath.read_text()

    unloaded = LocalVectorStore(filepath=filepath)
    with pytest.raises(RetrievalError):
        unloaded.save()
    unloaded.close()

    assert filepath.read_text() == saved


def test_export_and_import_records(store: LocalVectorStore) -> None:
    exported = store.export_records()

    restored = LocalVectorStore()
    restored.import_records(exported)

    assert len(exported) == 4
    assert restored.get_indexed_note_ids() == {"a", "b", "c"}
    assert restored.get_content_digest("a") == store.get_content_digest("a")
