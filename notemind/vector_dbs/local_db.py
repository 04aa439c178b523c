import json
import os
import tempfile
from pathlib import Path
from typing import Any, Sequence

import numpy as np
from loguru import logger

from notemind.domain.note import EmbeddingRecord, ScoredResult
from notemind.errors import RetrievalError
from notemind.vector_dbs.base import VectorStore

RecordKey = tuple[str, str]  # (note_id, chunk_id)


class LocalVectorStore(VectorStore):
    """In-process vector store that persists embedding records in a JSON file."""

    def __init__(self, filepath: str | Path | None = None) -> None:
        """Initialize LocalVectorStore.

        Args:
            filepath: Path to the store file. Records saved there are read back by
                load(). If not provided, the store lives in memory only.
        """
        self._filepath = str(filepath) if filepath else None
        self._records: dict[RecordKey, EmbeddingRecord] = {}
        self._dimension: int | None = None
        self._closed = False
        self._loaded = False
        self._matrix: np.ndarray | None = None
        self._matrix_keys: list[RecordKey] = []

    @classmethod
    def from_records(cls, records: Sequence[EmbeddingRecord]) -> "LocalVectorStore":
        """Create an in-memory LocalVectorStore holding the given records (useful for testing)."""
        instance = cls(filepath=None)
        instance.upsert(records)
        return instance

    @property
    def dimension(self) -> int | None:
        return self._dimension

    @property
    def is_persistent(self) -> bool:
        return self._filepath is not None

    def load(self) -> None:
        """Open the store, reading the records saved at the store's filepath if it exists."""
        if self._filepath and Path(self._filepath).exists():
            try:
                with open(self._filepath, "r") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise RetrievalError(f"Could not read vector store {self._filepath}: {e}") from e

            self._records = {}
            self._dimension = data.get("dimension")
            for record_data in data.get("records", []):
                record = EmbeddingRecord(**record_data)
                self._records[(record.note_id, record.chunk_id)] = record
            logger.info(f"Loaded {len(self._records)} vectors from {self._filepath}")
        self._invalidate()
        self._closed = False
        self._loaded = True

    def upsert(self, records: Sequence[EmbeddingRecord]) -> None:
        self._ensure_open()
        for record in records:
            self._check_dimension(record.vector)
        for record in records:
            self._records[(record.note_id, record.chunk_id)] = record
        self._invalidate()

    def replace_note(self, note_id: str, records: Sequence[EmbeddingRecord]) -> None:
        """Swap all records of a note at once.

        Validation happens before anything is removed, so a failing call leaves the
        previous records in place.
        """
        self._ensure_open()
        for record in records:
            if record.note_id != note_id:
                raise ValueError(f"Record {record.id} does not belong to note {note_id}")
            self._check_dimension(record.vector)

        self._drop_note(note_id)
        for record in records:
            self._records[(record.note_id, record.chunk_id)] = record
        self._invalidate()

    def remove_by_note(self, note_id: str) -> int:
        self._ensure_open()
        removed = self._drop_note(note_id)
        self._invalidate()
        logger.debug(f"Deleted {removed} vectors for note {note_id}")
        return removed

    def search(
        self,
        vector: np.ndarray,
        *,
        limit: int,
        threshold: float,
        note_ids: Sequence[str] | None,
        exclude_note_ids: Sequence[str] | None = None,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ScoredResult]:
        """Get the chunks closest to an input vector, see VectorStore.search."""
        self._ensure_open()
        if limit <= 0 or not self._records:
            return []

        query = np.asarray(vector, dtype=np.float32).reshape(-1)
        self._check_dimension(query)
        query_norm = float(np.linalg.norm(query))
        if query_norm == 0.0:
            return []

        matrix, keys = self._get_matrix()
        scope = set(note_ids) if note_ids is not None else None
        excluded = set(exclude_note_ids or [])
        candidate_rows = [
            row
            for row, (note_id, _) in enumerate(keys)
            if (scope is None or note_id in scope)
            and note_id not in excluded
            and self._matches(self._records[keys[row]].metadata, metadata_filter)
        ]
        if not candidate_rows:
            return []

        candidates = matrix[candidate_rows]
        norms = np.linalg.norm(candidates, axis=1)
        norms[norms == 0.0] = np.inf
        scores = (candidates @ query) / (norms * query_norm)

        order = np.argsort(-scores, kind="stable")
        results = []
        for position in order:
            score = float(scores[position])
            if score < threshold:
                continue
            record = self._records[keys[candidate_rows[position]]]
            results.append(
                ScoredResult(
                    note_id=record.note_id,
                    chunk_id=record.chunk_id,
                    score=score,
                    text=record.text,
                    metadata=record.metadata,
                )
            )
            if len(results) >= limit:
                break
        return results

    def get_records_for_note(self, note_id: str) -> list[EmbeddingRecord]:
        self._ensure_open()
        records = [r for (nid, _), r in self._records.items() if nid == note_id]
        return sorted(records, key=lambda r: r.metadata.get("order", 0))

    def get_indexed_note_ids(self) -> set[str]:
        self._ensure_open()
        return {note_id for note_id, _ in self._records}

    def get_content_digest(self, note_id: str) -> str | None:
        records = self.get_records_for_note(note_id)
        if not records:
            return None
        return records[0].metadata.get("content_digest")

    def get_stats(self) -> dict[str, Any]:
        total_vectors = len(self._records)
        unique_notes = len({note_id for note_id, _ in self._records})
        return {
            "total_vectors": total_vectors,
            "unique_notes": unique_notes,
            "average_vectors_per_note": total_vectors / unique_notes if unique_notes else 0.0,
            "dimension": self._dimension,
            "path": self._filepath,
            "open": not self._closed,
        }

    def clear(self) -> None:
        """Delete every record. The dimension stays fixed for this store."""
        self._ensure_open()
        self._records.clear()
        self._invalidate()
        logger.info("Cleared all vectors")

    def export_records(self) -> list[EmbeddingRecord]:
        """Return every record, e.g. for a backup."""
        self._ensure_open()
        return list(self._records.values())

    def import_records(self, records: Sequence[EmbeddingRecord]) -> None:
        """Add records from a backup, replacing any with the same (note_id, chunk_id)."""
        self.upsert(records)
        logger.info(f"Imported {len(records)} vectors")

    def save(self) -> None:
        """Write all records to the store's filepath, replacing the previous file atomically."""
        if not self._filepath:
            raise ValueError("No filepath set during initialization")
        if not self._loaded:
            raise RetrievalError(
                f"Vector store {self._filepath} was never loaded, saving would overwrite it"
            )

        save_path = Path(self._filepath)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "dimension": self._dimension,
            "records": [record.model_dump(mode="json") for record in self._records.values()],
        }
        fd, tmp_path = tempfile.mkstemp(dir=save_path.parent, prefix=f".{save_path.name}.")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f)
            os.replace(tmp_path, save_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def close(self) -> None:
        if self._closed:
            return
        if self.is_persistent and self._loaded:
            self.save()
        self._closed = True
        logger.info("Vector store closed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise RetrievalError("Vector store is closed")

    def _check_dimension(self, vector: np.ndarray) -> None:
        size = int(np.asarray(vector).reshape(-1).shape[0])
        if self._dimension is None:
            self._dimension = size
        elif size != self._dimension:
            raise ValueError(
                f"Vector has {size} dimensions, this store holds {self._dimension}-dimensional vectors"
            )

    def _drop_note(self, note_id: str) -> int:
        keys_to_delete = [key for key in self._records if key[0] == note_id]
        for key in keys_to_delete:
            del self._records[key]
        return len(keys_to_delete)

    def _invalidate(self) -> None:
        self._matrix = None
        self._matrix_keys = []

    def _get_matrix(self) -> tuple[np.ndarray, list[RecordKey]]:
        if self._matrix is None:
            self._matrix_keys = list(self._records)
            self._matrix = np.stack(
                [np.asarray(self._records[key].vector, dtype=np.float32) for key in self._matrix_keys]
            )
        return self._matrix, self._matrix_keys

    @staticmethod
    def _matches(metadata: dict[str, Any], metadata_filter: dict[str, Any] | None) -> bool:
        if not metadata_filter:
            return True
        for key, expected in metadata_filter.items():
            actual = metadata.get(key)
            if isinstance(expected, (list, tuple, set)):
                values = actual if isinstance(actual, list) else [actual]
                if not set(values) & set(expected):
                    return False
            elif actual != expected:
                return False
        return True
