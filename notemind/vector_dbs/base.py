from typing import Any, Protocol, Sequence

import numpy as np

from notemind.domain.note import EmbeddingRecord, ScoredResult


class VectorStore(Protocol):
    @property
    def dimension(self) -> int | None:
        """Vector dimensionality, fixed by the first record stored."""
        ...

    @property
    def is_persistent(self) -> bool:
        """Whether save() writes to durable storage."""
        ...

    def load(self) -> None:
        """Open the store, reading previously saved records if there are any."""
        ...

    def upsert(self, records: Sequence[EmbeddingRecord]) -> None:
        """Insert records, replacing any with the same (note_id, chunk_id)."""
        ...

    def replace_note(self, note_id: str, records: Sequence[EmbeddingRecord]) -> None:
        """Swap every record of a note for the given ones in a single step."""
        ...

    def remove_by_note(self, note_id: str) -> int:
        """Delete all records of a note, returning how many were removed."""
        ...

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
        """Rank stored chunks by cosine similarity to a vector.

        Args:
            vector: Query vector
            limit: Maximum number of results
            threshold: Minimum similarity for a result to be returned
            note_ids: Restrict candidates to these notes. None searches every note.
            exclude_note_ids: Never return chunks of these notes
            metadata_filter: Keep only chunks whose metadata matches every entry

        Returns:
            Results sorted by descending score, ties in insertion order
        """
        ...

    def get_records_for_note(self, note_id: str) -> list[EmbeddingRecord]:
        """Get a note's records in chunk order."""
        ...

    def get_indexed_note_ids(self) -> set[str]:
        """Get all note IDs that have at least one record."""
        ...

    def get_content_digest(self, note_id: str) -> str | None:
        """Get the content digest the note was last indexed with."""
        ...

    def get_stats(self) -> dict[str, Any]:
        """Report record and note counts, at least `total_vectors` and `unique_notes`."""
        ...

    def clear(self) -> None:
        """Delete every record."""
        ...

    def export_records(self) -> list[EmbeddingRecord]:
        """Return every stored record."""
        ...

    def import_records(self, records: Sequence[EmbeddingRecord]) -> None:
        """Add previously exported records."""
        ...

    def save(self) -> None:
        """Persist the records. Only a loaded store may be saved."""
        ...

    def close(self) -> None:
        """Persist and release the store. Further use raises RetrievalError until load()."""
        ...
