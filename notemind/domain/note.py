"""Note domain models."""

from datetime import datetime, timezone
from hashlib import md5
from typing import Annotated, Any

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer


class Note(BaseModel):
    """Represents a full, non-chunked note as handed over by the document store.

    Attributes:
        id: Unique identifier assigned by the document store
        title: Note title
        content: Full markdown content
        tags: Tags currently attached to the note
        notebook: Notebook the note lives in, if any
        updated_at: Last modification time reported by the document store
    """

    id: str
    title: str
    content: str
    tags: list[str] = []
    notebook: str | None = None
    updated_at: datetime | None = None

    @property
    def full_text(self) -> str:
        return f"{self.title}\n\n{self.content}"

    @property
    def content_digest(self) -> str:
        """Digest of everything that ends up in the embedded text."""
        return md5(self.full_text.encode()).hexdigest()


class TextChunk(BaseModel):
    """Represents a chunk of text from a note for vector search."""

    model_config = ConfigDict(frozen=True)

    id: str  # "{note_id}:{digest}:{order}", changes whenever the note content changes
    note_id: str
    order: int
    text: str
    metadata: dict[str, Any] = {}


def nd_array_before_validator(x: list[float]) -> NDArray[np.float32]:
    return np.asarray(x, dtype=np.float32)


def nd_array_serializer(x: NDArray[np.float32]) -> list[float]:
    return x.tolist()  # type: ignore


NumPyArray = Annotated[
    np.ndarray,
    BeforeValidator(nd_array_before_validator),
    PlainSerializer(nd_array_serializer, return_type=list),
]


class EmbeddingRecord(BaseModel):
    """A stored vector for one chunk of one note."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    note_id: str
    chunk_id: str
    text: str
    vector: NumPyArray
    metadata: dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_chunk(cls, chunk: TextChunk, vector: np.ndarray) -> "EmbeddingRecord":
        return cls(
            id=f"emb_{chunk.id}",
            note_id=chunk.note_id,
            chunk_id=chunk.id,
            text=chunk.text,
            vector=vector,
            metadata={**chunk.metadata, "order": chunk.order},
        )


class ScoredResult(BaseModel):
    """A search hit: one chunk and its cosine similarity to the query."""

    note_id: str
    chunk_id: str
    score: float
    text: str = ""
    metadata: dict[str, Any] = {}

    @property
    def title(self) -> str:
        return self.metadata.get("title", "")
