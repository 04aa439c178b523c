"""Request and response models of the retrieval-augmented features."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

SummaryStyle = Literal["brief", "detailed", "bullet-points", "key-insights"]


class RAGQuery(BaseModel):
    """A question asked against the indexed notes.

    Attributes:
        query: The question text
        note_ids: Restrict retrieval to these notes. None searches the whole corpus.
        tags: Only consider chunks of notes carrying at least one of these tags
        notebook: Only consider chunks of notes in this notebook
        limit: Number of chunks to retrieve, defaults to the pipeline's top_k
        include_metadata: Add a relevance listing of the sources to the prompt
        template: Name of the prompt template used to phrase the question
    """

    query: str
    note_ids: list[str] | None = None
    tags: list[str] | None = None
    notebook: str | None = None
    limit: int | None = Field(default=None, ge=1)
    include_metadata: bool = False
    template: str = "default"


class Source(BaseModel):
    """A chunk that was handed to the language model as context."""

    note_id: str
    title: str
    chunk_id: str
    score: float
    snippet: str


class ResponseMetadata(BaseModel):
    model: str
    tokens_used: int = 0
    latency_ms: float = 0.0


class RAGResponse(BaseModel):
    answer: str
    sources: list[Source] = []
    metadata: ResponseMetadata


class SimilarNote(BaseModel):
    note_id: str
    score: float
    title: str


class TagSuggestion(BaseModel):
    tag: str
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str | None = None


class SummaryOptions(BaseModel):
    style: SummaryStyle = "brief"
    max_length: int | None = Field(default=None, ge=1, description="Maximum characters")
    include_metadata: bool = False
    language: str | None = None


class NoteSummary(BaseModel):
    note_id: str
    summary: str
    key_points: list[str] | None = None
    word_count: int
    reading_time: int  # minutes, at 200 words per minute
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class IndexingResult(BaseModel):
    """Outcome of an indexing batch. Failures are per note and never abort the batch."""

    indexed: list[str] = []
    skipped: list[str] = []
    failed: dict[str, str] = {}
    chunks: int = 0
