"""Orchestrates indexing and retrieval-augmented querying."""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

from loguru import logger

from notemind.config import RAGConfig
from notemind.domain.note import EmbeddingRecord, Note, ScoredResult
from notemind.domain.rag import (
    IndexingResult,
    RAGQuery,
    RAGResponse,
    ResponseMetadata,
    SimilarNote,
    Source,
)
from notemind.embedders.engine import EmbeddingEngine
from notemind.errors import EmbeddingError, GenerationError, InitializationError, RetrievalError
from notemind.llms.base import LLMProvider, generate_with_timeout
from notemind.llms.null_provider import NullProvider
from notemind.prompt import PromptTemplate
from notemind.vector_dbs.base import VectorStore

NO_RESULTS_ANSWER = "I couldn't find any relevant information in your notes."
SNIPPET_LENGTH = 200


class RAGPipeline:
    """Indexes notes into a vector store and answers questions over them."""

    def __init__(
        self,
        *,
        embedding_engine: EmbeddingEngine,
        vector_store: VectorStore,
        llm_provider: LLMProvider | None = None,
        prompt_template: PromptTemplate | None = None,
        config: RAGConfig | None = None,
    ):
        """Initialize the pipeline with its collaborators. Nothing is loaded yet.

        Args:
            embedding_engine: Engine that owns the embedding model
            vector_store: Store owned exclusively by this pipeline
            llm_provider: Language model used for answers. None means no model.
            prompt_template: Renders prompts, defaults to PromptTemplate()
            config: Retrieval and timeout settings
        """
        self.embedding_engine = embedding_engine
        self.vector_store = vector_store
        self.llm_provider: LLMProvider = llm_provider or NullProvider()
        self.prompt_template = prompt_template or PromptTemplate()
        self.config = config or RAGConfig()

        self._initialized = False
        self._initializing: asyncio.Task | None = None
        self._note_locks: dict[str, asyncio.Lock] = {}
        self._note_lock_users: dict[str, int] = {}

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Load the embedding model, the vector store and the language model.

        Safe to call repeatedly and concurrently: callers arriving while a load is in
        flight wait for that same load.

        Raises:
            InitializationError: If any component fails to load. The pipeline stays
                uninitialized and a later call retries.
        """
        if self._initialized:
            return
        if self._initializing is None:
            self._initializing = asyncio.create_task(self._load())
        task = self._initializing
        try:
            await asyncio.shield(task)
        finally:
            if task.done() and self._initializing is task:
                self._initializing = None

    async def _load(self) -> None:
        logger.info("Initializing RAG pipeline...")
        try:
            self.vector_store.load()
            await asyncio.gather(
                self.embedding_engine.initialize(),
                asyncio.wait_for(self.llm_provider.initialize(), timeout=self.config.init_timeout),
            )
        except InitializationError:
            logger.error("Failed to initialize RAG pipeline")
            raise
        except Exception as e:
            logger.error(f"Failed to initialize RAG pipeline: {e}")
            raise InitializationError(f"Failed to initialize RAG pipeline: {e}") from e

        self._initialized = True
        logger.info("RAG pipeline initialized successfully")

    async def index_notes(self, notes: Sequence[Note]) -> IndexingResult:
        """Chunk, embed and store each note. A failing note does not stop the others."""
        return await self._index(notes, skip_unchanged=False)

    async def update_index(self, notes: Sequence[Note]) -> IndexingResult:
        """Re-index notes whose content changed since they were last indexed.

        A note whose tags or notebook changed but whose text did not keeps its
        vectors and only has its stored metadata refreshed.

        Each note's old records are swapped for the new ones in a single step, under
        a per-note lock, so no reader ever sees a half-updated note.
        """
        return await self._index(notes, skip_unchanged=True)

    async def remove_notes(self, note_ids: Sequence[str]) -> int:
        """Delete every record of the given notes."""
        await self._ensure_initialized()
        removed = 0
        for note_id in note_ids:
            async with self._note_lock(note_id):
                removed += self.vector_store.remove_by_note(note_id)
        self._persist()
        logger.info(f"Removed {removed} vectors for {len(note_ids)} notes")
        return removed

    async def _index(self, notes: Sequence[Note], *, skip_unchanged: bool) -> IndexingResult:
        await self._ensure_initialized()

        logger.info(f"Indexing {len(notes)} notes...")
        start_time = time.perf_counter()
        result = IndexingResult()

        for note in notes:
            try:
                async with self._note_lock(note.id):
                    stored = self.vector_store.get_records_for_note(note.id)
                    unchanged = (
                        skip_unchanged
                        and bool(stored)
                        and stored[0].metadata.get("content_digest") == note.content_digest
                    )
                    if not unchanged:
                        result.chunks += await self._index_note(note)
                    elif not self._refresh_metadata(note, stored):
                        result.skipped.append(note.id)
                        continue
                result.indexed.append(note.id)
            except Exception as e:
                logger.exception(f"Failed to index note {note.id}")
                result.failed[note.id] = str(e)

        if result.indexed:
            self._persist()

        elapsed = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Indexed {len(result.indexed)} notes ({result.chunks} chunks) in {elapsed:.0f}ms, "
            f"skipped {len(result.skipped)}, failed {len(result.failed)}"
        )
        return result

    async def _index_note(self, note: Note) -> int:
        chunks, vectors = await self.embedding_engine.embed_note(note)
        if not chunks and note.full_text.strip():
            raise EmbeddingError(f"No chunk of note {note.id} could be embedded")

        records = [EmbeddingRecord.from_chunk(c, v) for c, v in zip(chunks, vectors)]
        self.vector_store.replace_note(note.id, records)
        return len(records)

    def _refresh_metadata(self, note: Note, records: list[EmbeddingRecord]) -> bool:
        """Copy changed tags or notebook onto the stored records, keeping their vectors.

        Returns False when the stored metadata is already current.
        """
        current = {"tags": list(note.tags), "notebook": note.notebook}
        if all(records[0].metadata.get(key) == value for key, value in current.items()):
            return False

        refreshed = [
            record.model_copy(update={"metadata": {**record.metadata, **current}})
            for record in records
        ]
        self.vector_store.replace_note(note.id, refreshed)
        logger.debug(f"Refreshed tags and notebook of note {note.id}")
        return True

    async def query(self, request: RAGQuery) -> RAGResponse:
        """Answer a question from the indexed notes.

        Raises:
            EmbeddingError: If the question cannot be embedded
            RetrievalError: If the vector store is unavailable
            GenerationError: If the language model fails or is not configured
        """
        await self._ensure_initialized()
        start_time = time.perf_counter()

        try:
            results = await self._retrieve(request)
            if not results:
                return RAGResponse(
                    answer=NO_RESULTS_ANSWER,
                    sources=[],
                    metadata=ResponseMetadata(
                        model=self.llm_provider.model, latency_ms=self._elapsed(start_time)
                    ),
                )

            prompt = self._build_prompt(request, results)
            llm_response = await generate_with_timeout(
                self.llm_provider, prompt, self.config.generation_timeout
            )
        except Exception as e:
            logger.error(f"Failed to process RAG query: {e}")
            raise

        return RAGResponse(
            answer=llm_response.text,
            sources=self._to_sources(results),
            metadata=ResponseMetadata(
                model=llm_response.model,
                tokens_used=llm_response.tokens_used,
                latency_ms=self._elapsed(start_time),
            ),
        )

    async def stream_query(self, request: RAGQuery) -> AsyncIterator[str]:
        """Answer a question as a stream of text fragments.

        Retrieval is the same as query(). Closing the iterator early aborts the
        provider stream and releases its connection.
        """
        await self._ensure_initialized()

        results = await self._retrieve(request)
        if not results:
            yield NO_RESULTS_ANSWER
            return

        prompt = self._build_prompt(request, results)
        stream = self.llm_provider.stream(prompt)
        completed = False
        try:
            async for fragment in stream:
                yield fragment
            completed = True
        except GenerationError:
            raise
        except Exception as e:
            logger.error(f"Failed to stream RAG response: {e}")
            raise GenerationError(f"Failed to stream response: {e}") from e
        finally:
            await stream.aclose()  # type: ignore[attr-defined]
            if not completed:
                logger.debug("Answer stream closed before completion")

    async def get_similar_notes(self, note_id: str, limit: int = 5) -> list[SimilarNote]:
        """Find the notes closest to a note, never including the note itself.

        The note's first chunk stands in for the whole note. Each other note appears
        once, with its best-scoring chunk.
        """
        await self._ensure_initialized()

        records = self.vector_store.get_records_for_note(note_id)
        if not records:
            return []

        results = self._search(
            records[0].vector,
            limit=self.vector_store.get_stats()["total_vectors"],
            threshold=self.config.similar_notes_min_score,
            note_ids=None,
            exclude_note_ids=[note_id],
        )

        similar_notes: list[SimilarNote] = []
        seen: set[str] = set()
        for result in results:
            if result.note_id in seen or result.note_id == note_id:
                continue
            seen.add(result.note_id)
            similar_notes.append(
                SimilarNote(note_id=result.note_id, score=result.score, title=result.title)
            )
            if len(similar_notes) >= limit:
                break
        return similar_notes

    async def get_stats(self) -> dict[str, Any]:
        return {
            "embedding_stats": self.embedding_engine.get_stats(),
            "vector_stats": self.vector_store.get_stats(),
            "llm_stats": self.llm_provider.get_stats(),
        }

    async def clear(self) -> None:
        """Drop every indexed record and cached query vector."""
        await self._ensure_initialized()
        self.embedding_engine.clear_cache()
        self.vector_store.clear()
        self._persist()

    async def destroy(self) -> None:
        """Stop the embedding worker, close the store and release provider handles."""
        await self.embedding_engine.destroy()
        self.vector_store.close()
        await self.llm_provider.aclose()
        self._initialized = False
        logger.info("RAG pipeline destroyed")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def _retrieve(self, request: RAGQuery) -> list[ScoredResult]:
        query_vector = await self.embedding_engine.embed_query(request.query)
        metadata_filter: dict[str, Any] = {}
        if request.tags:
            metadata_filter["tags"] = request.tags
        if request.notebook:
            metadata_filter["notebook"] = request.notebook

        return self._search(
            query_vector,
            limit=request.limit or self.config.top_k,
            threshold=self.config.min_score,
            note_ids=request.note_ids,
            metadata_filter=metadata_filter or None,
        )

    def _search(self, vector, **kwargs) -> list[ScoredResult]:
        try:
            return self.vector_store.search(vector, **kwargs)
        except (RetrievalError, ValueError):
            raise
        except Exception as e:
            raise RetrievalError(f"Vector search failed: {e}") from e

    def _build_prompt(self, request: RAGQuery, results: list[ScoredResult]) -> str:
        return self.prompt_template.rag_prompt(
            question=request.query,
            results=results,
            include_metadata=request.include_metadata,
            template=request.template,
        )

    @asynccontextmanager
    async def _note_lock(self, note_id: str) -> AsyncIterator[None]:
        """Serialise work on one note. The lock is dropped once nobody holds or awaits it."""
        lock = self._note_locks.setdefault(note_id, asyncio.Lock())
        self._note_lock_users[note_id] = self._note_lock_users.get(note_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._note_lock_users[note_id] -= 1
            if not self._note_lock_users[note_id]:
                del self._note_lock_users[note_id]
                del self._note_locks[note_id]

    def _persist(self) -> None:
        if self.vector_store.is_persistent:
            self.vector_store.save()

    @staticmethod
    def _to_sources(results: list[ScoredResult]) -> list[Source]:
        return [
            Source(
                note_id=r.note_id,
                title=r.title,
                chunk_id=r.chunk_id,
                score=r.score,
                snippet=r.text[:SNIPPET_LENGTH] + ("..." if len(r.text) > SNIPPET_LENGTH else ""),
            )
            for r in results
        ]

    @staticmethod
    def _elapsed(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000
