"""Embedding engine running model inference on a dedicated worker thread."""

import asyncio
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

import numpy as np
from loguru import logger

from notemind.domain.note import Note, TextChunk
from notemind.embedders.base import Embedder, InputType
from notemind.errors import EmbeddingError, InitializationError
from notemind.ingestion.text_chunker import TextChunker

T = TypeVar("T")


def normalize(vector: np.ndarray) -> np.ndarray:
    """L2-normalize a vector so cosine similarity reduces to a dot product."""
    vector = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0 or not np.isfinite(norm):
        raise EmbeddingError("Embedding has zero or non-finite norm")
    return vector / norm


class EmbeddingEngine:
    """Turns notes and queries into normalized vectors.

    The embedder is created lazily, exactly once, on a single worker thread. Every
    request is a round-trip to that worker, so callers on the event loop never block
    on inference and requests are served one at a time in FIFO order.
    """

    def __init__(
        self,
        *,
        embedder_factory: Callable[[], Embedder],
        chunker: TextChunker,
        model_name: str = "",
        init_timeout: float = 120.0,
        query_cache_size: int = 256,
    ) -> None:
        """Initialize the engine without loading anything.

        Args:
            embedder_factory: Builds the embedder. Called on the worker thread.
            chunker: Splits notes into chunks before embedding
            model_name: Name reported in stats before the model is loaded
            init_timeout: Seconds allowed for loading the model
            query_cache_size: Number of query vectors kept in memory
        """
        self.chunker = chunker
        self.model_name = model_name
        self.init_timeout = init_timeout
        self._embedder_factory = embedder_factory
        self._embedder: Embedder | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._init_lock = asyncio.Lock()
        self._loading: asyncio.Future[Embedder] | None = None
        self._query_cache: OrderedDict[str, np.ndarray] = OrderedDict()
        self._query_cache_size = query_cache_size
        self._dimension: int | None = None
        self._requests = 0
        self._failed_chunks = 0

    @property
    def is_initialized(self) -> bool:
        return self._embedder is not None

    async def initialize(self) -> None:
        """Load the model on the worker. A no-op when it is already loaded.

        A load that outlives `init_timeout` keeps running on the worker; the next
        call waits for that same load instead of starting another one.
        """
        async with self._init_lock:
            if self._embedder is not None:
                return

            logger.info("Initializing embedding engine...")
            if self._loading is None:
                self._loading = asyncio.ensure_future(self._submit(self._embedder_factory))
            try:
                embedder = await asyncio.wait_for(
                    asyncio.shield(self._loading), timeout=self.init_timeout
                )
            except asyncio.TimeoutError as e:
                raise InitializationError(
                    f"Embedding model did not load within {self.init_timeout}s"
                ) from e
            except Exception as e:
                self._loading = None
                raise InitializationError(f"Failed to load embedding model: {e}") from e

            self._loading = None
            self._embedder = embedder
            self.model_name = getattr(embedder, "model_name", self.model_name)
            logger.info(f"Embedding engine initialized with model {self.model_name}")

    async def embed_note(self, note: Note) -> tuple[list[TextChunk], list[np.ndarray]]:
        """Chunk a note and embed its chunks.

        Returns:
            Tuple of (chunks, vectors) aligned by position. Chunks that failed to
            embed are missing from both lists.
        """
        chunks = self.chunker.chunk_note(note)
        logger.debug(f"Generated {len(chunks)} chunks for note {note.id}")
        return await self.embed_chunks(chunks)

    async def embed_chunks(
        self, chunks: list[TextChunk]
    ) -> tuple[list[TextChunk], list[np.ndarray]]:
        """Embed chunks, dropping (and logging) the ones that fail."""
        if not chunks:
            return [], []
        embedder = await self._ensure_embedder()
        results = await self._submit(self._embed_batch, embedder, chunks)

        embedded_chunks, vectors = [], []
        for chunk, vector in zip(chunks, results):
            if vector is not None:
                embedded_chunks.append(chunk)
                vectors.append(vector)
        return embedded_chunks, vectors

    async def embed_query(self, text: str) -> np.ndarray:
        """Embed a search query.

        Raises:
            EmbeddingError: If the query cannot be embedded. There is no partial
                result to fall back to.
        """
        if text in self._query_cache:
            self._query_cache.move_to_end(text)
            return self._query_cache[text]

        embedder = await self._ensure_embedder()
        try:
            vector = await self._submit(self._embed_one, embedder, text, "query")
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(f"Failed to embed query: {e}")
            raise EmbeddingError(f"Failed to embed query: {e}") from e

        if self._query_cache_size > 0:
            self._query_cache[text] = vector
            if len(self._query_cache) > self._query_cache_size:
                self._query_cache.popitem(last=False)
        return vector

    def clear_cache(self) -> None:
        self._query_cache.clear()
        logger.info("Cleared query embedding cache")

    def get_stats(self) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "initialized": self.is_initialized,
            "dimension": self._dimension,
            "requests": self._requests,
            "failed_chunks": self._failed_chunks,
            "cached_queries": len(self._query_cache),
            "max_tokens": self.chunker.max_tokens,
            "overlap": self.chunker.overlap,
        }

    async def destroy(self) -> None:
        """Release the model and stop the worker thread."""
        async with self._init_lock:
            if self._loading is not None:
                self._loading.cancel()
                self._loading = None
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
            self._embedder = None
            self._query_cache.clear()
        logger.info("Embedding engine destroyed")

    async def _ensure_embedder(self) -> Embedder:
        if self._embedder is None:
            await self.initialize()
        assert self._embedder is not None
        return self._embedder

    async def _submit(self, fn: Callable[..., T], *args: Any) -> T:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="embedding")
        self._requests += 1
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    def _embed_one(self, embedder: Embedder, text: str, input_type: InputType) -> np.ndarray:
        vector = normalize(embedder.embed(text, input_type=input_type))
        if self._dimension is None:
            self._dimension = vector.shape[0]
        return vector

    def _embed_batch(
        self, embedder: Embedder, chunks: list[TextChunk]
    ) -> list[np.ndarray | None]:
        """Runs on the worker thread."""
        vectors: list[np.ndarray | None] = []
        for chunk in chunks:
            try:
                vectors.append(self._embed_one(embedder, chunk.text, "document"))
            except Exception as e:
                self._failed_chunks += 1
                logger.error(f"Failed to generate embedding for chunk {chunk.id}: {e}")
                vectors.append(None)
        return vectors
