import asyncio

import numpy as np
import pytest

from notemind.domain.note import Note
from notemind.embedders.engine import EmbeddingEngine, normalize
from notemind.errors import EmbeddingError, InitializationError
from notemind.ingestion.text_chunker import TextChunker
from tests.fakes import FAIL_MARKER, CountingEmbedderFactory


async def test_model_loads_once_on_the_worker(
    embedding_engine: EmbeddingEngine, embedder_factory: CountingEmbedderFactory
) -> None:
    await asyncio.gather(*(embedding_engine.initialize() for _ in range(5)))
    await embedding_engine.embed_query("hello")

    assert embedder_factory.calls == 1
    assert embedder_factory.thread_names[0].startswith("embedding")
    assert embedding_engine.is_initialized
    await embedding_engine.destroy()


async def test_embedding_is_lazy(
    embedding_engine: EmbeddingEngine, embedder_factory: CountingEmbedderFactory
) -> None:
    assert not embedding_engine.is_initialized

    vector = await embedding_engine.embed_query("lazy loading")

    assert embedder_factory.calls == 1
    assert vector.dtype == np.float32
    await embedding_engine.destroy()


async def test_vectors_are_normalized_and_deterministic(embedding_engine: EmbeddingEngine) -> None:
    note = Note(id="n", title="Rust", content="Learning Rust ownership and borrowing")

    _, first = await embedding_engine.embed_note(note)
    _, second = await embedding_engine.embed_note(note)

    assert len(first) == 1
    assert np.linalg.norm(first[0]) == pytest.approx(1.0)
    np.testing.assert_array_equal(first[0], second[0])
    await embedding_engine.destroy()


async def test_failing_chunk_is_dropped(embedder_factory: CountingEmbedderFactory) -> None:
    engine = EmbeddingEngine(
        embedder_factory=embedder_factory, chunker=TextChunker(max_tokens=25)
    )
    note = Note(
        id="n",
        title="Mixed",
        content=(
            "The first paragraph embeds without any trouble at all, as we expect here.\n\n"
            f"The second paragraph contains {FAIL_MARKER} and therefore cannot be embedded.\n\n"
            "The third paragraph embeds without any trouble either, as we expect here."
        ),
    )

    chunks, vectors = await engine.embed_note(note)

    assert len(chunks) == len(vectors)
    assert chunks
    assert all(FAIL_MARKER not in chunk.text for chunk in chunks)
    assert engine.get_stats()["failed_chunks"] >= 1
    await engine.destroy()


async def test_query_failure_raises(embedding_engine: EmbeddingEngine) -> None:
    with pytest.raises(EmbeddingError):
        await embedding_engine.embed_query(f"please {FAIL_MARKER}")
    with pytest.raises(EmbeddingError):
        await embedding_engine.embed_query("!!!")
    await embedding_engine.destroy()


async def test_query_vectors_are_cached(embedding_engine: EmbeddingEngine) -> None:
    first = await embedding_engine.embed_query("cached question")
    second = await embedding_engine.embed_query("cached question")

    assert first is second
    assert embedding_engine.get_stats()["cached_queries"] == 1

    embedding_engine.clear_cache()
    assert embedding_engine.get_stats()["cached_queries"] == 0
    await embedding_engine.destroy()


async def test_query_cache_is_bounded(embedder_factory: CountingEmbedderFactory) -> None:
    engine = EmbeddingEngine(
        embedder_factory=embedder_factory, chunker=TextChunker(), query_cache_size=2
    )

    for text in ["one", "two", "three"]:
        await engine.embed_query(text)

    assert engine.get_stats()["cached_queries"] == 2
    await engine.destroy()


async def test_init_timeout_raises_initialization_error() -> None:
    engine = EmbeddingEngine(
        embedder_factory=CountingEmbedderFactory(delay=0.5),
        chunker=TextChunker(),
        init_timeout=0.05,
    )

    with pytest.raises(InitializationError):
        await engine.initialize()
    assert not engine.is_initialized
    await engine.destroy()


async def test_retry_after_timeout_waits_for_the_pending_load() -> None:
    factory = CountingEmbedderFactory(delay=0.3)
    engine = EmbeddingEngine(embedder_factory=factory, chunker=TextChunker(), init_timeout=0.05)

    with pytest.raises(InitializationError):
        await engine.initialize()
    engine.init_timeout = 5.0
    await engine.initialize()

    assert factory.calls == 1
    assert engine.is_initialized
    await engine.destroy()


async def test_failed_init_can_be_retried() -> None:
    attempts = []

    def flaky_factory():
        attempts.append(1)
        if len(attempts) == 1:
            raise OSError("model files missing")
        return CountingEmbedderFactory()()

    engine = EmbeddingEngine(embedder_factory=flaky_factory, chunker=TextChunker())

    with pytest.raises(InitializationError):
        await engine.initialize()
    await engine.initialize()

    assert engine.is_initialized
    await engine.destroy()


async def test_destroy_then_reinitialize(
    embedding_engine: EmbeddingEngine, embedder_factory: CountingEmbedderFactory
) -> None:
    await embedding_engine.initialize()
    await embedding_engine.destroy()

    assert not embedding_engine.is_initialized

    await embedding_engine.embed_query("back again")
    assert embedder_factory.calls == 2
    await embedding_engine.destroy()


def test_normalize_rejects_zero_vector() -> None:
    with pytest.raises(EmbeddingError):
        normalize(np.zeros(4))

    assert np.linalg.norm(normalize(np.array([3.0, 4.0]))) == pytest.approx(1.0)
