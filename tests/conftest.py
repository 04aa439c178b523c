from pathlib import Path
from typing import AsyncGenerator, Generator

import pytest
from fastapi.testclient import TestClient

from notemind.api import create_app
from notemind.config import RAGConfig, RAGSystemConfig
from notemind.domain.note import Note
from notemind.embedders.engine import EmbeddingEngine
from notemind.ingestion.text_chunker import TextChunker
from notemind.pipeline import RAGPipeline
from notemind.system import RAGSystem
from notemind.vector_dbs.local_db import LocalVectorStore
from tests.fakes import CountingEmbedderFactory, FakeLLMProvider


@pytest.fixture
def test_notes() -> dict[str, Note]:
    return {
        "rust": Note(
            id="rust",
            title="Rust",
            content="Learning Rust ownership and borrowing",
        ),
        "python": Note(
            id="python",
            title="Python",
            content="Python async generators",
            tags=["python"],
        ),
        "coffee": Note(
            id="coffee",
            title="Coffee brewing",
            content="Pour over coffee needs freshly ground beans and water just off the boil.",
            tags=["coffee", "kitchen"],
            notebook="home",
        ),
    }


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker(max_tokens=64)


@pytest.fixture
def embedder_factory() -> CountingEmbedderFactory:
    return CountingEmbedderFactory()


@pytest.fixture
def embedding_engine(
    embedder_factory: CountingEmbedderFactory, chunker: TextChunker
) -> EmbeddingEngine:
    return EmbeddingEngine(embedder_factory=embedder_factory, chunker=chunker, init_timeout=5)


@pytest.fixture
def vector_store() -> LocalVectorStore:
    return LocalVectorStore()


@pytest.fixture
def fake_llm() -> FakeLLMProvider:
    return FakeLLMProvider(
        responses=[
            "Rust ownership means every value has a single owner.",
            " Borrowing lends access without moving it.",
        ]
    )


@pytest.fixture
def rag_config() -> RAGConfig:
    """Lower retrieval threshold, since bag-of-words similarities are modest."""
    return RAGConfig(min_score=0.3)


@pytest.fixture
async def pipeline(
    embedding_engine: EmbeddingEngine,
    vector_store: LocalVectorStore,
    fake_llm: FakeLLMProvider,
    rag_config: RAGConfig,
) -> AsyncGenerator[RAGPipeline, None]:
    pipeline = RAGPipeline(
        embedding_engine=embedding_engine,
        vector_store=vector_store,
        llm_provider=fake_llm,
        config=rag_config,
    )
    yield pipeline
    await pipeline.destroy()


@pytest.fixture
def make_rag_system(
    embedder_factory: CountingEmbedderFactory, chunker: TextChunker
) -> Generator:
    """Build RAGSystems on fresh components, destroying their engines' workers afterwards."""
    engines: list[EmbeddingEngine] = []

    def _make(llm_provider=None, **config) -> RAGSystem:
        engine = EmbeddingEngine(embedder_factory=embedder_factory, chunker=chunker)
        engines.append(engine)
        system_config = RAGSystemConfig(min_score=0.3, **config)
        pipeline = RAGPipeline(
            embedding_engine=engine,
            vector_store=LocalVectorStore(),
            llm_provider=llm_provider,
            config=system_config,
        )
        return RAGSystem(pipeline, system_config)

    yield _make

    for engine in engines:
        if engine._executor is not None:
            engine._executor.shutdown(wait=False, cancel_futures=True)


@pytest.fixture
def test_client(make_rag_system, fake_llm: FakeLLMProvider) -> Generator[TestClient, None, None]:
    """Create test client backed by fake embedder and LLM implementations."""
    app = create_app(rag_system=make_rag_system(llm_provider=fake_llm))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def notes_directory(tmp_path: Path) -> Path:
    """Create a notes directory with a nested notebook folder."""
    notes_dir = tmp_path / "notes"
    (notes_dir / "Projects").mkdir(parents=True)
    return notes_dir
