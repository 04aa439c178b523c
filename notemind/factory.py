"""Builds a RAGSystem from Settings."""

from functools import partial
from typing import Callable

import instructor
from anthropic import AsyncAnthropic
from loguru import logger

from notemind.config import RAGSystemConfig, Settings
from notemind.embedders.base import Embedder
from notemind.embedders.engine import EmbeddingEngine
from notemind.ingestion.text_chunker import TextChunker
from notemind.llms.base import LLMProvider
from notemind.llms.instructor_llm import InstructorLLMProvider
from notemind.llms.null_provider import NullProvider
from notemind.llms.ollama_llm import OllamaProvider
from notemind.pipeline import RAGPipeline
from notemind.system import RAGSystem
from notemind.vector_dbs.local_db import LocalVectorStore


def build_embedder_factory(settings: Settings) -> Callable[[], Embedder]:
    """Return a callable that loads the configured embedder.

    Imports happen inside the callable so the model is only loaded on the engine's
    worker thread.
    """
    kwargs = {"model_name": settings.embedding_model} if settings.embedding_model else {}

    if settings.embedding_provider == "openai":
        from notemind.embedders.openai_embedder import OpenAIEmbedder

        return partial(OpenAIEmbedder, api_key=settings.openai_api_key, **kwargs)
    if settings.embedding_provider == "voyage":
        from notemind.embedders.voyage_embedder import VoyageEmbedder

        return partial(VoyageEmbedder, api_key=settings.voyage_ai_api_key, **kwargs)

    def load_sentence_transformer() -> Embedder:
        from notemind.embedders.sentence_transformer_embedder import (
            SentenceTransformerEmbedder,
        )

        return SentenceTransformerEmbedder(**kwargs)

    return load_sentence_transformer


def build_llm_provider(settings: Settings) -> LLMProvider:
    kwargs = {"model": settings.llm_model} if settings.llm_model else {}

    if settings.llm_provider == "anthropic":
        logger.info("Initializing Claude provider with Instructor")
        anthropic_client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        instructor_client = instructor.from_anthropic(
            anthropic_client, mode=instructor.Mode.ANTHROPIC_TOOLS
        )
        return InstructorLLMProvider(
            instructor_client,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            system_message=settings.system_message,
            client=anthropic_client,
            **kwargs,
        )
    if settings.llm_provider == "ollama":
        logger.info(f"Initializing Ollama provider at {settings.ollama_base_url}")
        return OllamaProvider(
            base_url=settings.ollama_base_url,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout=settings.generation_timeout,
            **kwargs,
        )

    logger.info("No LLM provider configured, generation features use their fallbacks")
    return NullProvider()


def build_rag_system(settings: Settings) -> RAGSystem:
    config = RAGSystemConfig.from_settings(settings)
    chunker = TextChunker(max_tokens=settings.chunk_max_tokens, overlap=settings.chunk_overlap)
    engine = EmbeddingEngine(
        embedder_factory=build_embedder_factory(settings),
        chunker=chunker,
        model_name=settings.embedding_model or settings.embedding_provider,
        init_timeout=settings.init_timeout,
        query_cache_size=settings.query_cache_size,
    )
    pipeline = RAGPipeline(
        embedding_engine=engine,
        vector_store=LocalVectorStore(filepath=settings.vector_store_path),
        llm_provider=build_llm_provider(settings),
        config=config,
    )
    return RAGSystem(pipeline, config)
