from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage settings
    vector_store_path: str | None = "data/vectors.json"

    # Embedding settings
    embedding_provider: Literal["sentence-transformers", "openai", "voyage"] = (
        "sentence-transformers"
    )
    embedding_model: str | None = None  # None picks the provider's default model
    chunk_max_tokens: int = 256
    chunk_overlap: int | None = None  # defaults to 15% of chunk_max_tokens
    query_cache_size: int = 256

    # LLM settings
    llm_provider: Literal["anthropic", "ollama", "none"] = "none"
    llm_model: str | None = None  # None picks the provider's default model
    ollama_base_url: str = "http://localhost:11434"
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    voyage_ai_api_key: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1024
    system_message: str = """You are a helpful assistant that helps users explore and understand their personal notes. Structure your responses clearly using proper spacing and Markdown formatting.

Use proper Markdown formatting:
- Bold for emphasis using **text**
- Code blocks with ```language
- Lists with - or numbers
- Quote blocks with >

Keep responses clear and well-organized, and always mention the notes you are drawing from.
"""

    # Retrieval settings
    rag_top_k: int = 5
    rag_min_score: float = 0.7
    init_timeout: float = 120.0
    generation_timeout: float = 120.0

    # Feature flags
    enable_auto_tagging: bool = True
    enable_summarization: bool = True
    enable_similar_notes: bool = True
    enable_qa: bool = True

    log_level: str = "INFO"  # Can be DEBUG, INFO, WARNING, ERROR, CRITICAL


class RAGConfig(BaseModel):
    """Retrieval and generation knobs used by the pipeline and its features."""

    top_k: int = Field(5, ge=1, description="Chunks retrieved per question")
    min_score: float = Field(0.7, description="Similarity threshold for Q&A retrieval")
    tag_similarity_threshold: float = Field(
        0.8, description="Similarity threshold for neighbours considered by the auto-tagger"
    )
    similar_notes_min_score: float = Field(
        0.0, description="Similarity threshold for related-note lookups"
    )
    init_timeout: float = Field(120.0, gt=0, description="Seconds allowed for loading models")
    generation_timeout: float = Field(
        120.0, gt=0, description="Seconds allowed for a single generate call"
    )


class RAGSystemConfig(RAGConfig):
    """Feature switches for the RAGSystem facade, on top of the pipeline config."""

    enable_auto_tagging: bool = True
    enable_summarization: bool = True
    enable_similar_notes: bool = True
    enable_qa: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "RAGSystemConfig":
        return cls(
            top_k=settings.rag_top_k,
            min_score=settings.rag_min_score,
            init_timeout=settings.init_timeout,
            generation_timeout=settings.generation_timeout,
            enable_auto_tagging=settings.enable_auto_tagging,
            enable_summarization=settings.enable_summarization,
            enable_similar_notes=settings.enable_similar_notes,
            enable_qa=settings.enable_qa,
        )


settings = Settings()
