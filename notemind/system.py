"""Single entry point for the RAG features, with per-feature switches."""

from typing import Any, AsyncIterator, Sequence

from loguru import logger

from notemind.config import RAGSystemConfig
from notemind.domain.note import Note
from notemind.domain.rag import (
    IndexingResult,
    NoteSummary,
    RAGQuery,
    RAGResponse,
    SimilarNote,
    SummaryOptions,
    TagSuggestion,
)
from notemind.errors import FeatureDisabledError, InitializationError
from notemind.features.auto_tagger import AutoTagger
from notemind.features.summarizer import NoteSummarizer
from notemind.pipeline import RAGPipeline


class RAGSystem:
    """Owns one RAGPipeline and exposes the features enabled in its config.

    Every async operation initializes the pipeline on first use. Calling a feature
    that is switched off raises FeatureDisabledError without doing any work.
    """

    def __init__(self, pipeline: RAGPipeline, config: RAGSystemConfig | None = None) -> None:
        self.pipeline = pipeline
        self.config = config or RAGSystemConfig()

        self.auto_tagger: AutoTagger | None = None
        if self.config.enable_auto_tagging:
            self.auto_tagger = AutoTagger(
                embedding_engine=pipeline.embedding_engine,
                vector_store=pipeline.vector_store,
                llm_provider=pipeline.llm_provider,
                prompt_template=pipeline.prompt_template,
                similarity_threshold=self.config.tag_similarity_threshold,
                generation_timeout=self.config.generation_timeout,
            )

        self.summarizer: NoteSummarizer | None = None
        if self.config.enable_summarization:
            self.summarizer = NoteSummarizer(
                pipeline.llm_provider,
                prompt_template=pipeline.prompt_template,
                generation_timeout=self.config.generation_timeout,
            )

    @property
    def is_initialized(self) -> bool:
        return self.pipeline.is_initialized

    async def initialize(self) -> None:
        await self.pipeline.initialize()

    async def process_notes(self, notes: Sequence[Note]) -> IndexingResult:
        await self.initialize()
        logger.info(f"Processing {len(notes)} notes for RAG...")
        return await self.pipeline.index_notes(notes)

    async def update_notes(self, notes: Sequence[Note]) -> IndexingResult:
        await self.initialize()
        return await self.pipeline.update_index(notes)

    async def delete_notes(self, note_ids: Sequence[str]) -> int:
        await self.initialize()
        return await self.pipeline.remove_notes(note_ids)

    async def query(self, query: str | RAGQuery) -> RAGResponse:
        self._require(self.config.enable_qa, "Q&A")
        await self.initialize()
        request = RAGQuery(query=query) if isinstance(query, str) else query
        return await self.pipeline.query(request)

    async def stream_query(self, query: str | RAGQuery) -> AsyncIterator[str]:
        """Start a streamed answer.

        Feature and initialization checks happen here, before any fragment is
        produced. Closing the returned iterator stops generation.
        """
        self._require(self.config.enable_qa, "Q&A")
        await self.initialize()
        request = RAGQuery(query=query) if isinstance(query, str) else query
        return self.pipeline.stream_query(request)

    async def get_similar_notes(self, note_id: str, limit: int = 5) -> list[SimilarNote]:
        self._require(self.config.enable_similar_notes, "Similar notes")
        await self.initialize()
        return await self.pipeline.get_similar_notes(note_id, limit)

    async def suggest_tags(
        self,
        note: Note,
        *,
        max_tags: int = 5,
        min_confidence: float = 0.7,
        use_llm: bool = True,
    ) -> list[TagSuggestion]:
        auto_tagger = self._require(self.auto_tagger, "Auto-tagging")
        await self.initialize()
        return await auto_tagger.suggest_tags(
            note, max_tags=max_tags, min_confidence=min_confidence, use_llm=use_llm
        )

    def update_tags_list(self, tags: Sequence[str]) -> None:
        """Set the tag vocabulary the auto-tagger matches against."""
        auto_tagger = self._require(self.auto_tagger, "Auto-tagging")
        auto_tagger.update_existing_tags(tags)

    async def summarize_note(self, note: Note, options: SummaryOptions | None = None) -> NoteSummary:
        summarizer = self._require(self.summarizer, "Summarization")
        await self.initialize()
        return await summarizer.summarize(note, options)

    async def summarize_collection(
        self, notes: Sequence[Note], title: str, options: SummaryOptions | None = None
    ) -> str:
        summarizer = self._require(self.summarizer, "Summarization")
        await self.initialize()
        return await summarizer.summarize_collection(notes, title, options)

    async def get_stats(self) -> dict[str, Any]:
        """Report feature switches and pipeline stats.

        A system that cannot initialize reports `initialized: False` and no pipeline
        stats instead of raising.
        """
        try:
            await self.initialize()
        except InitializationError as e:
            logger.warning(f"RAG system unavailable, reporting stats without pipeline: {e}")
        return {
            "initialized": self.is_initialized,
            "features": {
                "auto_tagging": self.config.enable_auto_tagging,
                "summarization": self.config.enable_summarization,
                "similar_notes": self.config.enable_similar_notes,
                "qa": self.config.enable_qa,
            },
            "pipeline": await self.pipeline.get_stats() if self.is_initialized else None,
        }

    async def clear_data(self) -> None:
        await self.initialize()
        await self.pipeline.clear()
        logger.info("Cleared all RAG data")

    async def destroy(self) -> None:
        await self.pipeline.destroy()
        logger.info("RAG system destroyed")

    @staticmethod
    def _require(feature, name: str):
        """Return the feature (or flag) if it is enabled, otherwise raise."""
        if not feature:
            raise FeatureDisabledError(f"{name} is disabled")
        return feature
