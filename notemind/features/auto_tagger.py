"""Tag suggestions from similar notes, keyword tables and an optional language model."""

import re
from typing import Iterable, Sequence

from loguru import logger

from notemind.domain.note import Note
from notemind.domain.rag import TagSuggestion
from notemind.embedders.engine import EmbeddingEngine
from notemind.llms.base import LLMProvider, generate_with_timeout
from notemind.prompt import PromptTemplate
from notemind.vector_dbs.base import VectorStore

LANGUAGES = ["javascript", "typescript", "python", "java", "rust", "go", "cpp", "csharp"]
FRAMEWORKS = ["react", "vue", "angular", "django", "flask", "express", "nextjs", "svelte"]
TOPIC_KEYWORDS: dict[str, list[str]] = {
    "api": ["api", "endpoint", "rest", "graphql", "swagger"],
    "database": ["database", "sql", "mongodb", "postgres", "mysql"],
    "frontend": ["frontend", "ui", "ux", "css", "html"],
    "backend": ["backend", "server", "api", "database"],
    "devops": ["docker", "kubernetes", "ci/cd", "deployment"],
    "testing": ["test", "jest", "mocha", "cypress", "playwright"],
    "security": ["security", "auth", "encryption", "oauth", "jwt"],
    "performance": ["performance", "optimization", "cache", "speed"],
    "architecture": ["architecture", "design", "pattern", "microservice"],
    "documentation": ["documentation", "readme", "guide", "tutorial"],
}

LANGUAGE_CONFIDENCE = 0.9
FRAMEWORK_CONFIDENCE = 0.85
VOCABULARY_CONFIDENCE = 0.95
LLM_CONFIDENCE = 0.8
MULTI_SOURCE_BOOST = 1.1


def mentions(text: str, keyword: str) -> bool:
    """Case-insensitive whole-word match, so "go" does not match inside "good"."""
    pattern = rf"(?<![a-z0-9]){re.escape(keyword.lower())}(?![a-z0-9])"
    return re.search(pattern, text.lower()) is not None


def merge_suggestions(suggestions: Iterable[TagSuggestion]) -> list[TagSuggestion]:
    """Combine suggestions for the same tag, ignoring case.

    The highest confidence wins. When different sources agree, their reasons are
    joined and the confidence is boosted by 10%, capped at 1.0.
    """
    grouped: dict[str, list[TagSuggestion]] = {}
    for suggestion in suggestions:
        grouped.setdefault(suggestion.tag.lower(), []).append(suggestion)

    merged = []
    for group in grouped.values():
        best = max(group, key=lambda s: s.confidence)
        reasons = list(dict.fromkeys(s.reason for s in group if s.reason))
        confidence = best.confidence
        if len(reasons) > 1:
            confidence = min(1.0, confidence * MULTI_SOURCE_BOOST)
        merged.append(
            TagSuggestion(
                tag=best.tag,
                confidence=confidence,
                reason="; ".join(reasons) or None,
            )
        )
    return merged


class AutoTagger:
    def __init__(
        self,
        *,
        embedding_engine: EmbeddingEngine,
        vector_store: VectorStore,
        llm_provider: LLMProvider | None = None,
        prompt_template: PromptTemplate | None = None,
        similarity_threshold: float = 0.8,
        generation_timeout: float = 120.0,
    ) -> None:
        self.embedding_engine = embedding_engine
        self.vector_store = vector_store
        self.llm_provider = llm_provider
        self.prompt_template = prompt_template or PromptTemplate()
        self.similarity_threshold = similarity_threshold
        self.generation_timeout = generation_timeout
        self.existing_tags: list[str] = []

    def update_existing_tags(self, tags: Sequence[str]) -> None:
        """Replace the known tag vocabulary used for keyword matching and LLM prompts."""
        self.existing_tags = list(dict.fromkeys(tags))
        logger.debug(f"Tag vocabulary updated with {len(self.existing_tags)} tags")

    async def suggest_tags(
        self,
        note: Note,
        *,
        max_tags: int = 5,
        min_confidence: float = 0.7,
        use_llm: bool = True,
    ) -> list[TagSuggestion]:
        """Suggest tags for a note, best first.

        Args:
            note: Note to tag. It does not need to be indexed.
            max_tags: Maximum number of suggestions returned
            min_confidence: Suggestions below this confidence are dropped
            use_llm: Ask the language model too, when one is available

        Raises:
            EmbeddingError: If the note cannot be embedded
            RetrievalError: If the vector store is unavailable
        """
        try:
            suggestions = await self._similarity_tags(note, limit=max_tags * 2)
            suggestions += self._keyword_tags(note)
            if use_llm and self.llm_provider is not None and self.llm_provider.available:
                suggestions += await self._llm_tags(note)
        except Exception as e:
            logger.error(f"Failed to suggest tags for note {note.id}: {e}")
            raise

        merged = [s for s in merge_suggestions(suggestions) if s.confidence >= min_confidence]
        merged.sort(key=lambda s: s.confidence, reverse=True)
        return merged[:max_tags]

    def apply_tags(self, note: Note, tags: Sequence[str]) -> Note:
        """Return a copy of the note with the tags added, keeping existing ones first."""
        merged_tags = list(dict.fromkeys([*note.tags, *tags]))
        return note.model_copy(update={"tags": merged_tags})

    async def batch_suggest_tags(
        self, notes: Sequence[Note], **options
    ) -> dict[str, list[TagSuggestion]]:
        """Suggest tags for several notes. A failing note gets an empty list."""
        results: dict[str, list[TagSuggestion]] = {}
        for note in notes:
            try:
                results[note.id] = await self.suggest_tags(note, **options)
            except Exception:
                logger.exception(f"Failed to suggest tags for note {note.id}")
                results[note.id] = []
        return results

    async def _similarity_tags(self, note: Note, limit: int) -> list[TagSuggestion]:
        _, vectors = await self.embedding_engine.embed_note(note)
        if not vectors:
            return []

        results = self.vector_store.search(
            vectors[0],
            limit=limit,
            threshold=self.similarity_threshold,
            note_ids=None,
            exclude_note_ids=[note.id],
        )

        # One vote per neighbouring note, with its best chunk score
        neighbours: dict[str, tuple[float, list[str]]] = {}
        for result in results:
            if result.note_id not in neighbours:
                neighbours[result.note_id] = (result.score, result.metadata.get("tags") or [])
        if not neighbours:
            return []

        counts: dict[str, int] = {}
        best_scores: dict[str, float] = {}
        for score, tags in neighbours.values():
            for tag in dict.fromkeys(tags):
                counts[tag] = counts.get(tag, 0) + 1
                best_scores[tag] = max(best_scores.get(tag, 0.0), score)

        suggestions = []
        for tag, count in counts.items():
            confidence = 0.7 * best_scores[tag] + 0.3 * (count / len(neighbours))
            suggestions.append(
                TagSuggestion(
                    tag=tag,
                    confidence=min(1.0, max(0.0, confidence)),
                    reason=f"Found in {count} similar notes",
                )
            )
        return suggestions

    def _keyword_tags(self, note: Note) -> list[TagSuggestion]:
        content = f"{note.title} {note.content}"
        suggestions = []

        for language in LANGUAGES:
            if mentions(content, language):
                suggestions.append(
                    TagSuggestion(
                        tag=language,
                        confidence=LANGUAGE_CONFIDENCE,
                        reason="Programming language detected",
                    )
                )

        for framework in FRAMEWORKS:
            if mentions(content, framework):
                suggestions.append(
                    TagSuggestion(
                        tag=framework, confidence=FRAMEWORK_CONFIDENCE, reason="Framework detected"
                    )
                )

        for tag, keywords in TOPIC_KEYWORDS.items():
            matches = sum(1 for kw in keywords if mentions(content, kw))
            if matches:
                suggestions.append(
                    TagSuggestion(
                        tag=tag,
                        confidence=min(0.95, 0.7 + matches * 0.1),
                        reason=f"Topic keywords detected ({matches} matches)",
                    )
                )

        for existing_tag in self.existing_tags:
            if mentions(content, existing_tag):
                suggestions.append(
                    TagSuggestion(
                        tag=existing_tag,
                        confidence=VOCABULARY_CONFIDENCE,
                        reason="Existing tag mentioned in content",
                    )
                )

        return suggestions

    async def _llm_tags(self, note: Note) -> list[TagSuggestion]:
        assert self.llm_provider is not None
        prompt = self.prompt_template.tagging_prompt(note.full_text, self.existing_tags)
        try:
            response = await generate_with_timeout(
                self.llm_provider, prompt, self.generation_timeout
            )
        except Exception as e:
            logger.warning(f"Failed to get LLM-based tags for note {note.id}: {e}")
            return []

        tags = [t.strip() for t in response.text.split(",") if t.strip()]
        return [TagSuggestion(tag=tag, confidence=LLM_CONFIDENCE, reason="AI suggested") for tag in tags]
