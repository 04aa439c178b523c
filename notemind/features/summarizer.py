"""Note summaries, written by a language model when one is available and by rules otherwise."""

import math
import re
from typing import Sequence

from loguru import logger

from notemind.domain.note import Note
from notemind.domain.rag import NoteSummary, SummaryOptions
from notemind.llms.base import LLMProvider, generate_with_timeout
from notemind.prompt import PromptTemplate

NO_NOTES_SUMMARY = "No notes to summarize."
WORDS_PER_MINUTE = 200

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_BULLET = re.compile(r"^\s*[-•*]\s+")
_HEADER = re.compile(r"^#{1,3}\s")
_LIST_ITEM = re.compile(r"^[-*]\s")
_EMPHASIS = re.compile(r"\*\*([^*]+)\*\*|\*([^*]+)\*")
_CONCLUSION_PATTERNS = [
    re.compile(r"^(in conclusion|therefore|thus|hence|as a result)", re.IGNORECASE),
    re.compile(r"^(key takeaway|important|note that|remember)", re.IGNORECASE),
    re.compile(r"^(insight|learning|discovered|found that)", re.IGNORECASE),
]


def parse_key_points(text: str) -> list[str] | None:
    """Collect the bullet lines of a generated summary."""
    points = [_BULLET.sub("", line).strip() for line in text.splitlines() if _BULLET.match(line)]
    return points or None


def truncate(text: str, max_length: int | None) -> str:
    """Cut text to at most max_length characters, on a word boundary when possible."""
    if not max_length or len(text) <= max_length:
        return text
    cut = text[: max_length + 1]
    boundary = cut.rfind(" ")
    return (cut[:boundary] if boundary > 0 else text[:max_length]).rstrip()


class FallbackSummarizer:
    """Deterministic, rule-based summaries used when no language model is configured."""

    def summarize(self, note: Note, options: SummaryOptions) -> str:
        if not self._sentences(note.content):
            return note.title

        if options.style == "brief":
            summary = self._first_paragraph(note.content) or note.title
        elif options.style == "detailed":
            summary = self._key_paragraphs(note.content, 3)
        elif options.style == "bullet-points":
            summary = "\n".join(f"- {p}" for p in self.extract_key_points(note))
        else:
            summary = "\n".join(f"- {i}" for i in self.extract_insights(note))

        return summary or note.title

    def extract_key_points(self, note: Note) -> list[str]:
        """Headers and list items of a note, padded with leading sentences when scarce."""
        lines = note.content.split("\n")
        headers = [re.sub(r"^#+\s", "", line).strip() for line in lines if _HEADER.match(line)]
        list_items = [_LIST_ITEM.sub("", line).strip() for line in lines if _LIST_ITEM.match(line)]

        points = headers[:5] + list_items[:5]
        if len(points) < 3:
            points += self._sentences(note.content)[:3]
        return list(dict.fromkeys(points))[:5]

    def extract_insights(self, note: Note) -> list[str]:
        insights = []
        for line in note.content.split("\n"):
            stripped = line.strip()
            if any(pattern.match(stripped) for pattern in _CONCLUSION_PATTERNS):
                insights.append(stripped)

        for match in _EMPHASIS.finditer(note.content):
            insights.append(match.group(0).replace("*", "").strip())

        return list(dict.fromkeys(insights))[:5]

    @staticmethod
    def _sentences(text: str) -> list[str]:
        flattened = re.sub(r"\n+", " ", text)
        sentences = (s.strip() for s in re.split(r"[.!?]+", flattened))
        return [s for s in sentences if len(s) > 20]

    @staticmethod
    def _paragraphs(text: str) -> list[str]:
        return [p.strip() for p in _PARAGRAPH_BREAK.split(text) if len(p.strip()) > 50]

    def _first_paragraph(self, text: str) -> str | None:
        paragraphs = self._paragraphs(text)
        return paragraphs[0] if paragraphs else None

    def _key_paragraphs(self, text: str, count: int) -> str:
        paragraphs = self._paragraphs(text)
        if len(paragraphs) <= count:
            return "\n\n".join(paragraphs)

        selected = [paragraphs[0]]
        if count > 2:
            selected.append(paragraphs[len(paragraphs) // 2])
        selected.append(paragraphs[-1])
        return "\n\n".join(selected)


class NoteSummarizer:
    def __init__(
        self,
        llm_provider: LLMProvider | None = None,
        *,
        prompt_template: PromptTemplate | None = None,
        generation_timeout: float = 120.0,
    ) -> None:
        """Initialize the summarizer.

        Args:
            llm_provider: Language model used for summaries. When it is None or not
                available, every summary comes from FallbackSummarizer.
            prompt_template: Renders the summary prompts
            generation_timeout: Seconds allowed for a single generate call
        """
        self.llm_provider = llm_provider
        self.prompt_template = prompt_template or PromptTemplate()
        self.generation_timeout = generation_timeout
        self.fallback = FallbackSummarizer()

    @property
    def uses_llm(self) -> bool:
        return self.llm_provider is not None and self.llm_provider.available

    async def summarize(self, note: Note, options: SummaryOptions | None = None) -> NoteSummary:
        """Summarize a note.

        A failing language model is not an error: the summary degrades to the
        rule-based one and a warning is logged.
        """
        options = options or SummaryOptions()

        summary: str | None = None
        key_points: list[str] | None = None
        if self.uses_llm:
            try:
                summary, key_points = await self._llm_summarize(note, options)
            except Exception as e:
                logger.warning(f"LLM summarization failed for note {note.id}, using fallback: {e}")

        if summary is None:
            summary = self.fallback.summarize(note, options)
            key_points = self.fallback.extract_key_points(note) or None

        summary = truncate(summary, options.max_length)
        word_count = len(summary.split())
        return NoteSummary(
            note_id=note.id,
            summary=summary,
            key_points=key_points,
            word_count=word_count,
            reading_time=math.ceil(word_count / WORDS_PER_MINUTE),
        )

    async def batch_summarize(
        self, notes: Sequence[Note], options: SummaryOptions | None = None
    ) -> dict[str, NoteSummary]:
        """Summarize several notes. Notes that fail are logged and left out."""
        summaries: dict[str, NoteSummary] = {}
        for note in notes:
            try:
                summaries[note.id] = await self.summarize(note, options)
            except Exception:
                logger.exception(f"Failed to summarize note {note.id}")
        return summaries

    async def summarize_collection(
        self, notes: Sequence[Note], title: str, options: SummaryOptions | None = None
    ) -> str:
        """Write one summary covering several related notes."""
        if not notes:
            return NO_NOTES_SUMMARY

        options = options or SummaryOptions(style="detailed")
        if self.uses_llm:
            assert self.llm_provider is not None
            prompt = self.prompt_template.collection_prompt(notes, title)
            try:
                response = await generate_with_timeout(
                    self.llm_provider, prompt, self.generation_timeout
                )
                return response.text
            except Exception as e:
                logger.warning(f"LLM collection summary failed for '{title}', using fallback: {e}")

        summaries = await self.batch_summarize(notes, options)
        return "\n\n".join(s.summary for s in summaries.values())

    async def _llm_summarize(
        self, note: Note, options: SummaryOptions
    ) -> tuple[str, list[str] | None]:
        assert self.llm_provider is not None
        prompt = self.prompt_template.summary_prompt(
            note,
            options.style,
            max_length=options.max_length,
            include_metadata=options.include_metadata,
            language=options.language,
        )
        response = await generate_with_timeout(self.llm_provider, prompt, self.generation_timeout)

        if options.style in ("bullet-points", "key-insights"):
            return response.text, parse_key_points(response.text)
        return response.text, None
