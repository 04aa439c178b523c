"""Text chunking service for markdown content."""

import math
import re

import tiktoken

from notemind.domain.note import Note, TextChunk

DEFAULT_OVERLAP_RATIO = 0.15


class TextChunker:
    """Service for splitting markdown text into chunks while preserving document structure."""

    def __init__(
        self, max_tokens: int = 256, overlap: int | None = None, model: str = "gpt-3.5-turbo"
    ):
        """Initialize the text chunker.

        Args:
            max_tokens: Maximum tokens per chunk
            overlap: Number of tokens shared by consecutive windows of an oversized
                fragment. Defaults to 15% of max_tokens.
            model: Model name for tokenizer
        """
        if overlap is None:
            overlap = round(max_tokens * DEFAULT_OVERLAP_RATIO)
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if not 0 <= overlap < max_tokens:
            raise ValueError("overlap must be in [0, max_tokens)")

        self.max_tokens = max_tokens
        self.overlap = overlap
        self.enc = tiktoken.encoding_for_model(model)

    def chunk_note(self, note: Note) -> list[TextChunk]:
        """Split a note (title included) into chunks carrying the note's metadata."""
        digest = note.content_digest[:12]
        metadata = {
            "title": note.title,
            "tags": list(note.tags),
            "notebook": note.notebook,
            "content_digest": note.content_digest,
        }
        return [
            TextChunk(
                id=f"{note.id}:{digest}:{order}",
                note_id=note.id,
                order=order,
                text=text,
                metadata=metadata,
            )
            for order, text in enumerate(self.chunk_text(note.full_text))
        ]

    def chunk_text(self, text: str) -> list[str]:
        """Split Markdown text into chunks, trying to maintain document structure.

        Sections are cut at headers, then at paragraphs. Short fragments are packed
        together up to max_tokens; a fragment that alone exceeds max_tokens is cut
        into overlapping token windows.

        Args:
            text: Input Markdown text

        Returns:
            List of text chunks
        """
        chunks = []
        current_chunk = ""
        current_tokens = 0

        for section in self._split_on_headers(text):
            for paragraph in self._split_on_paragraphs(section):
                para_tokens = self._count(paragraph)

                if para_tokens > self.max_tokens:
                    if current_chunk:
                        chunks.append(current_chunk)
                        current_chunk, current_tokens = "", 0
                    chunks.extend(self._split_on_windows(paragraph))
                    continue

                current_chunk, current_tokens, new_chunks = self._process_text_chunk(
                    text=paragraph,
                    current_chunk=current_chunk,
                    current_tokens=current_tokens,
                )
                chunks.extend(new_chunks)

        if current_chunk:
            chunks.append(current_chunk.strip())

        return [chunk for chunk in chunks if chunk.strip()]

    def estimate_chunk_count(self, note: Note) -> int:
        """Rough number of chunks a note will produce, assuming 75% packing."""
        tokens = self._count(note.full_text.strip())
        return max(1, math.ceil(tokens / (self.max_tokens * 0.75))) if tokens else 0

    def _count(self, text: str) -> int:
        return len(self.enc.encode(text))

    @staticmethod
    def _split_on_headers(text: str) -> list[str]:
        """Split Markdown text into sections based on headers."""
        header_pattern = r"^#{1,6}\s+.+$"
        sections = re.split(f"(?={header_pattern})", text, flags=re.MULTILINE)
        return [s.strip() for s in sections if s.strip()]

    @staticmethod
    def _split_on_paragraphs(text: str) -> list[str]:
        """Split text into paragraphs while keeping fenced code blocks and lists whole."""
        parts = []
        current_part: list[str] = []
        in_code_block = False
        lines = text.split("\n")

        for i, line in enumerate(lines):
            if line.lstrip().startswith("```"):
                in_code_block = not in_code_block

            is_empty = not line.strip()
            next_is_list = i < len(lines) - 1 and bool(
                re.match(r"^\s*([-*+]|\d+\.)\s", lines[i + 1])
            )
            prev_is_list = bool(current_part) and bool(
                re.match(r"^\s*([-*+]|\d+\.)\s", current_part[-1])
            )

            current_part.append(line)

            # Split on an empty line unless it sits inside code or between list items
            if is_empty and not in_code_block and not (next_is_list and prev_is_list):
                if current_part:
                    parts.append("\n".join(current_part))
                    current_part = []

        if current_part:
            parts.append("\n".join(current_part))

        return [p.strip() for p in parts if p.strip()]

    def _split_on_windows(self, text: str) -> list[str]:
        """Cut an oversized fragment into fixed-size token windows that overlap."""
        tokens = self.enc.encode(text)
        step = self.max_tokens - self.overlap
        windows = []
        for start in range(0, len(tokens), step):
            window = self.enc.decode(tokens[start : start + self.max_tokens]).strip()
            if window:
                windows.append(window)
            if start + self.max_tokens >= len(tokens):
                break
        return windows

    def _process_text_chunk(
        self, *, text: str, current_chunk: str, current_tokens: int
    ) -> tuple[str, int, list[str]]:
        """Process a text chunk and return updated state."""
        text = text.strip()
        if not text:
            return current_chunk, current_tokens, []

        text_tokens = self._count(text)
        chunks = []

        if current_tokens + text_tokens > self.max_tokens:
            if current_chunk:
                chunks.append(current_chunk.strip())
            current_chunk = text
            current_tokens = text_tokens
        else:
            if current_chunk:
                current_chunk += "\n\n"
            current_chunk += text
            current_tokens += text_tokens

        return current_chunk, current_tokens, chunks
