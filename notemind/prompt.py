from dataclasses import dataclass
from typing import Callable, Sequence

from notemind.domain.note import Note, ScoredResult
from notemind.domain.rag import SummaryStyle


@dataclass(frozen=True)
class QuestionPrompt:
    """System instructions plus a renderer for the user turn of a Q&A prompt."""

    system: str
    user: Callable[[str, str, str | None], str]  # (question, context, relevance listing)


DEFAULT_TEMPLATE = QuestionPrompt(
    system="""You are a helpful AI assistant with access to a personal knowledge base.
Your role is to answer questions based on the provided context from the user's notes.
Always be accurate and cite the specific notes when providing information.
If the context doesn't contain relevant information, say so clearly.""",
    user=lambda question, context, relevance: f"""Answer the question based on the context from your notes below.

Relevant notes:
{context}
{relevance or ""}
Question: {question}

Answer: """,
)

DETAILED_TEMPLATE = QuestionPrompt(
    system="""You are an advanced knowledge management assistant with access to a personal note-taking system.
Your responsibilities:
1. Provide accurate answers based solely on the provided context
2. Cite specific notes and relevant sections
3. Highlight connections between different notes when relevant
4. Acknowledge when information is incomplete or missing""",
    user=lambda question, context, relevance: f"""Based on the following context from my notes, please answer my question.

CONTEXT:
{context}
{relevance or ""}
QUESTION: {question}

Please provide a detailed answer that:
1. Directly addresses my question
2. Cites specific notes when referencing information
3. Points out any connections between different notes
4. Mentions if any important information seems to be missing""",
)

ANALYTICAL_TEMPLATE = QuestionPrompt(
    system="""You are an analytical AI assistant specialized in extracting insights from personal notes.
Focus on patterns, themes, and connections across different notes.""",
    user=lambda question, context, relevance: f"""ANALYTICAL CONTEXT:
{context}
{relevance or ""}
QUERY FOR ANALYSIS: {question}

Please provide an analytical response that includes:
- Key findings from the notes
- Patterns or themes identified
- Any gaps or areas needing more information""",
)

TAGGING_SYSTEM = """You are a tagging assistant. Analyze the note content and suggest relevant tags.
Consider the existing tags in the system for consistency.
Return only a comma-separated list of tags, nothing else."""

SUMMARY_INSTRUCTIONS: dict[str, tuple[str, str]] = {
    "brief": (
        "You are a summarization assistant. Create brief, one-paragraph summaries.",
        "Summarize this note in one concise paragraph:",
    ),
    "detailed": (
        "You are a summarization assistant. Create comprehensive summaries with key points.",
        "Create a detailed summary with key points. Include the main topics, key insights "
        "and action items (if any):",
    ),
    "bullet-points": (
        "You are a summarization assistant. Summarize notes as bullet-point lists.",
        'Summarize this note as a bullet-point list of the main points. Format each point starting with "- ":',
    ),
    "key-insights": (
        "You are a learning assistant. Extract insights and learnings from notes.",
        'Extract the key insights and learnings from this note. Format as bullet points starting with "- " '
        "and focus on actionable insights:",
    ),
}


def get_context(results: Sequence[ScoredResult]) -> str:
    context = ""
    for result in results:
        tags = ", ".join(result.metadata.get("tags") or [])
        context += f"Note: {result.title}\nTags: {tags}\n---\n{result.text}\n---\n\n"
    return context


def get_relevance_listing(results: Sequence[ScoredResult]) -> str:
    lines = [f"- {r.title} (relevance: {r.score * 100:.1f}%)" for r in results]
    return "\nMETADATA:\n" + "\n".join(lines) + "\n"


class PromptTemplate:
    """Renders the exact text sent to a language model for each task."""

    def __init__(self) -> None:
        self.templates: dict[str, QuestionPrompt] = {
            "default": DEFAULT_TEMPLATE,
            "detailed": DETAILED_TEMPLATE,
            "analytical": ANALYTICAL_TEMPLATE,
        }

    def add_template(self, name: str, template: QuestionPrompt) -> None:
        self.templates[name] = template

    def get_available_templates(self) -> list[str]:
        return list(self.templates)

    def rag_prompt(
        self,
        *,
        question: str,
        results: Sequence[ScoredResult],
        include_metadata: bool = False,
        template: str = "default",
    ) -> str:
        """Render a question-answering prompt from retrieved chunks.

        Unknown template names fall back to the default template.
        """
        selected = self.templates.get(template, self.templates["default"])
        relevance = get_relevance_listing(results) if include_metadata else None
        return self._format(selected.system, selected.user(question, get_context(results), relevance))

    def tagging_prompt(self, note_content: str, existing_tags: Sequence[str]) -> str:
        user = f"""Note content:
{note_content}

Existing tags in the system: {", ".join(existing_tags)}

Suggest 3-5 relevant tags for this note:"""
        return self._format(TAGGING_SYSTEM, user)

    def summary_prompt(
        self,
        note: Note,
        style: SummaryStyle = "brief",
        *,
        max_length: int | None = None,
        include_metadata: bool = False,
        language: str | None = None,
    ) -> str:
        system, instruction = SUMMARY_INSTRUCTIONS.get(style, SUMMARY_INSTRUCTIONS["brief"])
        parts = [instruction, "", note.full_text]
        if include_metadata:
            parts += ["", f"Tags: {', '.join(note.tags)}", f"Notebook: {note.notebook or '-'}"]
        if max_length:
            parts += ["", f"Keep the summary under {max_length} characters."]
        if language:
            parts += ["", f"Write the summary in {language}."]
        return self._format(system, "\n".join(parts))

    def collection_prompt(self, notes: Sequence[Note], title: str) -> str:
        combined = "\n\n---\n\n".join(f"## {note.title}\n{note.content}" for note in notes)
        user = (
            f'Create a comprehensive summary of these {len(notes)} related notes about "{title}":'
            f"\n\n{combined}\n\n"
            "Provide a cohesive summary that synthesizes the information across all notes."
        )
        return self._format(SUMMARY_INSTRUCTIONS["detailed"][0], user)

    @staticmethod
    def _format(system: str, user: str) -> str:
        return f"System: {system}\n\nUser: {user}\n\nAssistant:"
