from notemind.domain.note import Note, ScoredResult
from notemind.prompt import PromptTemplate, QuestionPrompt, get_context

RESULTS = [
    ScoredResult(
        note_id="rust",
        chunk_id="rust:abc:0",
        score=0.92,
        text="Every value has a single owner.",
        metadata={"title": "Rust ownership", "tags": ["rust", "memory"]},
    ),
    ScoredResult(
        note_id="misc",
        chunk_id="misc:def:0",
        score=0.75,
        text="Borrowing lends access.",
        metadata={"title": "Misc"},
    ),
]


def test_get_context() -> None:
    context = get_context(RESULTS)

    assert "Note: Rust ownership\nTags: rust, memory\n---\nEvery value has a single owner.\n---" in context
    assert "Note: Misc\nTags: \n---\nBorrowing lends access.\n---" in context


def test_rag_prompt_default() -> None:
    prompt = PromptTemplate().rag_prompt(question="Who owns a value?", results=RESULTS)

    assert prompt.startswith("System: You are a helpful AI assistant")
    assert "Question: Who owns a value?" in prompt
    assert "Every value has a single owner." in prompt
    assert "relevance:" not in prompt
    assert prompt.endswith("Assistant:")


def test_rag_prompt_with_metadata_and_template() -> None:
    prompt = PromptTemplate().rag_prompt(
        question="Who owns a value?", results=RESULTS, include_metadata=True, template="analytical"
    )

    assert "QUERY FOR ANALYSIS: Who owns a value?" in prompt
    assert "- Rust ownership (relevance: 92.0%)" in prompt
    assert "- Misc (relevance: 75.0%)" in prompt


def test_unknown_template_falls_back_to_default() -> None:
    template = PromptTemplate()

    assert template.rag_prompt(question="q", results=RESULTS, template="nope") == (
        template.rag_prompt(question="q", results=RESULTS)
    )


def test_add_template() -> None:
    template = PromptTemplate()
    template.add_template(
        "terse", QuestionPrompt(system="Be terse.", user=lambda q, c, r: f"{c}\nQ: {q}")
    )

    prompt = template.rag_prompt(question="Who?", results=RESULTS, template="terse")

    assert template.get_available_templates() == ["default", "detailed", "analytical", "terse"]
    assert prompt.startswith("System: Be terse.")
    assert "Q: Who?" in prompt


def test_tagging_prompt() -> None:
    prompt = PromptTemplate().tagging_prompt("Rust\n\nOwnership notes", ["rust", "memory"])

    assert "comma-separated" in prompt
    assert "Ownership notes" in prompt
    assert "Existing tags in the system: rust, memory" in prompt


def test_summary_prompt_styles() -> None:
    note = Note(id="n", title="Retro", content="It went well.", tags=["work"])
    template = PromptTemplate()

    brief = template.summary_prompt(note, "brief")
    bullets = template.summary_prompt(note, "bullet-points", max_length=100)

    assert "one concise paragraph" in brief
    assert "Retro\n\nIt went well." in brief
    assert 'starting with "- "' in bullets
    assert "under 100 characters" in bullets
    assert "Tags: work" in template.summary_prompt(note, "detailed", include_metadata=True)


def test_collection_prompt() -> None:
    notes = [Note(id="a", title="A", content="alpha"), Note(id="b", title="B", content="beta")]

    prompt = PromptTemplate().collection_prompt(notes, "Letters")

    assert 'these 2 related notes about "Letters"' in prompt
    assert "## A\nalpha\n\n---\n\n## B\nbeta" in prompt
