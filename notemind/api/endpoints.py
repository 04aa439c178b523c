from typing import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import BaseModel

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
from notemind.errors import (
    EmbeddingError,
    FeatureDisabledError,
    GenerationError,
    InitializationError,
    NotemindError,
    RetrievalError,
)
from notemind.system import RAGSystem

ERROR_STATUS: dict[type[NotemindError], int] = {
    FeatureDisabledError: 403,
    InitializationError: 503,
    RetrievalError: 503,
    GenerationError: 502,
    EmbeddingError: 500,
}


class IndexRequest(BaseModel):
    notes: list[Note]


class TagSuggestionRequest(BaseModel):
    note: Note
    max_tags: int = 5
    min_confidence: float = 0.7
    use_llm: bool = True


class TagsListRequest(BaseModel):
    tags: list[str]


class SummaryRequest(BaseModel):
    note: Note
    options: SummaryOptions = SummaryOptions()


class CollectionSummaryRequest(BaseModel):
    notes: list[Note]
    title: str
    options: SummaryOptions | None = None


class CollectionSummaryResponse(BaseModel):
    title: str
    summary: str


def to_http_exception(error: NotemindError) -> HTTPException:
    status_code = next(
        (code for kind, code in ERROR_STATUS.items() if isinstance(error, kind)), 500
    )
    return HTTPException(status_code=status_code, detail=str(error))


def format_sse(content: str) -> str:
    """Format one text fragment as an SSE event, prefixing every line with 'data: '."""
    lines = content.split("\n")
    data = "\n".join(f"data: {line}" for line in lines)
    return f"{data}\n\n"


async def stream_response(fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    """Format answer fragments as SSE events.

    Ends with a 'done' event, or an 'error' event if generation fails midway. The
    fragment stream is closed when the client goes away.
    """
    try:
        async for fragment in fragments:
            yield format_sse(fragment)

        yield "event: done\ndata:\n\n"
    except NotemindError as e:
        logger.error(f"Error in stream: {str(e)}")
        yield f"event: error\ndata: {str(e)}\n\n"
    finally:
        await fragments.aclose()  # type: ignore[attr-defined]


def _error_stream(message: str) -> StreamingResponse:
    async def events() -> AsyncIterator[str]:
        yield f"event: error\ndata: {message}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")


def _create_chat_endpoint(rag_system: RAGSystem):
    """Create the streaming chat endpoint handler."""

    async def chat(message: str = "", template: str = "default") -> StreamingResponse:
        if not message:
            return _error_stream("No message provided")

        try:
            fragments = await rag_system.stream_query(RAGQuery(query=message, template=template))
        except NotemindError as e:
            logger.error(f"Error in chat: {str(e)}")
            raise to_http_exception(e) from e

        return StreamingResponse(
            stream_response(fragments),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Content-Type": "text/event-stream",
            },
        )

    return chat


def get_endpoints_router(*, rag_system: RAGSystem) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health_check():
        return {"status": "healthy", "initialized": rag_system.is_initialized}

    @router.post("/api/index")
    async def index_notes(request: IndexRequest) -> IndexingResult:
        try:
            return await rag_system.process_notes(request.notes)
        except NotemindError as e:
            raise to_http_exception(e) from e

    @router.put("/api/index")
    async def update_notes(request: IndexRequest) -> IndexingResult:
        try:
            return await rag_system.update_notes(request.notes)
        except NotemindError as e:
            raise to_http_exception(e) from e

    @router.delete("/api/index/{note_id}")
    async def delete_note(note_id: str):
        try:
            removed = await rag_system.delete_notes([note_id])
        except NotemindError as e:
            raise to_http_exception(e) from e
        return {"note_id": note_id, "removed": removed}

    @router.post("/api/query")
    async def query(request: RAGQuery) -> RAGResponse:
        try:
            return await rag_system.query(request)
        except NotemindError as e:
            raise to_http_exception(e) from e

    router.get("/chat")(_create_chat_endpoint(rag_system))

    @router.get("/api/notes/{note_id}/similar")
    async def similar_notes(note_id: str, limit: int = 5) -> list[SimilarNote]:
        try:
            return await rag_system.get_similar_notes(note_id, limit)
        except NotemindError as e:
            raise to_http_exception(e) from e

    @router.post("/api/tags/suggest")
    async def suggest_tags(request: TagSuggestionRequest) -> list[TagSuggestion]:
        try:
            return await rag_system.suggest_tags(
                request.note,
                max_tags=request.max_tags,
                min_confidence=request.min_confidence,
                use_llm=request.use_llm,
            )
        except NotemindError as e:
            raise to_http_exception(e) from e

    @router.put("/api/tags")
    async def update_tags_list(request: TagsListRequest):
        try:
            rag_system.update_tags_list(request.tags)
        except NotemindError as e:
            raise to_http_exception(e) from e
        return {"tags": len(request.tags)}

    @router.post("/api/summaries")
    async def summarize_note(request: SummaryRequest) -> NoteSummary:
        try:
            return await rag_system.summarize_note(request.note, request.options)
        except NotemindError as e:
            raise to_http_exception(e) from e

    @router.post("/api/summaries/collection")
    async def summarize_collection(request: CollectionSummaryRequest) -> CollectionSummaryResponse:
        try:
            summary = await rag_system.summarize_collection(
                request.notes, request.title, request.options
            )
        except NotemindError as e:
            raise to_http_exception(e) from e
        return CollectionSummaryResponse(title=request.title, summary=summary)

    @router.get("/api/stats")
    async def get_stats():
        try:
            return await rag_system.get_stats()
        except NotemindError as e:
            raise to_http_exception(e) from e

    @router.delete("/api/data")
    async def clear_data():
        try:
            await rag_system.clear_data()
        except NotemindError as e:
            raise to_http_exception(e) from e
        return {"status": "cleared"}

    return router
