from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notemind.api.endpoints import get_endpoints_router
from notemind.system import RAGSystem


def create_app(*, rag_system: RAGSystem) -> FastAPI:
    """Create FastAPI app."""

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await rag_system.destroy()

    app = FastAPI(lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router=get_endpoints_router(rag_system=rag_system))

    return app
