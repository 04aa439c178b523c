import sys

from loguru import logger

from notemind.api import create_app
from notemind.config import settings
from notemind.factory import build_rag_system

logger.configure(handlers=[{"sink": sys.stderr, "level": settings.log_level}])

logger.info(
    f"Initializing notemind with {settings.embedding_provider} embeddings "
    f"and LLM provider '{settings.llm_provider}'"
)
rag_system = build_rag_system(settings)
app = create_app(rag_system=rag_system)
