import asyncio
from typing import Any, AsyncIterator, Protocol

from loguru import logger

from notemind.errors import GenerationError
from notemind.llms.schemas import LLMResponse


class LLMProvider(Protocol):
    name: str
    model: str

    @property
    def available(self) -> bool:
        """False for the provider that stands in when no model is configured."""
        ...

    async def initialize(self) -> None:
        """Check the provider can be reached and prepare its client."""
        ...

    async def generate(self, prompt: str) -> LLMResponse:
        """Generate a full completion for a prompt."""
        ...

    def stream(self, prompt: str) -> AsyncIterator[str]:
        """Stream a completion, yielding only new text fragments.

        Closing the iterator aborts generation and releases the connection.
        """
        ...

    async def aclose(self) -> None:
        """Release client handles."""
        ...

    def get_stats(self) -> dict[str, Any]: ...


async def generate_with_timeout(provider: LLMProvider, prompt: str, timeout: float) -> LLMResponse:
    """Call provider.generate, turning timeouts and provider failures into GenerationError."""
    try:
        return await asyncio.wait_for(provider.generate(prompt), timeout=timeout)
    except GenerationError:
        raise
    except asyncio.TimeoutError as e:
        logger.error(f"{provider.name} generation timed out after {timeout}s")
        raise GenerationError(f"{provider.name} generation timed out after {timeout}s") from e
    except Exception as e:
        logger.error(f"{provider.name} generation failed: {e}")
        raise GenerationError(f"{provider.name} generation failed: {e}") from e
