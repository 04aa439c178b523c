from typing import Any, AsyncIterator

from notemind.errors import GenerationError
from notemind.llms.schemas import LLMResponse


class NullProvider:
    """Provider used when no language model is configured.

    Features that can work without a model (summaries, tags) check `available`
    and take their rule-based path instead of calling it.
    """

    name = "none"
    model = "none"

    @property
    def available(self) -> bool:
        return False

    async def initialize(self) -> None:
        return None

    async def generate(self, prompt: str) -> LLMResponse:  # noqa: ARG002
        raise GenerationError("No language model provider is configured")

    async def stream(self, prompt: str) -> AsyncIterator[str]:  # noqa: ARG002
        raise GenerationError("No language model provider is configured")
        yield  # pragma: no cover

    async def aclose(self) -> None:
        return None

    def get_stats(self) -> dict[str, Any]:
        return {"provider": self.name, "configured": False}
