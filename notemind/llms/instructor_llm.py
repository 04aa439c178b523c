from typing import Any, AsyncIterator

from anthropic import AsyncAnthropic
from instructor import AsyncInstructor
from loguru import logger

from notemind.llms.schemas import Completion, LLMMessage, LLMResponse


class InstructorLLMProvider:
    """Remote model reached through an instructor-patched async client."""

    name = "anthropic"

    def __init__(
        self,
        instructor: AsyncInstructor,
        *,
        model: str = "claude-3-5-sonnet-20241022",
        max_tokens: int = 1024,
        temperature: float = 0.7,
        system_message: str | None = None,
        client: AsyncAnthropic | None = None,
    ) -> None:
        self.instructor = instructor
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_message = system_message
        self.client = client
        self._calls = 0
        self._tokens_used = 0

    @property
    def available(self) -> bool:
        return True

    async def initialize(self) -> None:
        logger.info(f"Instructor provider ready for model {self.model}")

    async def generate(self, prompt: str) -> LLMResponse:
        response, completion = await self.instructor.chat.completions.create_with_completion(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[m.model_dump() for m in self._messages(prompt)],  # type: ignore
            response_model=Completion,
        )
        usage = getattr(completion, "usage", None)
        tokens_used = (
            getattr(usage, "input_tokens", 0) + getattr(usage, "output_tokens", 0) if usage else 0
        )
        self._calls += 1
        self._tokens_used += tokens_used
        return LLMResponse(
            text=response.text, tokens_used=tokens_used, model=self.model, provider=self.name
        )

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Stream a completion, yielding only new content chunks."""
        partials = self.instructor.chat.completions.create_partial(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[m.model_dump() for m in self._messages(prompt)],  # type: ignore
            response_model=Completion,
            stream=True,
        )
        self._calls += 1
        sent = ""
        try:
            async for partial in partials:
                text = partial.text or ""
                if len(text) > len(sent):
                    yield text[len(sent) :]
                    sent = text
        finally:
            await partials.aclose()

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.close()

    def get_stats(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "model": self.model,
            "configured": True,
            "calls": self._calls,
            "tokens_used": self._tokens_used,
        }

    def _messages(self, prompt: str) -> list[LLMMessage]:
        messages = []
        if self.system_message:
            messages.append(LLMMessage(role="system", content=self.system_message))
        messages.append(LLMMessage(role="user", content=prompt))
        return messages
