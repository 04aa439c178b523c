import json
from typing import Any, AsyncIterator

import httpx
from loguru import logger

from notemind.errors import InitializationError
from notemind.llms.schemas import LLMResponse


class OllamaProvider:
    """Local model served by Ollama."""

    name = "ollama"

    def __init__(
        self,
        *,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        temperature: float = 0.7,
        max_tokens: int = 1024,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._calls = 0
        self._tokens_used = 0

    @property
    def available(self) -> bool:
        return True

    async def initialize(self) -> None:
        try:
            response = await self.client.get(f"{self.base_url}/api/tags")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach Ollama at {self.base_url}: {e}")
            raise InitializationError("Ollama is not running. Please start Ollama first.") from e
        logger.info(f"Ollama provider initialized with model {self.model}")

    async def generate(self, prompt: str) -> LLMResponse:
        response = await self.client.post(
            f"{self.base_url}/api/generate", json=self._payload(prompt, stream=False)
        )
        response.raise_for_status()
        data = response.json()

        tokens_used = data.get("eval_count", 0)
        self._calls += 1
        self._tokens_used += tokens_used
        return LLMResponse(
            text=data.get("response", ""),
            tokens_used=tokens_used,
            model=self.model,
            provider=self.name,
        )

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        self._calls += 1
        async with self.client.stream(
            "POST", f"{self.base_url}/api/generate", json=self._payload(prompt, stream=True)
        ) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed Ollama stream line: {line[:80]}")
                    continue
                if data.get("response"):
                    yield data["response"]
                if data.get("done"):
                    self._tokens_used += data.get("eval_count", 0)
                    break

    async def aclose(self) -> None:
        await self.client.aclose()

    def get_stats(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "model": self.model,
            "base_url": self.base_url,
            "configured": True,
            "calls": self._calls,
            "tokens_used": self._tokens_used,
        }

    def _payload(self, prompt: str, *, stream: bool) -> dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "stream": stream,
            "options": {"temperature": self.temperature, "num_predict": self.max_tokens},
        }
