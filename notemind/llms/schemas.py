from typing import Literal

from pydantic import BaseModel, Field


class LLMMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class Completion(BaseModel):
    """Structured completion returned by the model"""

    text: str = Field(
        ...,
        description=(
            "The complete response to the user's request, in the format the request asks for. "
            "Do not add any preamble."
        ),
    )


class LLMResponse(BaseModel):
    text: str
    tokens_used: int = 0
    model: str
    provider: str
