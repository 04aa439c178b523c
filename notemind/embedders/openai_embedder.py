import numpy as np
from openai import OpenAI

from notemind.embedders.base import InputType


class OpenAIEmbedder:
    def __init__(self, api_key: str, model_name: str = "text-embedding-3-small"):
        self.openai_client = OpenAI(api_key=api_key)
        self.model_name = model_name

    def embed(self, text: str, *, input_type: InputType = "document") -> np.ndarray:  # noqa: ARG002
        embedding = (
            self.openai_client.embeddings.create(input=text, model=self.model_name)
            .data[0]
            .embedding
        )
        return np.array(embedding, dtype=np.float32)
