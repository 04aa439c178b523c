import numpy as np
import voyageai

from notemind.embedders.base import InputType


class VoyageEmbedder:
    def __init__(self, api_key: str, model_name: str = "voyage-3"):
        self.client = voyageai.Client(api_key=api_key)
        self.model_name = model_name

    def embed(self, text: str, *, input_type: InputType = "document") -> np.ndarray:
        result = self.client.embed(texts=[text], model=self.model_name, input_type=input_type)
        embedding = result.embeddings[0]
        return np.array(embedding, dtype=np.float32)
