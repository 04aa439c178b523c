import numpy as np
from loguru import logger
from sentence_transformers import SentenceTransformer

from notemind.embedders.base import InputType


class SentenceTransformerEmbedder:
    """Local embedder. The default model mean-pools its token representations."""

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2"):
        logger.info(f"Loading embedding model: {model_name}")
        self.model = SentenceTransformer(model_name)
        self.model_name = model_name

    def embed(self, text: str, *, input_type: InputType = "document") -> np.ndarray:  # noqa: ARG002
        embedding = self.model.encode(text, convert_to_numpy=True, normalize_embeddings=True)
        return np.asarray(embedding, dtype=np.float32)
