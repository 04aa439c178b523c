import re
import threading
import time
from hashlib import md5

import numpy as np

from notemind.embedders.base import Embedder, InputType

FAIL_MARKER = "EMBEDDING_FAILURE"


class FakeEmbedder(Embedder):
    """Fake embedder producing deterministic bag-of-words vectors.

    Every lowercase word is hashed into one of `dimension` buckets, so texts sharing
    no words are (nearly) orthogonal and texts sharing words are similar. Text
    containing FAIL_MARKER raises, text without words yields a zero vector.
    """

    model_name = "fake-embedder"

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension
        self.calls: list[tuple[str, InputType]] = []

    def embed(self, text: str, *, input_type: InputType = "document") -> np.ndarray:
        self.calls.append((text, input_type))
        if FAIL_MARKER in text:
            raise RuntimeError("Embedding backend failed")

        vector = np.zeros(self.dimension, dtype=np.float32)
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            vector[int(md5(word.encode()).hexdigest(), 16) % self.dimension] += 1.0
        return vector


class CountingEmbedderFactory:
    """Embedder factory that records how often (and on which thread) it was called."""

    def __init__(self, embedder: Embedder | None = None, delay: float = 0.0) -> None:
        self.embedder = embedder or FakeEmbedder()
        self.delay = delay
        self.calls = 0
        self.thread_names: list[str] = []

    def __call__(self) -> Embedder:
        self.calls += 1
        self.thread_names.append(threading.current_thread().name)
        if self.delay:
            time.sleep(self.delay)
        return self.embedder
