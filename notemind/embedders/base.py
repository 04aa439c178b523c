from typing import Literal, Protocol

import numpy as np

InputType = Literal["document", "query"]


class Embedder(Protocol):
    model_name: str

    def embed(self, text: str, *, input_type: InputType = "document") -> np.ndarray: ...
