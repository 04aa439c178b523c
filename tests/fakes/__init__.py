from tests.fakes.fake_embedder import FAIL_MARKER, CountingEmbedderFactory, FakeEmbedder
from tests.fakes.fake_llm import FakeLLMProvider

__all__ = ["FAIL_MARKER", "CountingEmbedderFactory", "FakeEmbedder", "FakeLLMProvider"]
