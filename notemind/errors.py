"""Error taxonomy for the RAG core."""


class NotemindError(Exception):
    """Base class for all errors raised by notemind."""


class InitializationError(NotemindError):
    """A model, store or provider failed to load (or timed out while loading)."""


class FeatureDisabledError(NotemindError):
    """A config-gated feature was called while disabled."""


class EmbeddingError(NotemindError):
    """Text could not be turned into a vector."""


class RetrievalError(NotemindError):
    """The vector store is unavailable."""


class GenerationError(NotemindError):
    """The language model call failed or timed out."""
