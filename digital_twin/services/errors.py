"""Error taxonomy shared by the retrieval pipeline and its providers."""


class TwinError(Exception):
    """Base class for digital twin failures."""


class DimensionMismatch(TwinError, ValueError):
    """Two embedding vectors of different lengths were compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vectors must have the same length (got {left} and {right})")
        self.left = left
        self.right = right


class ProviderError(TwinError):
    """An upstream embedding, generation, or calendar call failed."""


class DataUnavailable(TwinError):
    """No static facts or persisted embeddings could be read."""
