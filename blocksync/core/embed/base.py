from abc import ABC, abstractmethod
from typing import List, Optional
from blocksync.core.cancellation import CancellationToken

class EmbeddingProvider(ABC):
    """Black-box text -> vector function. Any exception is fatal to the current pass."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Identifier recorded on every BlockEmbedding this provider produces."""
        pass

    @abstractmethod
    def generate(self, text: str, cancellation: Optional[CancellationToken] = None) -> List[float]:
        pass

    def generate_batch(self, texts: List[str], cancellation: Optional[CancellationToken] = None) -> List[List[float]]:
        vectors = []
        for text in texts:
            if cancellation is not None:
                cancellation.raise_if_cancelled("embedding batch")
            vectors.append(self.generate(text, cancellation))
        return vectors
