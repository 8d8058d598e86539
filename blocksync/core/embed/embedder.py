import logging
from typing import List, Optional
import numpy as np
from sentence_transformers import SentenceTransformer
from blocksync.config.settings import EmbeddingConfig, settings
from blocksync.core.cancellation import CancellationToken
from blocksync.core.embed.base import EmbeddingProvider
from blocksync.core.errors import EmbeddingProviderError

logger = logging.getLogger(__name__)

class Embedder(EmbeddingProvider):
    """
    Local sentence-transformers provider.
    - Model is loaded once per process and shared between instances.
    - Vectors are L2-normalised when configured.
    """

    _models = {}

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or settings.embedding
        self._load_model()

    def _load_model(self):
        """Loads the sentence-transformer model onto CPU."""
        name = self.config.model_name
        if name not in Embedder._models:
            logger.info(f"Loading embedding model: {name}...")
            Embedder._models[name] = SentenceTransformer(name, device="cpu")
        self._model = Embedder._models[name]

    @property
    def model(self) -> str:
        return self.config.model_name

    def generate(self, text: str, cancellation: Optional[CancellationToken] = None) -> List[float]:
        return self.generate_batch([text], cancellation)[0]

    def generate_batch(self, texts: List[str], cancellation: Optional[CancellationToken] = None) -> List[List[float]]:
        if not texts:
            return []
        if cancellation is not None:
            cancellation.raise_if_cancelled("embedding batch")

        embeddings = self._model.encode(
            texts,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            normalize_embeddings=self.config.normalise
        )
        embeddings = np.asarray(embeddings, dtype=np.float32)

        if embeddings.ndim != 2 or embeddings.shape[0] != len(texts):
            raise EmbeddingProviderError(f"Unexpected embedding shape {embeddings.shape} for {len(texts)} texts")
        if not np.all(np.isfinite(embeddings)):
            raise EmbeddingProviderError("Embedding model returned non-finite values")

        return embeddings.tolist()
