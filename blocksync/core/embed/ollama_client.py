import logging
import random
import time
from typing import Any, Dict, List, Optional
import httpx
import numpy as np
from blocksync.config.settings import OllamaConfig, settings
from blocksync.core.cancellation import CancellationToken
from blocksync.core.embed.base import EmbeddingProvider
from blocksync.core.errors import EmbeddingProviderError

logger = logging.getLogger(__name__)

class OllamaEmbeddingClient(EmbeddingProvider):
    """
    Embedding provider backed by an Ollama server (POST /api/embeddings).
    Retries 429s and transport errors with jittered exponential backoff.
    """

    def __init__(self, config: Optional[OllamaConfig] = None, transport: Optional[httpx.BaseTransport] = None):
        self.config = config or settings.ollama
        self.url = f"{self.config.base_url.rstrip('/')}/api/embeddings"
        self._transport = transport

    @property
    def model(self) -> str:
        return self.config.model

    def generate(self, text: str, cancellation: Optional[CancellationToken] = None) -> List[float]:
        payload = {"model": self.config.model, "prompt": text}
        data = self._post(payload, cancellation)
        return self._parse_vector(data)

    def _post(self, payload: Dict[str, Any], cancellation: Optional[CancellationToken]) -> Dict[str, Any]:
        last_error: Optional[Exception] = None
        for attempt in range(self.config.max_retries):
            if cancellation is not None:
                cancellation.raise_if_cancelled("ollama embedding request")
            try:
                with httpx.Client(timeout=self.config.timeout, transport=self._transport) as client:
                    response = client.post(self.url, json=payload)

                    if response.status_code == 429:
                        last_error = EmbeddingProviderError("Rate limited (429)", retryable=True)
                        self._backoff(attempt, "Rate limited (429)")
                        continue

                    if 400 <= response.status_code < 500:
                        # Client errors will not improve on retry
                        raise EmbeddingProviderError(
                            f"Ollama rejected embedding request: {response.status_code} {response.text[:200]}"
                        )

                    response.raise_for_status()
                    return response.json()
            except EmbeddingProviderError:
                raise
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                self._backoff(attempt, f"Request failed: {e}")

        raise EmbeddingProviderError(
            f"Ollama embedding failed after {self.config.max_retries} attempts: {last_error}", retryable=True
        )

    def _backoff(self, attempt: int, reason: str) -> None:
        if attempt == self.config.max_retries - 1:
            return
        delay = self.config.base_delay * (2 ** attempt) + random.uniform(0, self.config.base_delay)
        logger.warning(f"{reason}. Retrying in {delay:.2f}s... (Attempt {attempt + 1}/{self.config.max_retries})")
        time.sleep(delay)

    def _parse_vector(self, data: Dict[str, Any]) -> List[float]:
        vector = data.get("embedding") if isinstance(data, dict) else None
        if vector is None:
            raise EmbeddingProviderError("Ollama response has no 'embedding' field")

        try:
            array = np.asarray(vector, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise EmbeddingProviderError(f"Ollama returned a non-numeric embedding: {e}") from e
        if array.ndim != 1 or array.size == 0:
            raise EmbeddingProviderError(f"Ollama returned an invalid embedding of shape {array.shape}")
        if not np.all(np.isfinite(array)):
            raise EmbeddingProviderError("Ollama returned non-finite embedding values")
        return array.tolist()
