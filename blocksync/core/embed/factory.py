"""Factory for the configured embedding provider."""

from __future__ import annotations

from typing import Optional

from blocksync.config.settings import AppSettings, settings
from blocksync.core.embed.base import EmbeddingProvider
from blocksync.core.errors import ConfigurationError


def create_embedding_provider(app_settings: Optional[AppSettings] = None) -> EmbeddingProvider:
    """Build the provider named by ``embedding.provider``.

    Provider modules are imported lazily so an Ollama deployment never loads
    torch and a local deployment never needs a reachable server.
    """
    cfg = app_settings or settings
    provider = cfg.embedding.provider

    if provider == "ollama":
        from blocksync.core.embed.ollama_client import OllamaEmbeddingClient

        return OllamaEmbeddingClient(cfg.ollama)
    if provider == "sentence_transformers":
        from blocksync.core.embed.embedder import Embedder

        return Embedder(cfg.embedding)
    raise ConfigurationError(f"Unknown embedding provider: {provider!r}")
