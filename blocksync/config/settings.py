from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field
from typing import Literal, Optional
import logging
import yaml
import os

class ParserConfig(BaseModel):
    max_fence_lines: int = Field(10000, ge=1)     # runaway guard for ``` and \[ blocks
    code_hash_lines: int = Field(10, ge=0)        # code lines that feed the fingerprint
    iteration_factor: int = Field(2, ge=1)        # iteration cap = factor * line count

class SyncConfig(BaseModel):
    min_text_length_for_embedding: int = Field(1, ge=0)
    match_strategy: Literal["range", "hash_then_range"] = "range"
    embedding_workers: int = Field(1, ge=1)

class EmbeddingConfig(BaseModel):
    provider: Literal["sentence_transformers", "ollama"] = "sentence_transformers"
    model_name: str = "BAAI/bge-small-en-v1.5"
    batch_size: int = 32
    vector_dim: int = 384
    normalise: bool = True

class OllamaConfig(BaseModel):
    base_url: str = "http://localhost:11434"
    model: str = "nomic-embed-text"
    timeout: float = 60.0
    max_retries: int = Field(3, ge=1)
    base_delay: float = Field(2.0, ge=0)

class StorageConfig(BaseModel):
    blocks_path: str = "./data/blocks"
    documents_path: str = "./data/documents"

class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

class AppSettings(BaseSettings):
    parser: ParserConfig = ParserConfig()
    sync: SyncConfig = SyncConfig()
    embedding: EmbeddingConfig = EmbeddingConfig()
    ollama: OllamaConfig = OllamaConfig()
    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BLOCKSYNC_",
        env_nested_delimiter="__",
        extra="ignore"
    )

_SECTIONS = ("parser", "sync", "embedding", "ollama", "storage", "logging")

def load_settings(config_path: Optional[str] = None) -> AppSettings:
    """Loads settings from config.yaml; sections missing from the file fall back to env/defaults."""

    paths_to_try = [
        config_path,
        os.environ.get("BLOCKSYNC_CONFIG"),
        "config.yaml",
        "config/config.yaml",
        os.path.join(os.path.dirname(__file__), "config.yaml")
    ]

    yaml_data = {}
    for path in paths_to_try:
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
            break

    # Only pass the sections the file defines so env overrides still apply to the rest
    return AppSettings(**{name: yaml_data[name] for name in _SECTIONS if yaml_data.get(name)})

def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    config = config or settings.logging
    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=config.format
    )

# Global settings instance
settings = load_settings()
