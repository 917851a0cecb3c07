"""
Configuration utilities.
"""

import json
from pathlib import Path
from typing import Literal, Optional

import yaml

from pydantic import BaseModel, Field

from .base import BaseEmbedding, BaseTextSplitter, BaseTokenizer
from .chunking import DEFAULT_SEPARATORS, ChunkingConfig, NoTextSplitter, RecursiveTextSplitter
from .coordinator import RetrievalCoordinator
from .store import DocumentStore
from .tokenizers import CharacterTokenizer, TiktokenTokenizer
from .utils.logging import get_logger, set_log_level


class Config(BaseModel):
    """Base configuration class."""

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls(**(data or {}))

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from file (YAML or JSON)."""
        path = Path(path)

        if path.suffix in (".yaml", ".yml"):
            return cls.from_yaml(path)
        elif path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
            return cls(**data)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")


class RetrievalConfig(Config):
    """Configuration for chunking, embedding and the document store."""

    # Chunking settings
    chunking_strategy: Literal["automatic", "none"] = "automatic"
    maximum_fragment_size: Optional[int] = 500
    maximum_fragment_overlap: Optional[int] = None
    separators: list[str] = Field(default_factory=lambda: list(DEFAULT_SEPARATORS))
    tokenizer: Literal["character", "tiktoken"] = "character"
    tiktoken_encoding: str = "cl100k_base"

    # Coordinator settings
    query_timeout: Optional[float] = 2.0
    embed_timeout: Optional[float] = None
    max_concurrency: int = Field(default=4, ge=1)

    # Store settings
    store_path: Optional[str] = None

    log_level: str = "INFO"

    def build_tokenizer(self) -> BaseTokenizer:
        if self.tokenizer == "tiktoken":
            return TiktokenTokenizer(self.tiktoken_encoding)
        return CharacterTokenizer()

    def build_splitter(self) -> BaseTextSplitter:
        """Create the text splitter described by this configuration.

        Raises:
            InvalidConfigurationError: If the fragment budgets are inconsistent
        """
        if self.chunking_strategy == "none":
            return NoTextSplitter()

        chunking = ChunkingConfig(
            maximum_fragment_size=self.maximum_fragment_size,
            maximum_fragment_overlap=self.maximum_fragment_overlap,
            tokenizer=self.build_tokenizer(),
        )
        return RecursiveTextSplitter(chunking, self.separators)

    def build_store(self, load: bool = True) -> DocumentStore:
        """Create the document store, reading its persisted state if ``load`` is set."""
        store = DocumentStore(self.store_path)
        if load:
            store.load()
        return store

    def build_coordinator(
        self,
        embedding: BaseEmbedding,
        store: Optional[DocumentStore] = None,
    ) -> RetrievalCoordinator:
        return RetrievalCoordinator(
            store if store is not None else self.build_store(),
            embedding,
            self.build_splitter(),
            query_timeout=self.query_timeout,
            embed_timeout=self.embed_timeout,
            max_concurrency=self.max_concurrency,
        )

    def configure_logging(self) -> None:
        get_logger()
        set_log_level(self.log_level)


def load_config(path: str | Path = "spanrag.yaml") -> RetrievalConfig:
    """
    Load retrieval configuration from file.

    Args:
        path: Path to config file

    Returns:
        RetrievalConfig instance, with defaults if the file does not exist
    """
    path = Path(path)

    if not path.exists():
        return RetrievalConfig()

    return RetrievalConfig.from_file(path)
