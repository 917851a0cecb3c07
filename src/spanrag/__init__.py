"""Span-tracked text chunking and vector retrieval.

This package provides:
- A span model that records where every piece of a fragment came from,
  measured in UTF-16 code units
- A recursive, separator-driven text splitter with token budgets and overlap
- An exact in-memory vector index and a combinator that merges many indices
- Embedding providers (hashing, fake, OpenAI, local)
- A document store with JSON persistence and a retrieval coordinator

Example:
    ```python
    from spanrag import (
        Document,
        DocumentStore,
        HashingEmbedding,
        RetrievalCoordinator,
    )

    store = DocumentStore()
    store.add_document(Document(id="1", text="Python is a programming language."))

    coordinator = RetrievalCoordinator(store, HashingEmbedding())
    await coordinator.embed_all()

    for hit in await coordinator.search("What is Python?"):
        print(hit.score, hit.text)
    ```
"""

# Span model
from .span import (
    Fragment,
    InsertedText,
    SourceText,
    Span,
    TextRange,
    range_for,
    resolve,
    utf16_length,
)

# Data structures
from .document import Document, FragmentKey, RetrievedFragment

# Base classes
from .base import (
    BaseEmbedding,
    BaseTextSplitter,
    BaseTokenizer,
    BaseVectorIndex,
    MutableVectorIndex,
)

# Tokenizers
from .tokenizers import CharacterTokenizer, TiktokenTokenizer

# Chunking
from .chunking import (
    DEFAULT_SEPARATORS,
    ChunkingConfig,
    NoTextSplitter,
    RecursiveTextSplitter,
)

# Vector indices
from .vectorindex import (
    MergeMany,
    NaiveVectorIndex,
    TopK,
    VectorIndexQuery,
    VectorSearchResult,
    cosine_similarity,
)

# Embedding providers
from .embeddings import (
    FakeEmbedding,
    HashingEmbedding,
    LocalEmbedding,
    OpenAIEmbedding,
)

# Store and coordinator
from .store import DocumentStore
from .coordinator import EmbeddingReport, RetrievalCoordinator

# Configuration
from .config import Config, RetrievalConfig, load_config

from .exceptions import (
    ChunkingError,
    DimensionMismatchError,
    DocumentChangedError,
    DocumentNotFoundError,
    DocumentNotIngestedError,
    EmbeddingProviderError,
    EmbeddingTimeoutError,
    FragmentTooLargeError,
    InvalidConfigurationError,
    RetrievalError,
    SpanRAGError,
    SpanResolutionError,
    UnexpectedOverlapError,
    UnsupportedQueryError,
    VectorIndexError,
)

__version__ = "0.1.0"

__all__ = [
    # Span model
    "Fragment",
    "InsertedText",
    "SourceText",
    "Span",
    "TextRange",
    "range_for",
    "resolve",
    "utf16_length",
    # Data structures
    "Document",
    "FragmentKey",
    "RetrievedFragment",
    # Base classes
    "BaseEmbedding",
    "BaseTextSplitter",
    "BaseTokenizer",
    "BaseVectorIndex",
    "MutableVectorIndex",
    # Tokenizers
    "CharacterTokenizer",
    "TiktokenTokenizer",
    # Chunking
    "DEFAULT_SEPARATORS",
    "ChunkingConfig",
    "NoTextSplitter",
    "RecursiveTextSplitter",
    # Vector indices
    "MergeMany",
    "NaiveVectorIndex",
    "TopK",
    "VectorIndexQuery",
    "VectorSearchResult",
    "cosine_similarity",
    # Embeddings
    "FakeEmbedding",
    "HashingEmbedding",
    "LocalEmbedding",
    "OpenAIEmbedding",
    # Store and coordinator
    "DocumentStore",
    "EmbeddingReport",
    "RetrievalCoordinator",
    # Configuration
    "Config",
    "RetrievalConfig",
    "load_config",
    # Exceptions
    "ChunkingError",
    "DimensionMismatchError",
    "DocumentChangedError",
    "DocumentNotFoundError",
    "DocumentNotIngestedError",
    "EmbeddingProviderError",
    "EmbeddingTimeoutError",
    "FragmentTooLargeError",
    "InvalidConfigurationError",
    "RetrievalError",
    "SpanRAGError",
    "SpanResolutionError",
    "UnexpectedOverlapError",
    "UnsupportedQueryError",
    "VectorIndexError",
]
