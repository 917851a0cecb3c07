"""
spanrag exceptions.
"""

from typing import Any


class SpanRAGError(Exception):
    """Base exception for spanrag errors."""

    retryable: bool = False

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class InvalidConfigurationError(SpanRAGError, ValueError):
    """Raised when a chunking configuration is malformed."""

    def __init__(self, message: str):
        super().__init__(message, code="invalid_configuration")


class SpanResolutionError(SpanRAGError):
    """Raised when a span cannot be resolved against a text."""

    def __init__(self, message: str):
        super().__init__(message, code="span_resolution")


class ChunkingError(SpanRAGError):
    """Base exception for failures of the chunking engine."""


class FragmentTooLargeError(ChunkingError):
    """Raised when a fragment cannot be brought under the token budget."""

    def __init__(self, size: int, maximum: int):
        self.size = size
        self.maximum = maximum
        super().__init__(
            f"Fragment of {size} tokens exceeds the maximum fragment size of {maximum}",
            code="fragment_too_large",
        )


class UnexpectedOverlapError(ChunkingError):
    """Raised when consecutive fragments overlap although no overlap was configured."""

    def __init__(self, first: Any, second: Any):
        self.first = first
        self.second = second
        super().__init__(
            f"Fragments {first.span} and {second.span} overlap",
            code="unexpected_overlap",
        )


class VectorIndexError(SpanRAGError):
    """Base exception for vector index errors."""


class UnsupportedQueryError(VectorIndexError):
    """Raised when an index receives a query kind it does not handle."""

    def __init__(self, query: Any):
        self.query = query
        super().__init__(
            f"Unsupported vector index query: {type(query).__name__}",
            code="unsupported_query",
        )


class DimensionMismatchError(VectorIndexError):
    """Raised when vectors of different dimensions meet in one index."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Expected a vector of dimension {expected}, got {actual}",
            code="dimension_mismatch",
        )


class RetrievalError(SpanRAGError):
    """Base exception for retrieval coordinator failures."""


class DocumentNotFoundError(RetrievalError):
    """Raised when a document id is unknown to the store."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document '{document_id}' not found", code="document_not_found")


class DocumentNotIngestedError(RetrievalError):
    """Raised when a document has no text yet."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(
            f"Document '{document_id}' has not been ingested",
            code="document_not_ingested",
        )


class EmbeddingProviderError(RetrievalError):
    """Raised when the embedding provider fails. Safe to retry."""

    retryable = True

    def __init__(self, message: str, document_id: str | None = None):
        self.document_id = document_id
        super().__init__(message, code="embedding_provider")


class EmbeddingTimeoutError(EmbeddingProviderError):
    """Raised when an embedding call does not finish in time."""

    def __init__(self, timeout: float, document_id: str | None = None):
        self.timeout = timeout
        target = f"document '{document_id}'" if document_id else "query"
        super().__init__(f"Embedding {target} timed out after {timeout}s", document_id)


class DocumentChangedError(RetrievalError):
    """Raised when a document's text changes while it is being embedded. Safe to retry."""

    retryable = True

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(
            f"Document '{document_id}' changed while it was being embedded",
            code="document_changed",
        )
