"""Document, fragment key and retrieval result data structures."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import DocumentNotIngestedError
from .span import Span, resolve


class Document(BaseModel):
    """A document known to the store.

    Attributes:
        id: Unique identifier for the document
        text: Plain text of the document, None until ingestion has produced it
        source: Optional source URL or path
        metadata: Additional metadata about the document
    """

    id: str
    text: Optional[str] = None
    source: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_ingested(self) -> bool:
        return self.text is not None

    def resolve(self, span: Span) -> str:
        """Return the text denoted by ``span`` in this document."""
        if self.text is None:
            raise DocumentNotIngestedError(self.id)
        return resolve(span, self.text)

    def __repr__(self) -> str:
        if self.text is None:
            return f"Document(id={self.id!r}, text=None)"
        preview = self.text[:50] + "..." if len(self.text) > 50 else self.text
        return f"Document(id={self.id!r}, text={preview!r})"


class FragmentKey(BaseModel):
    """Identity of an indexed embedding: a document and a span of its text.

    Two keys are equal when both fields are structurally equal.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    span: Span

    def __str__(self) -> str:
        return f"{{document:{self.document_id!r}, span:{self.span}}}"


class RetrievedFragment(BaseModel):
    """A search hit resolved back to the text it was embedded from.

    Attributes:
        key: The fragment key stored in the vector index
        score: Cosine similarity to the query (higher is better)
        text: The source text denoted by the key's span
    """

    key: FragmentKey
    score: float
    text: str

    @property
    def document_id(self) -> str:
        return self.key.document_id

    def __repr__(self) -> str:
        return f"RetrievedFragment(key={str(self.key)!r}, score={self.score:.4f})"
