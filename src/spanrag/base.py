"""Base classes and abstract interfaces for spanrag components."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, Hashable, Iterable, Iterator, Optional, TypeVar

from .exceptions import DocumentNotIngestedError

if TYPE_CHECKING:
    from .chunking import ChunkingConfig
    from .document import Document
    from .span import Fragment
    from .vectorindex import VectorSearchResult

K = TypeVar("K", bound=Hashable)


class BaseTokenizer(ABC):
    """Abstract base class for tokenizers.

    Tokenizers are only used for budget arithmetic. They must be
    deterministic.
    """

    @abstractmethod
    def count(self, text: str) -> int:
        """Return the number of tokens in ``text``."""
        pass


class BaseEmbedding(ABC):
    """Abstract base class for embedding models.

    Embedding models convert text into dense vector representations.
    """

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of texts.

        Args:
            texts: List of text strings to embed

        Returns:
            One embedding vector per text, in the same order
        """
        pass

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector
        """
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimension of the embedding vectors."""
        pass


class BaseTextSplitter(ABC):
    """Abstract base class for text splitters.

    Splitters turn a document's text into fragments that remember where in
    the text they came from. They are expected to be deterministic.
    """

    @property
    @abstractmethod
    def configuration(self) -> "ChunkingConfig":
        pass

    @abstractmethod
    def split(self, text: str) -> list["Fragment"]:
        """Split text into fragments.

        Args:
            text: Text to split

        Returns:
            Fragments in document order
        """
        pass

    def split_document(self, document: "Document") -> list["Fragment"]:
        """Split the text of an ingested document."""
        if document.text is None:
            raise DocumentNotIngestedError(document.id)
        return self.split(document.text)


class BaseVectorIndex(ABC, Generic[K]):
    """Abstract base class for vector indices.

    An index answers nearest-neighbour queries over vectors stored by key.
    """

    @abstractmethod
    def query(self, query: Any) -> list["VectorSearchResult[K]"]:
        """Run a query against the index.

        Args:
            query: A query object, currently only ``TopK``

        Returns:
            Search results sorted by descending score

        Raises:
            UnsupportedQueryError: If the query kind is not handled
        """
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    def top_matches(self, vector: list[float], maximum_number_of_results: int) -> list["VectorSearchResult[K]"]:
        """Shorthand for a ``TopK`` query."""
        from .vectorindex import TopK

        return self.query(TopK(vector=vector, maximum_number_of_results=maximum_number_of_results))


class MutableVectorIndex(BaseVectorIndex[K]):
    """A vector index that supports insertion and removal."""

    @abstractmethod
    def insert(self, pairs: Iterable[tuple[K, list[float]]]) -> None:
        """Insert ``(key, vector)`` pairs, keeping existing vectors on duplicate keys."""
        pass

    @abstractmethod
    def remove(self, keys: Iterable[K]) -> None:
        """Remove keys. Absent keys are ignored."""
        pass

    @abstractmethod
    def remove_all(self) -> None:
        """Remove every entry."""
        pass

    @abstractmethod
    def get(self, key: K) -> Optional[list[float]]:
        pass

    @abstractmethod
    def __iter__(self) -> Iterator[K]:
        pass

    def insert_one(self, key: K, vector: list[float]) -> None:
        """Insert a vector for a single key."""
        self.insert([(key, vector)])

    def remove_one(self, key: K) -> None:
        """Remove the vector stored for a single key."""
        self.remove([key])

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]
