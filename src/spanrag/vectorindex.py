"""Vector index implementations."""

import logging
import math
from dataclasses import dataclass
from typing import Any, Generic, Iterable, Iterator, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from .base import BaseVectorIndex, K, MutableVectorIndex
from .exceptions import DimensionMismatchError, UnsupportedQueryError

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Calculate cosine similarity between two vectors."""
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    dot_product = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot_product / (norm_a * norm_b)


class TopK(BaseModel):
    """A k-nearest-neighbour query.

    Attributes:
        vector: Query vector
        maximum_number_of_results: Upper bound on the number of results
    """

    kind: Literal["top_k"] = "top_k"
    vector: list[float]
    maximum_number_of_results: int = Field(ge=0)


# Known query kinds. Anything else is rejected with UnsupportedQueryError.
VectorIndexQuery = TopK


@dataclass(frozen=True)
class VectorSearchResult(Generic[K]):
    """A key returned by an index query, with its similarity score."""

    key: K
    score: float


class NaiveVectorIndex(MutableVectorIndex[K]):
    """In-memory vector index with exact, brute-force cosine search.

    Entries are kept in insertion order. Results with equal scores are
    returned in insertion order. The index is not synchronized: callers must
    not mutate it concurrently with other mutations or queries.
    """

    def __init__(self, pairs: Optional[Iterable[tuple[K, list[float]]]] = None) -> None:
        self._storage: dict[K, list[float]] = {}
        if pairs is not None:
            self.insert(pairs)

    @property
    def dimension(self) -> Optional[int]:
        """Dimension of the stored vectors, None while empty."""
        for vector in self._storage.values():
            return len(vector)
        return None

    def insert(self, pairs: Iterable[tuple[K, list[float]]]) -> None:
        """Insert pairs, keeping the existing vector when a key is already present.

        The batch is validated before anything is stored, so a failing batch
        leaves the index unchanged.
        """
        batch: dict[K, list[float]] = {}
        dimension = self.dimension
        for key, vector in pairs:
            vector = [float(value) for value in vector]
            if dimension is None:
                if not vector:
                    raise DimensionMismatchError(1, 0)
                dimension = len(vector)
            elif len(vector) != dimension:
                raise DimensionMismatchError(dimension, len(vector))
            if key not in self._storage and key not in batch:
                batch[key] = vector

        self._storage.update(batch)
        logger.debug(f"Inserted {len(batch)} vectors into naive index")

    def remove(self, keys: Iterable[K]) -> None:
        for key in keys:
            self._storage.pop(key, None)

    def remove_all(self) -> None:
        self._storage.clear()

    def get(self, key: K) -> Optional[list[float]]:
        return self._storage.get(key)

    def keys(self) -> list[K]:
        return list(self._storage)

    def items(self) -> list[tuple[K, list[float]]]:
        return list(self._storage.items())

    def query(self, query: Any) -> list[VectorSearchResult[K]]:
        """Run a query against the index.

        Raises:
            UnsupportedQueryError: If ``query`` is not a ``TopK`` query
            DimensionMismatchError: If the query vector's dimension differs
                from the stored vectors
        """
        if isinstance(query, TopK):
            return self._rank(query.vector, query.maximum_number_of_results)
        raise UnsupportedQueryError(query)

    def _rank(self, vector: list[float], top_k: int) -> list[VectorSearchResult[K]]:
        dimension = self.dimension
        if dimension is not None and len(vector) != dimension:
            raise DimensionMismatchError(dimension, len(vector))

        scored = [
            (-cosine_similarity(vector, stored), position, key)
            for position, (key, stored) in enumerate(self._storage.items())
        ]
        scored.sort(key=lambda item: (item[0], item[1]))

        return [
            VectorSearchResult(key=key, score=-negative_score)
            for negative_score, _, key in scored[:top_k]
        ]

    def __len__(self) -> int:
        return len(self._storage)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._storage))

    def __contains__(self, key: object) -> bool:
        return key in self._storage

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NaiveVectorIndex):
            return NotImplemented
        return list(self._storage.items()) == list(other._storage.items())

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"NaiveVectorIndex(entries={len(self)}, dimension={self.dimension})"


class MergeMany(BaseVectorIndex[K]):
    """A read-only index over a sequence of indices sharing one key type.

    Queries fan out to every sub-index and the combined results are ranked
    again. Equal scores keep sub-index order, then each sub-index's own order.
    """

    def __init__(self, indices: Sequence[BaseVectorIndex[K]]) -> None:
        self.indices = list(indices)

    def query(self, query: Any) -> list[VectorSearchResult[K]]:
        if not isinstance(query, TopK):
            raise UnsupportedQueryError(query)

        ranked = [
            (-result.score, index_position, rank, result)
            for index_position, index in enumerate(self.indices)
            for rank, result in enumerate(index.query(query))
        ]
        ranked.sort(key=lambda item: item[:3])

        return [result for *_, result in ranked[:query.maximum_number_of_results]]

    def __len__(self) -> int:
        return sum(len(index) for index in self.indices)

    def __repr__(self) -> str:
        return f"MergeMany(indices={len(self.indices)}, entries={len(self)})"
