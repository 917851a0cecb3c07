"""Retrieval coordinator: chunk, embed, index and search documents."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Iterable, Optional, TypeVar

from .base import BaseEmbedding, BaseTextSplitter
from .chunking import ChunkingConfig, RecursiveTextSplitter
from .document import Document, FragmentKey, RetrievedFragment
from .exceptions import (
    DocumentChangedError,
    DocumentNotIngestedError,
    EmbeddingProviderError,
    EmbeddingTimeoutError,
    SpanRAGError,
)
from .store import DocumentStore
from .vectorindex import NaiveVectorIndex, TopK

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAXIMUM_FRAGMENT_SIZE = 500


@dataclass
class EmbeddingReport:
    """Outcome of a batch embedding run.

    Attributes:
        succeeded: Ids of documents embedded successfully, in request order
        failed: Exception raised for each failed document
        fragment_counts: Number of fragments indexed per succeeded document
    """

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, Exception] = field(default_factory=dict)
    fragment_counts: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def total_fragments(self) -> int:
        return sum(self.fragment_counts.values())

    def raise_for_failures(self) -> None:
        """Raise the first failure, if any."""
        for error in self.failed.values():
            raise error


class RetrievalCoordinator:
    """Connects a document store, a text splitter and an embedding provider.

    Embedding calls for different documents run concurrently, bounded by
    ``max_concurrency``. Index mutations are serialized by a single lock, and
    each document's vectors are replaced in one step, so a failed document
    never leaves partial state behind.

    Example:
        ```python
        store = DocumentStore()
        store.add_document(Document(id="guide", text=open("guide.txt").read()))

        coordinator = RetrievalCoordinator(store, HashingEmbedding())
        report = await coordinator.embed_all()
        report.raise_for_failures()

        for hit in await coordinator.search("how do I install it?", max_results=3):
            print(hit.score, hit.text)
        ```
    """

    def __init__(
        self,
        store: DocumentStore,
        embedding: BaseEmbedding,
        splitter: Optional[BaseTextSplitter] = None,
        *,
        query_timeout: Optional[float] = 2.0,
        embed_timeout: Optional[float] = None,
        max_concurrency: int = 4,
    ):
        """Initialize the coordinator.

        Args:
            store: Document store holding texts and vectors
            embedding: Embedding provider for fragments and queries
            splitter: Text splitter (default: RecursiveTextSplitter with a
                500 character budget)
            query_timeout: Seconds allowed for embedding a query, None to wait forever
            embed_timeout: Seconds allowed for embedding one document, None to wait forever
            max_concurrency: Maximum number of documents embedded at once
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.store = store
        self.embedding = embedding
        self.splitter = splitter or RecursiveTextSplitter(
            ChunkingConfig(maximum_fragment_size=DEFAULT_MAXIMUM_FRAGMENT_SIZE)
        )
        self.query_timeout = query_timeout
        self.embed_timeout = embed_timeout
        self.max_concurrency = max_concurrency

        self._lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def add_document(self, document: Document, embed: bool = True) -> int:
        """Add a document to the store and embed it if it has text.

        Returns:
            Number of fragments indexed
        """
        async with self._lock:
            self.store.add_document(document)
        if not embed or document.text is None:
            return 0
        return await self.embed(document.id)

    async def embed(self, document_id: str) -> int:
        """Split, embed and index one document.

        Args:
            document_id: Id of a document in the store

        Returns:
            Number of fragments indexed for the document

        Raises:
            DocumentNotFoundError: If the document is unknown
            DocumentNotIngestedError: If the document has no text yet
            ChunkingError: If the text cannot be split within budget
            EmbeddingProviderError: If the provider fails or times out
            DocumentChangedError: If the text changed before the vectors
                could be stored
        """
        document = self.store.require(document_id)
        if document.text is None:
            raise DocumentNotIngestedError(document_id)

        loop = asyncio.get_running_loop()
        fragments = await loop.run_in_executor(None, self.splitter.split, document.text)
        keys = [FragmentKey(document_id=document_id, span=fragment.span) for fragment in fragments]

        vectors: list[list[float]] = []
        if fragments:
            vectors = await self._call_provider(
                self.embedding.embed_documents([fragment.text for fragment in fragments]),
                self.embed_timeout,
                document_id,
            )
            if len(vectors) != len(fragments):
                raise EmbeddingProviderError(
                    f"Embedding provider returned {len(vectors)} vectors for "
                    f"{len(fragments)} fragments",
                    document_id,
                )

        async with self._lock:
            current = self.store.require(document_id)
            if current.text != document.text:
                # The text was edited while embedding; it stays pending.
                raise DocumentChangedError(document_id)

            existing = self.store.embeddings(document_id)
            replacement: NaiveVectorIndex[FragmentKey] = NaiveVectorIndex()
            # Vectors of unchanged fragments are kept as they were.
            replacement.insert(
                (key, existing.get(key) if key in existing else vector)
                for key, vector in zip(keys, vectors)
            )
            self.store.replace_embeddings(document_id, replacement)

        logger.debug(f"Embedded document {document_id}: {len(replacement)} fragments")
        return len(replacement)

    async def embed_all(
        self,
        document_ids: Optional[Iterable[str]] = None,
        *,
        reset: bool = False,
    ) -> EmbeddingReport:
        """Embed several documents concurrently.

        Failures are collected per document instead of aborting the batch.
        Failed documents stay pending, so ``embed_pending`` retries exactly them.

        Args:
            document_ids: Documents to embed (default: every document in the store)
            reset: Drop all stored vectors before embedding

        Returns:
            An EmbeddingReport describing the run
        """
        if reset:
            async with self._lock:
                self.store.clear_embeddings()

        ids = list(dict.fromkeys(self.store.document_ids if document_ids is None else document_ids))
        logger.info(f"Embedding {len(ids)} documents")

        async def run(document_id: str) -> int:
            async with self._semaphore:
                return await self.embed(document_id)

        results = await asyncio.gather(*(run(document_id) for document_id in ids), return_exceptions=True)

        report = EmbeddingReport()
        for document_id, result in zip(ids, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to embed document {document_id}: {result}")
                report.failed[document_id] = result
                if document_id in self.store:
                    self.store.mark_pending(document_id)
            elif isinstance(result, BaseException):
                raise result
            else:
                report.succeeded.append(document_id)
                report.fragment_counts[document_id] = result

        logger.info(
            f"Embedded {len(report.succeeded)} documents ({report.total_fragments} fragments), "
            f"{len(report.failed)} failed"
        )
        return report

    async def embed_pending(self) -> EmbeddingReport:
        """Embed the documents that are new, changed or failed before."""
        return await self.embed_all(self.store.pending)

    async def embed_all_if_needed(self) -> EmbeddingReport:
        """Embed every document if the store holds no vectors at all."""
        if self.store.vector_count > 0:
            return EmbeddingReport()
        return await self.embed_all()

    async def search(
        self,
        query_text: str,
        max_results: Optional[int] = None,
        embed_if_needed: bool = True,
    ) -> list[RetrievedFragment]:
        """Find the fragments most similar to a query.

        A store that holds no vectors yet is embedded first. Documents that
        fail to embed are logged and left pending.

        Args:
            query_text: Natural language query
            max_results: Maximum number of hits (default: number of documents)
            embed_if_needed: Embed every document first if the store holds no vectors

        Returns:
            Hits sorted by descending score, each with its resolved text

        Raises:
            EmbeddingTimeoutError: If the query is not embedded within ``query_timeout``
            EmbeddingProviderError: If the provider fails
            DocumentNotFoundError: If a hit belongs to a document no longer in the store
        """
        if embed_if_needed:
            await self.embed_all_if_needed()
        if max_results is None:
            max_results = len(self.store)

        vector = await self._call_provider(self.embedding.embed_query(query_text), self.query_timeout)
        results = self.store.index.query(TopK(vector=vector, maximum_number_of_results=max_results))

        return [
            RetrievedFragment(
                key=result.key,
                score=result.score,
                text=self.store.require(result.key.document_id).resolve(result.key.span),
            )
            for result in results
        ]

    async def remove_document(self, document_id: str) -> bool:
        """Remove a document and its vectors from the store."""
        async with self._lock:
            return self.store.remove_document(document_id)

    async def _call_provider(
        self,
        call: Awaitable[T],
        timeout: Optional[float],
        document_id: Optional[str] = None,
    ) -> T:
        """Await a provider call, translating failures into retryable errors."""
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            if timeout is None:
                raise EmbeddingProviderError(f"Embedding provider timed out: {e}", document_id) from e
            raise EmbeddingTimeoutError(timeout, document_id) from e
        except SpanRAGError:
            raise
        except Exception as e:
            target = f"document '{document_id}'" if document_id else "query"
            raise EmbeddingProviderError(f"Embedding provider failed for {target}: {e}", document_id) from e
