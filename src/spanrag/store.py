"""Document store: documents, their per-document vector indices and pending state."""

import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field

from .document import Document, FragmentKey
from .exceptions import DocumentNotFoundError, SpanRAGError
from .vectorindex import MergeMany, NaiveVectorIndex

logger = logging.getLogger(__name__)


class EmbeddingRecord(BaseModel):
    """One persisted ``(key, vector)`` pair."""

    key: FragmentKey
    vector: list[float]


class StoreSnapshot(BaseModel):
    """On-disk layout of a document store."""

    documents: list[Document] = Field(default_factory=list)
    embeddings: list[EmbeddingRecord] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)


class DocumentStore:
    """Keeps documents in insertion order, one vector index per document,
    and the set of documents waiting to be (re-)embedded.

    The store is not synchronized. ``RetrievalCoordinator`` is its single
    writer and serializes mutations behind an ``asyncio.Lock``.

    Example:
        ```python
        store = DocumentStore("index.json")
        store.load()
        store.add_document(Document(id="readme", text="..."))
        store.commit()
        ```
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """Initialize the store.

        Args:
            path: JSON file used by ``load`` and ``commit``. Without a path the
                store lives in memory only.
        """
        self.path = Path(path) if path is not None else None
        self._documents: dict[str, Document] = {}
        self._indices: dict[str, NaiveVectorIndex[FragmentKey]] = {}
        self._pending: set[str] = set()

    # Documents

    def add_document(self, document: Document) -> None:
        """Add or replace a document and mark it pending.

        Replacing a document with a different text drops its vectors, since
        their spans point into the old text.
        """
        previous = self._documents.get(document.id)
        self._documents[document.id] = document
        if previous is None or previous.text != document.text:
            self._indices[document.id] = NaiveVectorIndex()
        self._pending.add(document.id)
        logger.debug(f"Added document {document.id}")

    def set_text(self, document_id: str, text: Optional[str]) -> Document:
        """Replace the text of a document and mark it pending.

        A changed text drops the document's vectors.
        """
        previous = self.require(document_id)
        document = previous.model_copy(update={"text": text})
        self._documents[document_id] = document
        if previous.text != text:
            self._indices[document_id] = NaiveVectorIndex()
        self._pending.add(document_id)
        return document

    def get(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def require(self, document_id: str) -> Document:
        """Return a document, raising ``DocumentNotFoundError`` when it is unknown."""
        document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def text(self, document_id: str) -> Optional[str]:
        return self.require(document_id).text

    def remove_document(self, document_id: str) -> bool:
        """Remove a document together with its vectors.

        Returns:
            True if the document existed
        """
        existed = self._documents.pop(document_id, None) is not None
        self._indices.pop(document_id, None)
        self._pending.discard(document_id)
        if existed:
            logger.debug(f"Removed document {document_id}")
        return existed

    @property
    def documents(self) -> list[Document]:
        return list(self._documents.values())

    @property
    def document_ids(self) -> list[str]:
        return list(self._documents)

    # Embeddings

    @property
    def pending(self) -> list[str]:
        """Ids of documents waiting for embedding, in document order."""
        return [document_id for document_id in self._documents if document_id in self._pending]

    def is_pending(self, document_id: str) -> bool:
        return document_id in self._pending

    def mark_pending(self, document_id: str) -> None:
        self.require(document_id)
        self._pending.add(document_id)

    def embeddings(self, document_id: str) -> NaiveVectorIndex[FragmentKey]:
        """Return the vector index of a document."""
        self.require(document_id)
        return self._indices[document_id]

    def replace_embeddings(self, document_id: str, index: NaiveVectorIndex[FragmentKey]) -> None:
        """Swap in a new vector index for a document and clear its pending flag."""
        self.require(document_id)
        self._indices[document_id] = index
        self._pending.discard(document_id)
        logger.debug(f"Replaced embeddings of {document_id}: {len(index)} vectors")

    def clear_embeddings(self) -> None:
        """Drop every stored vector and mark every document pending."""
        self._indices = {document_id: NaiveVectorIndex() for document_id in self._documents}
        self._pending = set(self._documents)
        logger.debug("Cleared all embeddings")

    @property
    def index(self) -> MergeMany[FragmentKey]:
        """All embeddings across all documents as one read-only index."""
        return MergeMany([self._indices[document_id] for document_id in self._documents])

    @property
    def vector_count(self) -> int:
        return sum(len(index) for index in self._indices.values())

    # Persistence

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            documents=self.documents,
            embeddings=[
                EmbeddingRecord(key=key, vector=vector)
                for document_id in self._documents
                for key, vector in self._indices[document_id].items()
            ],
            pending=self.pending,
        )

    def restore(self, snapshot: StoreSnapshot) -> None:
        """Replace the whole state of the store with ``snapshot``."""
        documents = {document.id: document for document in snapshot.documents}
        grouped: dict[str, list[tuple[FragmentKey, list[float]]]] = {
            document_id: [] for document_id in documents
        }
        for record in snapshot.embeddings:
            if record.key.document_id not in grouped:
                logger.warning(f"Skipping vector for unknown document {record.key.document_id}")
                continue
            grouped[record.key.document_id].append((record.key, record.vector))

        indices = {document_id: NaiveVectorIndex(pairs) for document_id, pairs in grouped.items()}

        self._documents = documents
        self._indices = indices
        self._pending = {document_id for document_id in snapshot.pending if document_id in documents}

    def reset(self) -> None:
        self._documents = {}
        self._indices = {}
        self._pending = set()

    def load(self) -> None:
        """Read the persisted state.

        A missing file leaves the store empty. An unreadable or corrupt file is
        discarded and the store starts empty.
        """
        if self.path is None or not self.path.exists():
            return

        try:
            snapshot = StoreSnapshot.model_validate_json(self.path.read_text(encoding="utf-8"))
            self.restore(snapshot)
        except (OSError, ValueError, SpanRAGError) as e:
            logger.warning(f"Discarding unreadable store file {self.path}: {e}")
            self.reset()
            return

        logger.debug(
            f"Loaded {len(self._documents)} documents and {self.vector_count} vectors from {self.path}"
        )

    def commit(self) -> None:
        """Write the current state to the store file."""
        if self.path is None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temporary = self.path.with_name(self.path.name + ".tmp")
        temporary.write_text(self.snapshot().model_dump_json(), encoding="utf-8")
        temporary.replace(self.path)
        logger.debug(f"Committed {len(self._documents)} documents to {self.path}")

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._documents

    def __repr__(self) -> str:
        return (
            f"DocumentStore(documents={len(self)}, vectors={self.vector_count}, "
            f"pending={len(self._pending)})"
        )
