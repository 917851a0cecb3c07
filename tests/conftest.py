"""
Test configuration and fixtures.
"""

import pytest

from spanrag import ChunkingConfig, Document, DocumentStore, HashingEmbedding, RecursiveTextSplitter


@pytest.fixture
def sample_text():
    """A short multi-paragraph document."""
    return (
        "Python is a programming language. It is used for web development.\n\n"
        "Machine learning models are trained on data. Python is popular for machine learning.\n\n"
        "The weather today is sunny. Tomorrow it may rain."
    )


@pytest.fixture
def embedding():
    """Offline embedding where texts sharing words are similar."""
    return HashingEmbedding(dimension=64)


@pytest.fixture
def small_splitter():
    """A splitter with a budget small enough to force several fragments."""
    return RecursiveTextSplitter(ChunkingConfig(maximum_fragment_size=60))


@pytest.fixture
def store(sample_text):
    """An in-memory store with two ingested documents and one without text."""
    store = DocumentStore()
    store.add_document(Document(id="guide", text=sample_text, source="guide.txt"))
    store.add_document(Document(id="note", text="Remember to water the plants."))
    store.add_document(Document(id="draft"))
    return store
