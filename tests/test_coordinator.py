"""Tests for the retrieval coordinator."""

import asyncio

import pytest

from spanrag import (
    ChunkingConfig,
    Document,
    DocumentChangedError,
    DocumentNotFoundError,
    DocumentNotIngestedError,
    DocumentStore,
    EmbeddingProviderError,
    EmbeddingTimeoutError,
    FakeEmbedding,
    FragmentKey,
    HashingEmbedding,
    NaiveVectorIndex,
    RecursiveTextSplitter,
    RetrievalCoordinator,
    Span,
)


class RecordingEmbedding(HashingEmbedding):
    """Hashing embedding that records calls and can fail or stall on demand."""

    def __init__(self, fail_on=(), delay: float = 0.0, query_delay: float = 0.0):
        super().__init__(dimension=32)
        self.calls: list[list[str]] = []
        self.fail_on = set(fail_on)
        self.delay = delay
        self.query_delay = query_delay
        self.active = 0
        self.max_active = 0

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if any(marker in text for text in texts for marker in self.fail_on):
                raise RuntimeError("provider unavailable")
            return await super().embed_documents(texts)
        finally:
            self.active -= 1

    async def embed_query(self, text: str) -> list[float]:
        await asyncio.sleep(self.query_delay)
        if any(marker in text for marker in self.fail_on):
            raise RuntimeError("provider unavailable")
        return await super().embed_query(text)


class ShortEmbedding(HashingEmbedding):
    """Returns one vector too few."""

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return (await super().embed_documents(texts))[:-1]


class TestEmbed:
    """Tests for embedding single documents."""

    @pytest.mark.asyncio
    async def test_fragment_count_matches_splitter(self, store, small_splitter, sample_text):
        """Test that every fragment produced by the splitter is indexed."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding(), small_splitter)
        count = await coordinator.embed("guide")

        expected = small_splitter.split(sample_text)
        assert count == len(expected) > 1
        assert store.embeddings("guide").keys() == [
            FragmentKey(document_id="guide", span=fragment.span) for fragment in expected
        ]
        assert not store.is_pending("guide")

    @pytest.mark.asyncio
    async def test_one_provider_call_per_document(self, store, small_splitter):
        """Test that a document's fragments are embedded in one batch."""
        embedding = RecordingEmbedding()
        coordinator = RetrievalCoordinator(store, embedding, small_splitter)
        await coordinator.embed("guide")
        assert len(embedding.calls) == 1

    @pytest.mark.asyncio
    async def test_document_without_text(self, store):
        """Test that a document without text cannot be embedded."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding())
        with pytest.raises(DocumentNotIngestedError):
            await coordinator.embed("draft")
        with pytest.raises(DocumentNotFoundError):
            await coordinator.embed("missing")

    @pytest.mark.asyncio
    async def test_blank_document(self):
        """Test that a blank document indexes nothing without calling the provider."""
        store = DocumentStore()
        store.add_document(Document(id="blank", text="   \n "))
        embedding = RecordingEmbedding()
        coordinator = RetrievalCoordinator(store, embedding)

        assert await coordinator.embed("blank") == 0
        assert embedding.calls == []
        assert not store.is_pending("blank")

    @pytest.mark.asyncio
    async def test_provider_failure_leaves_index_unchanged(self, store):
        """Test that a failed embedding stores nothing."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding(fail_on={"plants"}))

        with pytest.raises(EmbeddingProviderError) as exc_info:
            await coordinator.embed("note")

        assert exc_info.value.retryable
        assert exc_info.value.document_id == "note"
        assert store.vector_count == 0
        assert store.is_pending("note")

    @pytest.mark.asyncio
    async def test_embed_timeout(self, store):
        """Test that a stalled provider times out with a retryable error."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding(delay=1.0), embed_timeout=0.01)

        with pytest.raises(EmbeddingTimeoutError) as exc_info:
            await coordinator.embed("note")

        assert exc_info.value.retryable
        assert store.vector_count == 0

    @pytest.mark.asyncio
    async def test_wrong_vector_count(self, store):
        """Test that a provider returning too few vectors is an error."""
        coordinator = RetrievalCoordinator(store, ShortEmbedding(dimension=8))
        with pytest.raises(EmbeddingProviderError):
            await coordinator.embed("note")

    @pytest.mark.asyncio
    async def test_reembedding_keeps_unchanged_vectors(self):
        """Test that re-embedding an unchanged text keeps the stored vectors."""
        store = DocumentStore()
        store.add_document(Document(id="note", text="Remember to water the plants.\n\nFeed the cat."))
        splitter = RecursiveTextSplitter(ChunkingConfig(maximum_fragment_size=30))
        coordinator = RetrievalCoordinator(store, FakeEmbedding(dimension=16, seed=1), splitter)
        await coordinator.embed("note")
        original = store.embeddings("note").items()

        coordinator.embedding = FakeEmbedding(dimension=16, seed=2)
        store.mark_pending("note")
        assert await coordinator.embed("note") == 2

        assert store.embeddings("note").items() == original
        assert [key.span for key, _ in original] == [Span.of((0, 29)), Span.of((31, 44))]

    @pytest.mark.asyncio
    async def test_changed_text_gets_fresh_vectors(self):
        """Test that a span reused by a new text is embedded from the new text."""
        store = DocumentStore()
        store.add_document(Document(id="note", text="Cats purr."))
        embedding = FakeEmbedding(dimension=16)
        coordinator = RetrievalCoordinator(store, embedding)
        await coordinator.embed("note")

        store.set_text("note", "Dogs bark.")
        report = await coordinator.embed_pending()

        same_span = FragmentKey(document_id="note", span=Span.of((0, 10)))
        assert report.succeeded == ["note"]
        assert store.embeddings("note").keys() == [same_span]
        assert store.embeddings("note").get(same_span) == await embedding.embed_query("Dogs bark.")

    @pytest.mark.asyncio
    async def test_text_changed_while_embedding(self, store):
        """Test that vectors of an outdated text are not stored."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding(delay=0.05))
        task = asyncio.create_task(coordinator.embed("note"))
        await asyncio.sleep(0.01)
        store.set_text("note", "Feed the cat.")

        with pytest.raises(DocumentChangedError) as exc_info:
            await task

        assert exc_info.value.retryable
        assert exc_info.value.document_id == "note"
        assert len(store.embeddings("note")) == 0
        assert store.is_pending("note")

        report = await coordinator.embed_pending()
        assert "note" in report.succeeded
        fresh = FragmentKey(document_id="note", span=Span.of((0, 13)))
        assert store.embeddings("note").keys() == [fresh]
        assert store.embeddings("note").get(fresh) == await HashingEmbedding(32).embed_query("Feed the cat.")

    @pytest.mark.asyncio
    async def test_add_document(self):
        """Test adding and embedding in one step."""
        store = DocumentStore()
        coordinator = RetrievalCoordinator(store, RecordingEmbedding())

        assert await coordinator.add_document(Document(id="a", text="Some text.")) == 1
        assert await coordinator.add_document(Document(id="b")) == 0
        assert store.pending == ["b"]


class TestEmbedAll:
    """Tests for batch embedding and retry."""

    @pytest.mark.asyncio
    async def test_report(self, store, small_splitter, sample_text):
        """Test that successes and failures are reported per document."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding(), small_splitter)
        report = await coordinator.embed_all()

        assert report.succeeded == ["guide", "note"]
        assert list(report.failed) == ["draft"]
        assert isinstance(report.failed["draft"], DocumentNotIngestedError)
        assert report.fragment_counts == {
            "guide": len(small_splitter.split(sample_text)),
            "note": 1,
        }
        assert report.total_fragments == store.vector_count
        assert store.pending == ["draft"]
        assert not report.ok

        with pytest.raises(DocumentNotIngestedError):
            report.raise_for_failures()

    @pytest.mark.asyncio
    async def test_retry_only_failed_documents(self, store, sample_text):
        """Test that retrying does not reprocess documents that succeeded."""
        embedding = RecordingEmbedding(fail_on={"plants"})
        coordinator = RetrievalCoordinator(store, embedding)

        first = await coordinator.embed_all()
        assert first.succeeded == ["guide"]
        assert set(first.failed) == {"note", "draft"}
        assert store.pending == ["note", "draft"]

        embedding.fail_on.clear()
        embedding.calls.clear()
        store.set_text("draft", "Draft text arrived.")

        second = await coordinator.embed_pending()
        assert second.succeeded == ["note", "draft"]
        assert second.ok
        assert sorted(embedding.calls) == [["Draft text arrived."], ["Remember to water the plants."]]
        assert store.pending == []

    @pytest.mark.asyncio
    async def test_failed_reembedding_stays_pending(self, store):
        """Test that a document failing on re-embedding is pending again."""
        embedding = RecordingEmbedding()
        coordinator = RetrievalCoordinator(store, embedding)
        await coordinator.embed_all(["note"])
        assert not store.is_pending("note")

        embedding.fail_on.add("plants")
        report = await coordinator.embed_all(["note"])

        assert list(report.failed) == ["note"]
        assert store.is_pending("note")
        assert len(store.embeddings("note")) == 1

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        """Test that no more than max_concurrency documents embed at once."""
        store = DocumentStore()
        for number in range(6):
            store.add_document(Document(id=f"doc-{number}", text=f"Document number {number}."))
        embedding = RecordingEmbedding(delay=0.01)
        coordinator = RetrievalCoordinator(store, embedding, max_concurrency=2)

        report = await coordinator.embed_all()

        assert len(report.succeeded) == 6
        assert 1 <= embedding.max_active <= 2

    @pytest.mark.asyncio
    async def test_reset(self, store):
        """Test that a reset drops existing vectors first."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding())
        await coordinator.embed_all(["note"])
        stale = FragmentKey(document_id="guide", span=Span.of((0, 6)))
        store.replace_embeddings("guide", NaiveVectorIndex([(stale, [1.0] * 32)]))

        await coordinator.embed_all(["note"], reset=True)

        assert stale not in store.embeddings("guide")
        assert store.pending == ["guide", "draft"]

    @pytest.mark.asyncio
    async def test_embed_all_if_needed(self, store):
        """Test that embedding runs only when the store holds no vectors."""
        embedding = RecordingEmbedding()
        coordinator = RetrievalCoordinator(store, embedding)

        first = await coordinator.embed_all_if_needed()
        assert first.succeeded == ["guide", "note"]

        calls = len(embedding.calls)
        second = await coordinator.embed_all_if_needed()
        assert second.succeeded == []
        assert len(embedding.calls) == calls

    def test_invalid_concurrency(self, store):
        """Test that the concurrency bound must be positive."""
        with pytest.raises(ValueError):
            RetrievalCoordinator(store, RecordingEmbedding(), max_concurrency=0)


class TestSearch:
    """Tests for searching."""

    @pytest.mark.asyncio
    async def test_search_resolves_text(self, store):
        """Test that hits carry the text their span denotes."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding())
        await coordinator.embed_all()

        results = await coordinator.search("water the plants", max_results=1)

        assert len(results) == 1
        assert results[0].document_id == "note"
        assert results[0].text == "Remember to water the plants."

    @pytest.mark.asyncio
    async def test_default_result_count(self, store, small_splitter):
        """Test that the default result count is the number of documents."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding(), small_splitter)
        await coordinator.embed_all()

        results = await coordinator.search("python machine learning")

        assert len(results) == len(store)
        scores = [result.score for result in results]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_search_empty_store(self):
        """Test searching a store without documents."""
        coordinator = RetrievalCoordinator(DocumentStore(), RecordingEmbedding())
        assert await coordinator.search("anything", max_results=5) == []

    @pytest.mark.asyncio
    async def test_search_embeds_unembedded_store(self, store):
        """Test that searching a store without vectors embeds it first."""
        embedding = RecordingEmbedding()
        coordinator = RetrievalCoordinator(store, embedding)

        results = await coordinator.search("water the plants", max_results=1)

        assert results[0].document_id == "note"
        assert results[0].text == "Remember to water the plants."
        assert store.pending == ["draft"]

        calls = len(embedding.calls)
        await coordinator.search("water the plants")
        assert len(embedding.calls) == calls

    @pytest.mark.asyncio
    async def test_search_without_embedding(self, store):
        """Test that automatic embedding can be turned off."""
        embedding = RecordingEmbedding()
        coordinator = RetrievalCoordinator(store, embedding)

        assert await coordinator.search("water", embed_if_needed=False) == []
        assert embedding.calls == []

    @pytest.mark.asyncio
    async def test_search_after_text_change(self):
        """Test that a changed document is not searched with its old vectors."""
        store = DocumentStore()
        store.add_document(Document(id="pets", text="Cats are lovely animals that purr."))
        store.add_document(Document(id="zoo", text="Lions are large cats."))
        coordinator = RetrievalCoordinator(store, RecordingEmbedding())
        await coordinator.embed_all()

        store.set_text("pets", "Dogs.")
        results = await coordinator.search("cats")

        assert [result.document_id for result in results] == ["zoo"]
        assert results[0].text == "Lions are large cats."

        await coordinator.embed_pending()
        results = await coordinator.search("cats")
        assert {result.text for result in results} == {"Lions are large cats.", "Dogs."}

    @pytest.mark.asyncio
    async def test_search_after_only_document_changed(self):
        """Test that a store emptied of vectors by a text change is re-embedded on search."""
        store = DocumentStore()
        store.add_document(Document(id="pets", text="Cats are lovely animals that purr."))
        coordinator = RetrievalCoordinator(store, RecordingEmbedding())
        await coordinator.embed_all()

        store.set_text("pets", "Dogs.")
        results = await coordinator.search("cats")

        assert [result.text for result in results] == ["Dogs."]
        assert not store.is_pending("pets")

    @pytest.mark.asyncio
    async def test_query_timeout(self, store):
        """Test that a slow query embedding times out."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding(query_delay=1.0), query_timeout=0.01)

        with pytest.raises(EmbeddingTimeoutError) as exc_info:
            await coordinator.search("water")

        assert exc_info.value.timeout == 0.01
        assert exc_info.value.document_id is None

    @pytest.mark.asyncio
    async def test_query_provider_failure(self, store):
        """Test that provider failures during search are wrapped."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding(fail_on={"boom"}))
        with pytest.raises(EmbeddingProviderError):
            await coordinator.search("boom")

    @pytest.mark.asyncio
    async def test_hit_for_unknown_document(self, store):
        """Test that a key pointing at an unknown document is reported."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding())
        orphan = FragmentKey(document_id="ghost", span=Span.of((0, 4)))
        store.replace_embeddings("note", NaiveVectorIndex([(orphan, [1.0] * 32)]))

        with pytest.raises(DocumentNotFoundError):
            await coordinator.search("water", max_results=1)

    @pytest.mark.asyncio
    async def test_remove_document(self, store):
        """Test that removed documents no longer appear in results."""
        coordinator = RetrievalCoordinator(store, RecordingEmbedding())
        await coordinator.embed_all()

        assert await coordinator.remove_document("note")
        assert not await coordinator.remove_document("note")

        results = await coordinator.search("water the plants", max_results=10)
        assert all(result.document_id != "note" for result in results)
