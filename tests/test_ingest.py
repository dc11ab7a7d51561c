"""Tests for the retrieval pipeline ingest path."""

import logging
from unittest.mock import AsyncMock

import pytest

from conftest import KeywordEmbeddingProvider, html_page, site_fetcher
from indexer.errors import InvalidInput, InvalidSeed, ProviderError, StoreError
from indexer.memory_store import InMemoryVectorStore
from indexer.models import DocumentInput, QueryOptions
from pipelines.crawler import CrawlBudget
from pipelines.retrieval import RetrievalPipeline


def documents(*contents):
    return [DocumentInput(content=content, source=f"https://example.test/{i}")
            for i, content in enumerate(contents)]


class ShortChangingProvider(KeywordEmbeddingProvider):
    """Returns one embedding too few for every batch."""

    async def _embed_texts(self, texts):
        vectors = await super()._embed_texts(texts)
        return vectors[:-1]


class TestAddDocument:

    @pytest.mark.asyncio
    async def test_empty_content_rejected_before_embedding(self, pipeline, provider, store):
        """Test that empty documents never reach the provider"""
        with pytest.raises(InvalidInput):
            await pipeline.add_document(DocumentInput(content=""))

        assert provider.batches == []
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_whitespace_content_rejected(self, pipeline, provider):
        with pytest.raises(InvalidInput):
            await pipeline.add_document(DocumentInput(content="  \n\t "))
        assert provider.batches == []

    @pytest.mark.asyncio
    async def test_document_stored(self, pipeline, store):
        doc_id = await pipeline.add_document(
            DocumentInput(content="redis notes", metadata={'title': 'Notes'}, source="https://example.test/n")
        )

        document = await store.get_document(doc_id)
        assert isinstance(doc_id, int)
        assert document.content == "redis notes"
        assert document.metadata == {'title': 'Notes'}
        assert document.source_url == "https://example.test/n"

    @pytest.mark.asyncio
    async def test_provider_failure_stores_nothing(self, store, query_cache, crawler):
        pipeline = RetrievalPipeline(KeywordEmbeddingProvider(fail_on="boom"), store, query_cache, crawler)

        with pytest.raises(ProviderError):
            await pipeline.add_document(DocumentInput(content="boom"))

        assert await store.count() == 0


class TestAddDocuments:

    @pytest.mark.asyncio
    async def test_ids_in_input_order(self, pipeline, store):
        ids = await pipeline.add_documents(documents("python one", "redis two", "postgres three"))

        assert len(ids) == 3
        stored = [(await store.get_document(doc_id)).content for doc_id in ids]
        assert stored == ["python one", "redis two", "postgres three"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, pipeline, provider):
        assert await pipeline.add_documents([]) == []
        assert provider.batches == []

    @pytest.mark.asyncio
    async def test_chunked_by_provider_ceiling(self, store, query_cache, crawler):
        """Test that large batches are split but keep their order"""
        provider = KeywordEmbeddingProvider(max_batch_size=2)
        pipeline = RetrievalPipeline(provider, store, query_cache, crawler)
        contents = [f"doc {i} python" for i in range(5)]

        ids = await pipeline.add_documents(documents(*contents))

        assert [len(batch) for batch in provider.batches] == [2, 2, 1]
        assert provider.embedded_texts == contents
        stored = [(await store.get_document(doc_id)).content for doc_id in ids]
        assert stored == contents

    @pytest.mark.asyncio
    async def test_invalid_member_rejects_whole_batch(self, pipeline, provider, store):
        with pytest.raises(InvalidInput) as exc_info:
            await pipeline.add_documents(documents("python", "", "redis"))

        assert exc_info.value.detail['index'] == 1
        assert provider.batches == []
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_embedding_failure_aborts_batch(self, store, query_cache, crawler):
        """Test that a failure in a later chunk leaves no documents behind"""
        provider = KeywordEmbeddingProvider(max_batch_size=2, fail_on="boom")
        pipeline = RetrievalPipeline(provider, store, query_cache, crawler)

        with pytest.raises(ProviderError):
            await pipeline.add_documents(documents("python", "redis", "boom"))

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_wrong_embedding_count_is_provider_error(self, store, query_cache, crawler):
        pipeline = RetrievalPipeline(ShortChangingProvider(), store, query_cache, crawler)

        with pytest.raises(ProviderError):
            await pipeline.add_documents(documents("python", "redis"))

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, pipeline, store):
        store.insert_batch = AsyncMock(side_effect=StoreError("transaction rolled back", operation="insert_batch"))

        with pytest.raises(StoreError):
            await pipeline.add_documents(documents("python"))

    @pytest.mark.asyncio
    async def test_dimension_mismatch_rejected(self, provider, query_cache, crawler):
        pipeline = RetrievalPipeline(provider, InMemoryVectorStore(8), query_cache, crawler)

        with pytest.raises(StoreError):
            await pipeline.add_documents(documents("python"))


class TestIndexWebsite:

    @pytest.mark.asyncio
    async def test_crawl_and_index(self, pipeline, crawler, store):
        site = {
            "https://example.test/": html_page("Home", "Welcome to the python docs", ["/redis", "/blank"]),
            "https://example.test/redis": html_page("Redis", "Using redis as a cache"),
            "https://example.test/blank": "<html><body></body></html>",
        }
        crawler._fetch_html = AsyncMock(side_effect=site_fetcher(site))

        result = await pipeline.index_website("https://example.test/", CrawlBudget(max_depth=1, max_pages=10))

        assert result.page_count == 3
        assert len(result.document_ids) == 2
        assert await store.count() == 2

        answer = await pipeline.query("redis", QueryOptions(top_k=1, similarity_threshold=0.5))
        assert answer.citations == ["https://example.test/redis"]
        assert answer.results[0].document.metadata['title'] == "Redis"
        assert answer.results[0].document.content.startswith("Redis\n\n")

    @pytest.mark.asyncio
    async def test_invalid_seed(self, pipeline):
        with pytest.raises(InvalidSeed):
            await pipeline.index_website("example.test")


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_document(self, pipeline):
        ids = await pipeline.add_documents(documents("python", "redis"))

        assert await pipeline.delete_document(ids[0]) is True
        assert await pipeline.delete_document(ids[0]) is False
        assert await pipeline.document_count() == 1

    @pytest.mark.asyncio
    async def test_missing_document_logged(self, pipeline, caplog):
        with caplog.at_level(logging.WARNING, logger="pipelines.retrieval"):
            assert await pipeline.delete_document(404) is False

        record = caplog.records[-1]
        assert record.getMessage() == "Document not found for deletion"
        assert record.ctx_document_id == 404
