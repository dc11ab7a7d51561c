"""Shared fixtures for the ragcrawl test suite."""

from typing import Dict, List, Optional

import pytest

from config.settings import RetrievalConfig
from indexer.embeddings import EmbeddingProvider
from indexer.errors import ProviderError, TransientFetchFailure
from indexer.memory_store import InMemoryVectorStore
from pipelines.cache import MemoryCache, QueryCache
from pipelines.crawler import WebCrawler
from pipelines.retrieval import RetrievalPipeline

KEYWORDS = ['python', 'redis', 'postgres', 'crawler']


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Deterministic provider: one dimension per keyword, counting occurrences."""

    def __init__(self, max_batch_size: int = 100, fail_on: Optional[str] = None):
        self.model_name = "keyword-test-model"
        self.dimensions = len(KEYWORDS)
        self.max_batch_size = max_batch_size
        self.fail_on = fail_on
        self.batches: List[List[str]] = []

    async def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        self.batches.append(list(texts))
        if self.fail_on and any(self.fail_on in text for text in texts):
            raise ProviderError("upstream refused", operation="embed")
        return [[text.lower().count(word) + 0.01 for word in KEYWORDS] for text in texts]

    @property
    def embedded_texts(self) -> List[str]:
        return [text for batch in self.batches for text in batch]


def html_page(title: str, body: str = "", links: Optional[List[str]] = None) -> str:
    anchors = "".join(f'<a href="{href}">link</a>' for href in (links or []))
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body><article><p>{body}</p></article>{anchors}</body></html>"
    )


def site_fetcher(pages: Dict[str, str]):
    """Replacement for ``WebCrawler._fetch_html`` serving a fixed site."""
    async def fetch(session, url):
        if url not in pages:
            raise TransientFetchFailure(url, "HTTP 404")
        return pages[url]
    return fetch


@pytest.fixture
def provider():
    return KeywordEmbeddingProvider()


@pytest.fixture
def store(provider):
    return InMemoryVectorStore(provider.dimensions)


@pytest.fixture
def query_cache():
    return QueryCache(MemoryCache(), ttl=3600)


class NullSession:
    """Stands in for the aiohttp session when fetches are mocked."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def offline_crawler(**kwargs) -> WebCrawler:
    crawler = WebCrawler(**kwargs)
    crawler._open_session = NullSession
    return crawler


@pytest.fixture
def crawler():
    return offline_crawler(request_delay=0)


@pytest.fixture
def pipeline(provider, store, query_cache, crawler):
    return RetrievalPipeline(
        provider,
        store,
        query_cache,
        crawler,
        RetrievalConfig(top_k=5, similarity_threshold=0.0)
    )
