"""Pipelines package for ragcrawl.

Provides crawling, content extraction, the query cache and the retrieval
pipeline. ``pipelines.retrieval`` and ``pipelines.bootstrap`` load the
embedding backends and are imported explicitly.
"""

from .crawler import (
    CrawlBudget,
    CrawlStats,
    CrawlTask,
    ScopeFilters,
    WebCrawler,
    crawl_sync,
    pages_to_documents,
    validate_seed_url
)
from .extraction import ScrapedPage, extract_page
from .cache import CacheKey, CacheStats, MemoryCache, NullCache, QueryCache, RedisCache, create_query_cache

__all__ = [
    # Crawler
    'WebCrawler',
    'CrawlBudget',
    'CrawlStats',
    'CrawlTask',
    'ScopeFilters',
    'crawl_sync',
    'pages_to_documents',
    'validate_seed_url',

    # Extraction
    'ScrapedPage',
    'extract_page',

    # Cache
    'CacheKey',
    'CacheStats',
    'QueryCache',
    'MemoryCache',
    'RedisCache',
    'NullCache',
    'create_query_cache'
]
