"""Web crawler pipeline for ragcrawl.

Breadth-first, single-worker crawl of one website. Every invocation owns its
queue, visited set and HTTP session, so independent crawls can run
concurrently. Politeness is a fixed pause after every fetch attempt.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Deque, List, Optional, Set, Tuple
from urllib.parse import urlparse

import aiohttp

from config.settings import CrawlerConfig
from indexer.errors import InvalidInput, InvalidSeed, TransientFetchFailure
from indexer.models import DocumentInput

from .extraction import MIN_CONTENT_LENGTH, ScrapedPage, extract_page, normalize_link

logger = logging.getLogger(__name__)

TEXT_CONTENT_TYPES = ('text/', 'application/xhtml+xml')


@dataclass(frozen=True)
class CrawlTask:
    """A pending URL and its link distance from the seed."""
    url: str
    depth: int


@dataclass(frozen=True)
class CrawlBudget:
    """Caller-supplied ceilings the crawl never exceeds."""
    max_depth: int = 2
    max_pages: int = 50

    def __post_init__(self):
        if self.max_depth < 0:
            raise InvalidInput(f"max_depth must be >= 0, got {self.max_depth}",
                               operation="crawl", detail={'max_depth': self.max_depth})
        if self.max_pages <= 0:
            raise InvalidInput(f"max_pages must be > 0, got {self.max_pages}",
                               operation="crawl", detail={'max_pages': self.max_pages})


@dataclass
class ScopeFilters:
    """Substring filters applied to every candidate URL."""
    include_paths: List[str] = field(default_factory=list)
    exclude_paths: List[str] = field(default_factory=list)

    def allows(self, url: str) -> bool:
        if any(pattern in url for pattern in self.exclude_paths):
            return False
        if self.include_paths and not any(pattern in url for pattern in self.include_paths):
            return False
        return True


@dataclass
class CrawlStats:
    """Statistics for a crawl session."""
    total_urls: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def __post_init__(self):
        if self.start_time is None:
            self.start_time = datetime.now(timezone.utc)

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        return None

    def finish(self):
        """Mark crawl as finished."""
        self.end_time = datetime.now(timezone.utc)


def validate_seed_url(url: str) -> str:
    """Return the seed's hostname, or raise InvalidSeed."""
    if not url or not isinstance(url, str):
        raise InvalidSeed("Seed URL cannot be empty", operation="crawl", detail=url)
    try:
        parsed = urlparse(url.strip())
        hostname = parsed.hostname
    except ValueError as e:
        raise InvalidSeed(f"Malformed seed URL: {e}", operation="crawl", detail=url) from e
    if parsed.scheme not in ('http', 'https'):
        raise InvalidSeed(f"Seed URL must use http or https, got {parsed.scheme or 'none'!r}",
                          operation="crawl", detail=url)
    if not hostname:
        raise InvalidSeed("Seed URL has no host", operation="crawl", detail=url)
    return hostname


class WebCrawler:
    """Polite breadth-first crawler."""

    def __init__(self,
                 request_timeout: float = 10.0,
                 request_delay: float = 1.0,
                 user_agent: str = "ragcrawl/1.0",
                 min_content_length: int = MIN_CONTENT_LENGTH):
        """Initialize crawler.

        Args:
            request_timeout: Per-request timeout in seconds
            request_delay: Pause after every fetch attempt (seconds)
            user_agent: User agent string
            min_content_length: Text length a content region must exceed to be accepted
        """
        self.request_timeout = request_timeout
        self.request_delay = request_delay
        self.user_agent = user_agent
        self.min_content_length = min_content_length

    @classmethod
    def from_config(cls, config: CrawlerConfig) -> 'WebCrawler':
        return cls(
            request_timeout=config.request_timeout,
            request_delay=config.request_delay,
            user_agent=config.user_agent,
            min_content_length=config.min_content_length
        )

    def _open_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            headers={'User-Agent': self.user_agent}
        )

    async def _respect_rate_limit(self):
        if self.request_delay > 0:
            await asyncio.sleep(self.request_delay)

    async def _fetch_html(self, session: aiohttp.ClientSession, url: str) -> str:
        """Fetch a page body. Raises TransientFetchFailure on any failure."""
        try:
            async with session.get(url, allow_redirects=True) as response:
                if response.status >= 400:
                    raise TransientFetchFailure(url, f"HTTP {response.status}")

                content_type = response.headers.get('content-type', '').lower()
                if not content_type.startswith(TEXT_CONTENT_TYPES):
                    raise TransientFetchFailure(url, f"Non-text content type: {content_type}")

                return await response.text(errors='replace')

        except asyncio.TimeoutError as e:
            raise TransientFetchFailure(url, f"Timed out after {self.request_timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransientFetchFailure(url, f"Client error: {e}") from e

    async def _scrape(self, session: aiohttp.ClientSession, task: CrawlTask) -> ScrapedPage:
        html = await self._fetch_html(session, task.url)
        try:
            page = extract_page(html, task.url, self.min_content_length)
        except Exception as e:
            raise TransientFetchFailure(task.url, f"Extraction failed: {e}") from e
        page.depth = task.depth
        return page

    async def crawl_with_stats(self, seed_url: str,
                               budget: Optional[CrawlBudget] = None,
                               filters: Optional[ScopeFilters] = None) -> Tuple[List[ScrapedPage], CrawlStats]:
        """Crawl a website breadth-first from ``seed_url``.

        Args:
            seed_url: Absolute http(s) URL to start from
            budget: Depth and page ceilings
            filters: Include/exclude substring filters

        Returns:
            Tuple of (pages, stats)
        """
        seed_host = validate_seed_url(seed_url)
        # Same form as discovered links so a link back to the seed is a revisit
        seed_url = normalize_link(seed_url, seed_url) or seed_url
        budget = budget or CrawlBudget()
        filters = filters or ScopeFilters()

        stats = CrawlStats()
        pages: List[ScrapedPage] = []
        visited: Set[str] = set()
        queue: Deque[CrawlTask] = deque([CrawlTask(seed_url, 0)])

        logger.info(f"Starting crawl of {seed_url} "
                    f"(max_depth={budget.max_depth}, max_pages={budget.max_pages})")

        async with self._open_session() as session:
            while queue and len(pages) < budget.max_pages:
                task = queue.popleft()

                if task.url in visited or task.depth > budget.max_depth:
                    continue

                if not filters.allows(task.url):
                    stats.skipped += 1
                    continue

                # Marked before fetching so rediscovery during a slow fetch is a no-op
                visited.add(task.url)
                stats.total_urls += 1

                try:
                    page = await self._scrape(session, task)
                except TransientFetchFailure as e:
                    logger.warning(f"Failed to scrape {task.url}: {e.message}")
                    stats.failed += 1
                    page = None
                finally:
                    await self._respect_rate_limit()

                if page is None:
                    continue

                pages.append(page)
                stats.successful += 1

                if task.depth < budget.max_depth:
                    for link in page.outbound_links:
                        if link not in visited and urlparse(link).hostname == seed_host:
                            queue.append(CrawlTask(link, task.depth + 1))

        stats.finish()
        logger.info(f"Crawled {stats.successful} pages from {seed_url}: "
                    f"{stats.failed} failed, {stats.skipped} filtered out of {stats.total_urls} visited")

        return pages, stats

    async def crawl(self, seed_url: str,
                    budget: Optional[CrawlBudget] = None,
                    filters: Optional[ScopeFilters] = None) -> List[ScrapedPage]:
        """Crawl a website and return the emitted pages in BFS order."""
        pages, _ = await self.crawl_with_stats(seed_url, budget, filters)
        return pages


def pages_to_documents(pages: List[ScrapedPage]) -> List[DocumentInput]:
    """Convert scraped pages to documents ready for ingestion."""
    documents = []
    for page in pages:
        if not page.title and not page.content:
            logger.info(f"Skipping {page.url}: no extractable text")
            continue
        documents.append(DocumentInput(
            content=f"{page.title}\n\n{page.content}",
            metadata={'title': page.title, 'url': page.url, **page.metadata},
            source=page.url
        ))
    return documents


def crawl_sync(seed_url: str,
                       budget: Optional[CrawlBudget] = None,
                       filters: Optional[ScopeFilters] = None,
                       config: Optional[CrawlerConfig] = None) -> List[ScrapedPage]:
    """Synchronous wrapper around :meth:`WebCrawler.crawl`."""
    crawler = WebCrawler.from_config(config or CrawlerConfig())
    return asyncio.run(crawler.crawl(seed_url, budget, filters))
