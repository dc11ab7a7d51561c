"""HTML extraction heuristics for crawled pages.

Pulls a title, descriptive metadata, the main text region and the outbound
links out of a fetched page. Content detection tries a fixed list of
selectors in priority order and accepts the first region with enough text.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

CONTENT_SELECTORS = [
    'article',
    'main',
    '.content',
    '.post-content',
    '#content',
    'body',
]

BOILERPLATE_TAGS = ['script', 'style', 'nav', 'footer', 'aside']

MIN_CONTENT_LENGTH = 100

_WHITESPACE = re.compile(r'\s+')


@dataclass
class ScrapedPage:
    """A fetched and extracted page, produced once per URL per crawl."""
    url: str
    title: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    outbound_links: List[str] = field(default_factory=list)
    depth: int = 0


def clean_text(text: str) -> str:
    return _WHITESPACE.sub(' ', text).strip()


def normalize_link(href: str, base_url: str) -> Optional[str]:
    """Resolve ``href`` against ``base_url``; None for non-http(s) or broken links."""
    href = href.strip()
    if not href:
        return None
    try:
        absolute_url = urljoin(base_url, href)
        parsed = urlparse(absolute_url)
    except ValueError:
        return None
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return None
    return urlunparse(parsed._replace(path=parsed.path or '/', fragment=''))


def extract_links(soup: BeautifulSoup, base_url: str) -> List[str]:
    """Absolute outbound links, de-duplicated in document order."""
    links = []
    seen = set()
    for anchor in soup.find_all('a', href=True):
        link = normalize_link(anchor['href'], base_url)
        if link and link not in seen:
            seen.add(link)
            links.append(link)
    return links


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find('meta', attrs=attrs)
    if tag and tag.get('content'):
        return tag['content'].strip() or None
    return None


def extract_metadata(soup: BeautifulSoup) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {}

    description = _meta_content(soup, name='description')
    if description:
        metadata['description'] = description

    keywords = _meta_content(soup, name='keywords')
    if keywords:
        metadata['keywords'] = [k.strip() for k in keywords.split(',') if k.strip()]

    author = _meta_content(soup, name='author')
    if author:
        metadata['author'] = author

    published = _meta_content(soup, property='article:published_time')
    if published:
        metadata['published_date'] = published

    return metadata


def extract_title(soup: BeautifulSoup) -> str:
    if soup.title:
        title = clean_text(soup.title.get_text())
        if title:
            return title
    heading = soup.find('h1')
    return clean_text(heading.get_text()) if heading else ''


def strip_boilerplate(soup: BeautifulSoup) -> None:
    for tag in soup(BOILERPLATE_TAGS):
        tag.decompose()


def extract_main_content(soup: BeautifulSoup, min_length: int = MIN_CONTENT_LENGTH) -> str:
    """First selector whose text exceeds ``min_length``; else the last non-empty candidate.

    Mutates ``soup``: boilerplate tags are removed first.
    """
    strip_boilerplate(soup)

    content = ''
    for selector in CONTENT_SELECTORS:
        elements = soup.select(selector)
        if not elements:
            continue
        text = clean_text(' '.join(element.get_text(' ') for element in elements))
        if text:
            content = text
        if len(text) > min_length:
            break

    if not content:
        # Fragments parsed without a <body>
        content = clean_text(soup.get_text(' '))

    return content


def extract_page(html: str, url: str, min_content_length: int = MIN_CONTENT_LENGTH) -> ScrapedPage:
    """Build a ScrapedPage from raw HTML."""
    soup = BeautifulSoup(html, 'html.parser')

    # Navigation and footer links are not followed
    strip_boilerplate(soup)

    title = extract_title(soup)
    metadata = extract_metadata(soup)
    links = extract_links(soup, url)
    content = extract_main_content(soup, min_content_length)

    return ScrapedPage(
        url=url,
        title=title,
        content=content,
        metadata=metadata,
        outbound_links=links
    )
