"""Retrieval pipeline for ragcrawl.

Query path: embed the question, look up the nearest stored documents and
assemble a numbered context block with citations, with a cache in front.
Ingest path: validate, embed in provider-sized chunks and write everything
in one store transaction, so a batch is stored completely or not at all.
"""

import logging
from typing import List, Optional, Sequence

from config.settings import RetrievalConfig
from indexer.embeddings import EmbeddingProvider
from indexer.errors import InvalidInput, InvalidQuery, ProviderError
from indexer.models import (
    DocumentInput,
    IndexResult,
    QueryOptions,
    RetrievalMetadata,
    RetrievalResult,
    SimilarityMatch
)
from indexer.vector_store import DocumentRecord, VectorStore
from observability.logging import get_structured_logger, log_performance

from .cache import QueryCache
from .crawler import CrawlBudget, ScopeFilters, WebCrawler, pages_to_documents

logger = logging.getLogger(__name__)

NO_CONTEXT = "No relevant context found."


def build_context(matches: Sequence[SimilarityMatch]) -> str:
    """Numbered context block, one entry per match in rank order."""
    if not matches:
        return NO_CONTEXT

    entries = []
    for index, match in enumerate(matches, start=1):
        source = match.document.source_url
        suffix = f" [Source: {source}]" if source else ""
        entries.append(f"[{index}] {match.document.content}{suffix}")
    return "\n\n".join(entries)


def extract_citations(matches: Sequence[SimilarityMatch]) -> List[str]:
    """Distinct source URLs in first-seen order."""
    citations: List[str] = []
    for match in matches:
        source = match.document.source_url
        if source and source not in citations:
            citations.append(source)
    return citations


def average_similarity(matches: Sequence[SimilarityMatch]) -> float:
    if not matches:
        return 0.0
    return sum(match.similarity for match in matches) / len(matches)


def strip_metadata(result: RetrievalResult) -> RetrievalResult:
    """Copy of ``result`` whose documents carry no metadata."""
    results = [
        match.model_copy(update={'document': match.document.model_copy(update={'metadata': {}})})
        for match in result.results
    ]
    return result.model_copy(update={'results': results})


class RetrievalPipeline:
    """Answers queries against the vector store and ingests new documents."""

    def __init__(self,
                 provider: EmbeddingProvider,
                 store: VectorStore,
                 cache: QueryCache,
                 crawler: Optional[WebCrawler] = None,
                 config: Optional[RetrievalConfig] = None):
        self.provider = provider
        self.store = store
        self.cache = cache
        self.crawler = crawler or WebCrawler()
        self.config = config or RetrievalConfig()
        self.log = get_structured_logger(__name__, component="retrieval",
                                         embedding_model=provider.model_name)

    def default_options(self) -> QueryOptions:
        return QueryOptions(
            top_k=self.config.top_k,
            similarity_threshold=self.config.similarity_threshold
        )

    @log_performance(threshold_ms=2000.0)
    async def query(self, text: str, options: Optional[QueryOptions] = None) -> RetrievalResult:
        """Retrieve the documents most similar to ``text``.

        Args:
            text: Natural-language query
            options: top_k, similarity threshold and metadata inclusion

        Returns:
            RetrievalResult with ranked matches, context and citations

        Raises:
            InvalidQuery: ``text`` is empty or whitespace
            ProviderError: the query could not be embedded
            StoreError: the similarity search failed
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidQuery("Query text cannot be empty", operation="query", detail=text)
        options = options or self.default_options()

        cache_key = self.cache.key_for(text, options.top_k, options.similarity_threshold)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            self.log.info("Cache hit for query", cache_key=cache_key)
            return cached if options.include_metadata else strip_metadata(cached)

        embedding = await self.provider.embed(text)
        matches = await self.store.nearest_neighbors(
            embedding,
            options.top_k,
            options.similarity_threshold
        )

        result = RetrievalResult(
            query=text,
            results=matches,
            context=build_context(matches),
            citations=extract_citations(matches),
            metadata=RetrievalMetadata(
                total_results=len(matches),
                average_similarity=average_similarity(matches),
                query_embedding_dimensions=len(embedding)
            )
        )

        # Full result is cached; metadata stripping is applied per caller
        await self.cache.set(cache_key, result)

        self.log.info(
            "Query answered",
            total_results=result.metadata.total_results,
            average_similarity=round(result.metadata.average_similarity, 4),
            top_k=options.top_k
        )
        return result if options.include_metadata else strip_metadata(result)

    def _validate_document(self, document: DocumentInput, operation: str,
                           index: Optional[int] = None) -> None:
        if not isinstance(document, DocumentInput):
            raise InvalidInput(f"Expected DocumentInput, got {type(document).__name__}",
                               operation=operation, detail={'index': index})
        if not document.content or not document.content.strip():
            raise InvalidInput("Document content cannot be empty",
                               operation=operation, detail={'index': index, 'source': document.source})

    async def add_document(self, document: DocumentInput) -> int:
        """Embed and store a single document, returning its id."""
        self._validate_document(document, "add_document")

        embedding = await self.provider.embed(document.content)
        document_id = await self.store.insert(
            document.content,
            embedding,
            document.metadata,
            document.source
        )

        self.log.info("Document added", document_id=document_id, source=document.source)
        return document_id

    async def _embed_in_chunks(self, texts: List[str]) -> List[List[float]]:
        chunk_size = self.provider.max_batch_size
        embeddings: List[List[float]] = []
        for start in range(0, len(texts), chunk_size):
            chunk = texts[start:start + chunk_size]
            vectors = await self.provider.embed_batch(chunk)
            if len(vectors) != len(chunk):
                raise ProviderError(
                    f"Provider returned {len(vectors)} embeddings for {len(chunk)} texts",
                    operation="add_documents",
                    detail={'offset': start}
                )
            embeddings.extend(vectors)
        return embeddings

    async def add_documents(self, documents: List[DocumentInput]) -> List[int]:
        """Embed and store a batch atomically. Returned ids follow input order."""
        if not documents:
            return []

        for index, document in enumerate(documents):
            self._validate_document(document, "add_documents", index)

        logger.info(f"Generating embeddings for {len(documents)} documents...")
        embeddings = await self._embed_in_chunks([document.content for document in documents])

        records: List[DocumentRecord] = [
            (document.content, embedding, document.metadata, document.source)
            for document, embedding in zip(documents, embeddings)
        ]
        document_ids = await self.store.insert_batch(records)

        self.log.info("Documents added", count=len(document_ids))
        return document_ids

    @log_performance(threshold_ms=60000.0)
    async def index_website(self, url: str,
                            budget: Optional[CrawlBudget] = None,
                            filters: Optional[ScopeFilters] = None) -> IndexResult:
        """Crawl a site and ingest every page that yielded text."""
        pages = await self.crawler.crawl(url, budget, filters)

        documents = pages_to_documents(pages)
        logger.info(f"Indexing {len(documents)} documents from {len(pages)} pages")
        document_ids = await self.add_documents(documents)

        self.log.info("Website indexed", url=url, pages=len(pages), documents=len(document_ids))
        return IndexResult(document_ids=document_ids, page_count=len(pages))

    async def delete_document(self, document_id: int) -> bool:
        deleted = await self.store.delete(document_id)
        if deleted:
            self.log.info("Document deleted", document_id=document_id)
        else:
            self.log.warning("Document not found for deletion", document_id=document_id)
        return deleted

    async def document_count(self) -> int:
        return await self.store.count()

    def get_status(self) -> dict:
        """Provider, store and cache summary."""
        return {
            'embedding': self.provider.info(),
            'vector_store': type(self.store).__name__,
            'dimensions': self.store.dimensions,
            'cache': self.cache.stats.to_dict()
        }
