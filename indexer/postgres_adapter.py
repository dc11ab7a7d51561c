"""PostgreSQL vector store for ragcrawl.

Stores documents in ``rag.documents`` and their embeddings in
``rag.embeddings`` using pgvector. ``rag.embeddings.document_id`` references
``rag.documents(id) ON DELETE CASCADE``, so deleting a document drops its
embedding. The schema can be provisioned with ``initialize_schema``.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import asyncpg
import numpy as np
from pgvector.asyncpg import register_vector

from config.settings import PostgresConfig

from .errors import InvalidInput, StoreError
from .models import Document, SimilarityMatch
from .vector_store import DocumentRecord, VectorStore

logger = logging.getLogger(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

_SCHEMA_STATEMENTS = [
    "CREATE EXTENSION IF NOT EXISTS vector",
    "CREATE SCHEMA IF NOT EXISTS rag",
    """
    CREATE TABLE IF NOT EXISTS rag.documents (
        id SERIAL PRIMARY KEY,
        content TEXT NOT NULL,
        metadata JSONB DEFAULT '{{}}'::jsonb,
        source_url VARCHAR(2048),
        title VARCHAR(512),
        created_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rag.embeddings (
        id SERIAL PRIMARY KEY,
        document_id INTEGER NOT NULL REFERENCES rag.documents(id) ON DELETE CASCADE,
        embedding vector({dimensions}) NOT NULL,
        created_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS embeddings_document_id_idx ON rag.embeddings (document_id)",
    "CREATE INDEX IF NOT EXISTS documents_source_url_idx ON rag.documents (source_url)",
]

# pgvector cannot build hnsw or ivfflat indexes on vectors wider than this
HNSW_MAX_DIMENSIONS = 2000

_HNSW_INDEX_SQL = """
    CREATE INDEX IF NOT EXISTS embeddings_embedding_idx
    ON rag.embeddings USING hnsw (embedding vector_cosine_ops)
"""

_INSERT_DOCUMENT_SQL = """
    INSERT INTO rag.documents (content, metadata, source_url, title)
    VALUES ($1, $2::jsonb, $3, $4)
    RETURNING id
"""

_INSERT_EMBEDDING_SQL = """
    INSERT INTO rag.embeddings (document_id, embedding)
    VALUES ($1, $2)
"""

_NEAREST_SQL = """
    SELECT d.id, d.content, d.metadata, d.source_url, d.created_at,
           1 - (e.embedding <=> $1) AS similarity,
           e.embedding <=> $1 AS distance
    FROM rag.documents d
    JOIN rag.embeddings e ON d.id = e.document_id
    WHERE 1 - (e.embedding <=> $1) >= $2
    ORDER BY e.embedding <=> $1, d.id
    LIMIT $3
"""


def _row_to_document(row) -> Document:
    metadata = row['metadata']
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return Document(
        id=row['id'],
        content=row['content'],
        metadata=metadata or {},
        source_url=row['source_url'],
        created_at=row['created_at']
    )


class PostgresVectorStore(VectorStore):
    """pgvector-backed store. Construct with :meth:`connect`."""

    def __init__(self, pool: asyncpg.Pool, dimensions: int):
        super().__init__(dimensions)
        self.pool = pool

    @staticmethod
    async def initialize_schema(config: PostgresConfig, dimensions: int) -> None:
        """Create the pgvector extension, the ``rag`` schema and its tables.

        Runs on a dedicated connection because the pool registers the vector
        codec on connect, which needs the extension to exist already.
        """
        try:
            conn = await asyncpg.connect(
                host=config.host,
                port=config.port,
                database=config.database,
                user=config.user,
                password=config.password
            )
        except _DB_ERRORS as e:
            raise StoreError(str(e), operation="initialize_schema",
                             detail={'host': config.host, 'database': config.database}) from e

        try:
            async with conn.transaction():
                for statement in _SCHEMA_STATEMENTS:
                    await conn.execute(statement.format(dimensions=dimensions))
                if dimensions <= HNSW_MAX_DIMENSIONS:
                    await conn.execute(_HNSW_INDEX_SQL)
                else:
                    logger.warning(f"Skipping hnsw index: {dimensions} dimensions exceeds "
                                   f"{HNSW_MAX_DIMENSIONS}, searches will scan every embedding")
        except _DB_ERRORS as e:
            logger.error(f"Failed to initialize schema: {e}")
            raise StoreError(str(e), operation="initialize_schema") from e
        finally:
            await conn.close()

        logger.info(f"Schema ready (vector dimensions: {dimensions})")

    @classmethod
    async def connect(cls, config: PostgresConfig, dimensions: int) -> 'PostgresVectorStore':
        """Create the connection pool and return a ready store."""
        try:
            pool = await asyncpg.create_pool(
                host=config.host,
                port=config.port,
                database=config.database,
                user=config.user,
                password=config.password,
                min_size=config.min_connections,
                max_size=config.max_connections,
                command_timeout=config.command_timeout,
                init=register_vector
            )
        except _DB_ERRORS as e:
            logger.error(f"Failed to initialize PostgreSQL: {e}")
            raise StoreError(str(e), operation="connect",
                             detail={'host': config.host, 'database': config.database}) from e

        logger.info(f"PostgreSQL connection pool initialized ({config.host}:{config.port}/{config.database})")
        return cls(pool, dimensions)

    async def close(self) -> None:
        await self.pool.close()
        logger.info("PostgreSQL connection pool closed")

    def _prepare(self, content: str, embedding: Sequence[float], operation: str) -> np.ndarray:
        if not content or not content.strip():
            raise InvalidInput("Document content cannot be empty", operation=operation)
        self._check_dimensions(embedding, operation)
        return np.asarray(embedding, dtype=np.float32)

    @staticmethod
    async def _insert_one(conn, content: str, vector: np.ndarray,
                          metadata: Optional[Dict[str, Any]], source: Optional[str]) -> int:
        metadata = metadata or {}
        document_id = await conn.fetchval(
            _INSERT_DOCUMENT_SQL,
            content, json.dumps(metadata, default=str), source, metadata.get('title')
        )
        await conn.execute(_INSERT_EMBEDDING_SQL, document_id, vector)
        return document_id

    async def insert(self, content: str, embedding: Sequence[float],
                     metadata: Optional[Dict[str, Any]] = None,
                     source: Optional[str] = None) -> int:
        vector = self._prepare(content, embedding, "insert")
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    return await self._insert_one(conn, content, vector, metadata, source)
        except _DB_ERRORS as e:
            logger.error(f"Failed to insert document: {e}")
            raise StoreError(str(e), operation="insert", detail={'source': source}) from e

    async def insert_batch(self, records: List[DocumentRecord]) -> List[int]:
        prepared = [
            (content, self._prepare(content, embedding, "insert_batch"), metadata, source)
            for content, embedding, metadata, source in records
        ]
        if not prepared:
            return []

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    ids = []
                    for content, vector, metadata, source in prepared:
                        ids.append(await self._insert_one(conn, content, vector, metadata, source))
        except _DB_ERRORS as e:
            logger.error(f"Failed to batch insert {len(prepared)} documents: {e}")
            raise StoreError(str(e), operation="insert_batch",
                             detail={'batch_size': len(prepared)}) from e

        logger.info(f"Inserted {len(ids)} documents")
        return ids

    async def nearest_neighbors(self, embedding: Sequence[float], k: int,
                                min_similarity: float) -> List[SimilarityMatch]:
        self._check_dimensions(embedding, "nearest_neighbors")
        vector = np.asarray(embedding, dtype=np.float32)
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(_NEAREST_SQL, vector, min_similarity, k)
        except _DB_ERRORS as e:
            logger.error(f"Similarity search failed: {e}")
            raise StoreError(str(e), operation="nearest_neighbors", detail={'k': k}) from e

        return [
            SimilarityMatch(
                document=_row_to_document(row),
                similarity=float(row['similarity']),
                distance=float(row['distance'])
            )
            for row in rows
        ]

    async def get_document(self, document_id: int) -> Optional[Document]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT id, content, metadata, source_url, created_at
                    FROM rag.documents
                    WHERE id = $1
                    """,
                    document_id
                )
        except _DB_ERRORS as e:
            raise StoreError(str(e), operation="get_document", detail={'id': document_id}) from e

        return _row_to_document(row) if row else None

    async def delete(self, document_id: int) -> bool:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute("DELETE FROM rag.documents WHERE id = $1", document_id)
        except _DB_ERRORS as e:
            raise StoreError(str(e), operation="delete", detail={'id': document_id}) from e

        # asyncpg returns the command tag, e.g. "DELETE 1"
        return status.split()[-1] != "0"

    async def count(self) -> int:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM rag.documents")
        except _DB_ERRORS as e:
            raise StoreError(str(e), operation="count") from e
