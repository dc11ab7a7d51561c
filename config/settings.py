"""Configuration models for ragcrawl.

Every section is a pydantic model with a ``from_env`` constructor reading the
environment variables documented on each field.
"""

import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class PostgresConfig(BaseModel):
    """PostgreSQL connection configuration."""
    host: str = "localhost"
    port: int = 5432
    database: str = "rag"
    user: str = "rag"
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10
    command_timeout: int = 60

    @classmethod
    def from_env(cls) -> 'PostgresConfig':
        return cls(
            host=os.getenv('POSTGRES_HOST', 'localhost'),
            port=int(os.getenv('POSTGRES_PORT', '5432')),
            database=os.getenv('POSTGRES_DB', 'rag'),
            user=os.getenv('POSTGRES_USER', 'rag'),
            password=os.getenv('POSTGRES_PASSWORD', ''),
            min_connections=int(os.getenv('POSTGRES_MIN_CONNECTIONS', '2')),
            max_connections=int(os.getenv('POSTGRES_MAX_CONNECTIONS', '10')),
            command_timeout=int(os.getenv('POSTGRES_COMMAND_TIMEOUT', '60'))
        )


class CacheConfig(BaseModel):
    """Redis query cache configuration."""
    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    db: int = Field(default=1, ge=0, description="Redis logical database")
    password: Optional[str] = Field(default=None, description="Redis password")
    ttl: int = Field(default=3600, gt=0, description="Query result TTL in seconds")
    key_prefix: str = Field(default="rag", description="Prefix for every cache key")
    key_includes_threshold: bool = Field(
        default=False,
        description="Fold the similarity threshold into the query cache key"
    )
    enable_memory_fallback: bool = Field(
        default=False,
        description="Use a process-local cache when Redis is unreachable"
    )
    socket_timeout: float = Field(default=5.0, gt=0, description="Redis socket timeout")

    @classmethod
    def from_env(cls) -> 'CacheConfig':
        return cls(
            host=os.getenv('REDIS_HOST', 'localhost'),
            port=int(os.getenv('REDIS_PORT', '6379')),
            db=int(os.getenv('REDIS_DB', '1')),
            password=os.getenv('REDIS_PASSWORD') or None,
            ttl=int(os.getenv('CACHE_TTL', '3600')),
            key_prefix=os.getenv('CACHE_KEY_PREFIX', 'rag'),
            key_includes_threshold=_env_bool('CACHE_KEY_INCLUDES_THRESHOLD', False),
            enable_memory_fallback=_env_bool('CACHE_MEMORY_FALLBACK', False)
        )


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""
    LOCAL = "local"
    OPENAI = "openai"


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""
    provider: EmbeddingProviderType = Field(default=EmbeddingProviderType.LOCAL,
                                            description="Embedding provider")
    model_name: str = Field(default="sentence-transformers/all-MiniLM-L6-v2",
                            description="Local sentence-transformers model")
    cache_dir: Optional[str] = Field(default=None, description="Local model cache directory")
    max_batch_size: int = Field(default=100, gt=0, description="Texts per local encode call")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="text-embedding-3-small", description="OpenAI embedding model")

    @model_validator(mode='after')
    def _require_openai_key(self) -> 'EmbeddingConfig':
        if self.provider == EmbeddingProviderType.OPENAI and not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required when EMBEDDING_PROVIDER is 'openai'")
        return self

    @classmethod
    def from_env(cls) -> 'EmbeddingConfig':
        return cls(
            provider=os.getenv('EMBEDDING_PROVIDER', 'local').lower(),
            model_name=os.getenv('EMBEDDING_MODEL', 'sentence-transformers/all-MiniLM-L6-v2'),
            cache_dir=os.getenv('MODEL_CACHE_DIR') or None,
            max_batch_size=int(os.getenv('MAX_BATCH_SIZE', '100')),
            openai_api_key=os.getenv('OPENAI_API_KEY') or None,
            openai_model=os.getenv('OPENAI_EMBEDDING_MODEL', 'text-embedding-3-small')
        )


class CrawlerConfig(BaseModel):
    """Crawl politeness and extraction settings."""
    request_timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    request_delay: float = Field(default=1.0, ge=0, description="Pause after every fetch attempt")
    user_agent: str = Field(default="ragcrawl/1.0", description="User-Agent header")
    min_content_length: int = Field(default=100, ge=0,
                                    description="Minimum text length for a content region")

    @classmethod
    def from_env(cls) -> 'CrawlerConfig':
        return cls(
            request_timeout=float(os.getenv('CRAWL_REQUEST_TIMEOUT', '10')),
            request_delay=float(os.getenv('CRAWL_REQUEST_DELAY', '1.0')),
            user_agent=os.getenv('CRAWL_USER_AGENT', 'ragcrawl/1.0'),
            min_content_length=int(os.getenv('CRAWL_MIN_CONTENT_LENGTH', '100'))
        )


class RetrievalConfig(BaseModel):
    """Default query options."""
    top_k: int = Field(default=5, gt=0, description="Default number of matches")
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0,
                                        description="Default minimum similarity")

    @classmethod
    def from_env(cls) -> 'RetrievalConfig':
        return cls(
            top_k=int(os.getenv('SIMILARITY_SEARCH_K', '5')),
            similarity_threshold=float(os.getenv('SIMILARITY_THRESHOLD', '0.7'))
        )


class VectorStoreType(str, Enum):
    """Supported vector stores."""
    POSTGRES = "postgres"
    MEMORY = "memory"


class AppConfig(BaseModel):
    """Top-level configuration."""
    vector_store: VectorStoreType = Field(default=VectorStoreType.POSTGRES,
                                          description="Vector store backend")
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        return cls(
            vector_store=os.getenv('VECTOR_STORE', 'postgres').lower(),
            postgres=PostgresConfig.from_env(),
            cache=CacheConfig.from_env(),
            embedding=EmbeddingConfig.from_env(),
            crawler=CrawlerConfig.from_env(),
            retrieval=RetrievalConfig.from_env(),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            log_json=_env_bool('LOG_JSON', False)
        )
