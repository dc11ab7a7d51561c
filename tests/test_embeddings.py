"""Unit tests for the embedding providers.

The sentence-transformers model and the OpenAI client are mocked; no model
is downloaded and no network call is made.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import numpy as np
import pytest
from openai import OpenAIError

from config.settings import EmbeddingConfig, EmbeddingProviderType
from indexer.embeddings import (
    LocalEmbeddingProvider,
    OpenAIEmbeddingProvider,
    create_embedding_provider
)
from indexer.errors import EmptyInput, InvalidInput, ProviderError


@pytest.fixture
def mock_sentence_transformer():
    """Mock SentenceTransformer returning one 3-dim row per input."""
    mock_model = Mock()
    mock_model.get_sentence_embedding_dimension.return_value = 3
    mock_model.encode.side_effect = lambda texts, **kwargs: np.array(
        [[float(len(text)), 0.5, 0.25] for text in texts], dtype=np.float32
    )
    return mock_model


@pytest.fixture
def local_provider(mock_sentence_transformer):
    with patch('indexer.embeddings.SentenceTransformer', return_value=mock_sentence_transformer):
        return LocalEmbeddingProvider(model_name='test-model', max_batch_size=4)


def openai_response(vectors_by_index):
    return SimpleNamespace(data=[
        SimpleNamespace(index=index, embedding=vector) for index, vector in vectors_by_index
    ])


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.embeddings.create = AsyncMock()
    client.close = AsyncMock()
    return client


class TestLocalEmbeddingProvider:

    def test_initialization_default_model(self):
        with patch('indexer.embeddings.SentenceTransformer') as mock_st:
            mock_st.return_value.get_sentence_embedding_dimension.return_value = 384
            provider = LocalEmbeddingProvider()

        mock_st.assert_called_once_with('sentence-transformers/all-MiniLM-L6-v2')
        assert provider.dimensions == 384
        assert provider.max_batch_size == 100

    def test_initialization_with_cache_dir(self, tmp_path):
        with patch('indexer.embeddings.SentenceTransformer') as mock_st:
            LocalEmbeddingProvider(model_name='custom-model', cache_dir=str(tmp_path))

        mock_st.assert_called_once_with('custom-model', cache_folder=str(tmp_path))

    def test_model_load_failure(self):
        with patch('indexer.embeddings.SentenceTransformer', side_effect=OSError("no such model")):
            with pytest.raises(ProviderError, match="no such model"):
                LocalEmbeddingProvider(model_name='missing-model')

    @pytest.mark.asyncio
    async def test_embed_single(self, local_provider, mock_sentence_transformer):
        vector = await local_provider.embed("hello")

        assert vector == pytest.approx([5.0, 0.5, 0.25])
        assert isinstance(vector, list)
        kwargs = mock_sentence_transformer.encode.call_args.kwargs
        assert kwargs['normalize_embeddings'] is True
        assert kwargs['show_progress_bar'] is False

    @pytest.mark.asyncio
    async def test_embed_batch_preserves_order(self, local_provider):
        vectors = await local_provider.embed_batch(["a", "abc", "ab"])
        assert [vector[0] for vector in vectors] == [1.0, 3.0, 2.0]

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, local_provider, mock_sentence_transformer):
        with pytest.raises(EmptyInput):
            await local_provider.embed("   ")
        mock_sentence_transformer.encode.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_batch_member_reports_index(self, local_provider):
        with pytest.raises(EmptyInput) as exc_info:
            await local_provider.embed_batch(["fine", ""])
        assert exc_info.value.detail == {'index': 1}

    @pytest.mark.asyncio
    async def test_empty_batch(self, local_provider, mock_sentence_transformer):
        assert await local_provider.embed_batch([]) == []
        mock_sentence_transformer.encode.assert_not_called()

    @pytest.mark.asyncio
    async def test_batch_over_ceiling(self, local_provider):
        with pytest.raises(InvalidInput, match="exceeds"):
            await local_provider.embed_batch(["x"] * 5)

    @pytest.mark.asyncio
    async def test_encode_failure(self, local_provider, mock_sentence_transformer):
        mock_sentence_transformer.encode.side_effect = RuntimeError("CUDA out of memory")
        with pytest.raises(ProviderError, match="CUDA"):
            await local_provider.embed("hello")

    def test_info(self, local_provider):
        assert local_provider.info() == {
            'provider': 'LocalEmbeddingProvider',
            'model': 'test-model',
            'dimensions': 3,
            'max_batch_size': 4
        }


class TestOpenAIEmbeddingProvider:

    @pytest.mark.asyncio
    async def test_results_ordered_by_index(self, openai_client):
        openai_client.embeddings.create.return_value = openai_response([(1, [0.0, 1.0]), (0, [1.0, 0.0])])
        provider = OpenAIEmbeddingProvider("sk-test", client=openai_client)

        vectors = await provider.embed_batch(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        openai_client.embeddings.create.assert_awaited_once_with(
            model="text-embedding-3-small",
            input=["first", "second"],
            encoding_format="float"
        )

    def test_model_dimensions(self, openai_client):
        assert OpenAIEmbeddingProvider("sk", "text-embedding-3-small", client=openai_client).dimensions == 1536
        assert OpenAIEmbeddingProvider("sk", "text-embedding-3-large", client=openai_client).dimensions == 3072
        assert OpenAIEmbeddingProvider("sk", "text-embedding-ada-002", client=openai_client).dimensions == 1536
        assert OpenAIEmbeddingProvider("sk", client=openai_client).max_batch_size == 2048

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self, openai_client):
        openai_client.embeddings.create.side_effect = OpenAIError("rate limited")
        provider = OpenAIEmbeddingProvider("sk-test", client=openai_client)

        with pytest.raises(ProviderError, match="rate limited"):
            await provider.embed("hello")

    @pytest.mark.asyncio
    async def test_count_mismatch(self, openai_client):
        openai_client.embeddings.create.return_value = openai_response([(0, [1.0, 0.0])])
        provider = OpenAIEmbeddingProvider("sk-test", client=openai_client)

        with pytest.raises(ProviderError, match="returned 1 embeddings for 2 texts"):
            await provider.embed_batch(["a", "b"])

    def test_api_key_required(self):
        with pytest.raises(InvalidInput):
            OpenAIEmbeddingProvider("")

    @pytest.mark.asyncio
    async def test_close(self, openai_client):
        provider = OpenAIEmbeddingProvider("sk-test", client=openai_client)
        await provider.close()
        openai_client.close.assert_awaited_once()


class TestProviderFactory:

    def test_local_selected(self, mock_sentence_transformer):
        with patch('indexer.embeddings.SentenceTransformer', return_value=mock_sentence_transformer):
            provider = create_embedding_provider(EmbeddingConfig())
        assert isinstance(provider, LocalEmbeddingProvider)

    def test_openai_selected(self):
        config = EmbeddingConfig(provider=EmbeddingProviderType.OPENAI, openai_api_key="sk-test",
                                 openai_model="text-embedding-3-large")
        with patch('indexer.embeddings.AsyncOpenAI') as mock_client:
            provider = create_embedding_provider(config)

        mock_client.assert_called_once_with(api_key="sk-test")
        assert isinstance(provider, OpenAIEmbeddingProvider)
        assert provider.dimensions == 3072
