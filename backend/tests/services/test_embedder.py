"""
Tests for EmbeddingService.

This test module verifies:
1. Lazy, idempotent model loading
2. Batch embedding and blank-text handling
3. Device fallback
4. Shutdown

SentenceTransformer is patched, so no model is downloaded.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from harvester.services.processors.embedder import EmbeddingService


DIMENSION = 384


@pytest.fixture
def mock_model():
    """Fake SentenceTransformer returning one row per input text."""
    model = MagicMock()
    model.get_sentence_embedding_dimension.return_value = DIMENSION
    model.encode.side_effect = lambda texts, **kwargs: np.full(
        (len(texts), DIMENSION), 0.5, dtype=np.float32
    )
    return model


@pytest.fixture
def model_class(mock_model):
    with patch(
        "harvester.services.processors.embedder.SentenceTransformer",
        return_value=mock_model,
    ) as cls:
        yield cls


@pytest.mark.asyncio
class TestEmbeddingServiceLifecycle:
    """Test model loading and shutdown."""

    async def test_model_is_loaded_lazily(self, model_class):
        service = EmbeddingService(model_name="test-model", device="cpu")

        assert not service.is_initialized
        model_class.assert_not_called()

        await service.initialize()

        assert service.is_initialized
        model_class.assert_called_once_with("test-model", device="cpu")

    async def test_initialize_is_idempotent(self, model_class):
        service = EmbeddingService(device="cpu")

        await service.initialize()
        await service.initialize()

        assert model_class.call_count == 1

    async def test_dimension_before_and_after_loading(self, model_class):
        service = EmbeddingService(device="cpu")
        assert service.dimension == DIMENSION  # from settings

        await service.initialize()
        assert service.dimension == DIMENSION

    async def test_load_failure_propagates(self):
        with patch(
            "harvester.services.processors.embedder.SentenceTransformer",
            side_effect=OSError("model not found"),
        ):
            service = EmbeddingService(model_name="missing/model", device="cpu")

            with pytest.raises(OSError):
                await service.initialize()

        assert not service.is_initialized

    async def test_shutdown_allows_reinitialize(self, model_class):
        service = EmbeddingService(device="cpu")
        await service.initialize()

        await service.shutdown()
        assert not service.is_initialized
        assert service.model is None

        await service.initialize()
        assert model_class.call_count == 2

    async def test_cuda_falls_back_to_cpu(self):
        with patch(
            "harvester.services.processors.embedder.torch.cuda.is_available",
            return_value=False,
        ):
            service = EmbeddingService(device="cuda")

        assert service.device == "cpu"


@pytest.mark.asyncio
class TestEmbedding:
    """Test embedding generation."""

    async def test_requires_initialize(self, model_class):
        service = EmbeddingService(device="cpu")

        with pytest.raises(RuntimeError, match="not initialized"):
            await service.embed_batch(["text"])

    async def test_embed_batch(self, model_class, mock_model):
        service = EmbeddingService(batch_size=8, device="cpu")
        await service.initialize()

        vectors = await service.embed_batch(["first chunk", "second chunk"])

        assert len(vectors) == 2
        assert all(len(v) == DIMENSION for v in vectors)
        assert all(isinstance(x, float) for x in vectors[0])

        args, kwargs = mock_model.encode.call_args
        assert args[0] == ["first chunk", "second chunk"]
        assert kwargs["batch_size"] == 8
        assert kwargs["normalize_embeddings"] is True

    async def test_blank_texts_get_zero_vectors(self, model_class, mock_model):
        """Test blank texts skip the model and keep their position."""
        service = EmbeddingService(device="cpu")
        await service.initialize()

        vectors = await service.embed_batch(["", "real text", "   "])

        assert vectors[0] == [0.0] * DIMENSION
        assert vectors[2] == [0.0] * DIMENSION
        assert vectors[1][0] == pytest.approx(0.5)
        assert mock_model.encode.call_args.args[0] == ["real text"]

    async def test_only_blank_texts(self, model_class, mock_model):
        service = EmbeddingService(device="cpu")
        await service.initialize()

        vectors = await service.embed_batch(["", " "])

        assert vectors == [[0.0] * DIMENSION, [0.0] * DIMENSION]
        mock_model.encode.assert_not_called()

    async def test_empty_batch(self, model_class):
        service = EmbeddingService(device="cpu")
        await service.initialize()

        assert await service.embed_batch([]) == []

    async def test_embed_single(self, model_class):
        service = EmbeddingService(device="cpu")
        await service.initialize()

        vector = await service.embed("Show HN: a tiny Lisp")

        assert len(vector) == DIMENSION
