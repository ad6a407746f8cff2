"""
Embedding Service

Sentence embeddings with sentence-transformers, run locally.

Model: sentence-transformers/all-MiniLM-L6-v2
- 384 dimensions
- Mean pooling, L2-normalized output (dot product == cosine similarity)
- Small enough to run on CPU inside a Celery worker

Features:
---------
- Lazy, lock-guarded model loading (one instance per process)
- Batched encoding off the event loop via asyncio.to_thread
- CPU/CUDA/MPS device selection with CPU fallback
- Zero vectors for blank input instead of model calls
- Explicit shutdown that frees the model and the CUDA cache

The model is loaded lazily by ``initialize()``. Loading is guarded by a lock,
so concurrent or repeated calls share the same model instance. The service
is built once per process by the pipeline and injected where needed.
"""

import asyncio
import logging
import threading
from typing import Optional

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from harvester.core.config import settings


logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Service for generating embeddings using sentence-transformers.

    Every chunk of every granularity (document, paragraph, sentence) goes
    through the same model, so vectors from different granularities live in
    one 384-dimensional space and can be compared directly.

    Features:
    ---------
    - Batch processing (default from EMBEDDING_BATCH_SIZE)
    - Device selection (CPU/CUDA/MPS)
    - Normalization for cosine similarity
    - Async operation

    Usage:
    ------
    embedder = EmbeddingService()
    await embedder.initialize()

    vector = await embedder.embed("Show HN: a tiny Lisp")
    vectors = await embedder.embed_batch(["first chunk", "second chunk"])
    """

    def __init__(
        self,
        model_name: str = None,
        batch_size: int = None,
        device: str = None,
        normalize: bool = True
    ):
        """
        Initialize the embedding service (the model is not loaded yet).

        Args:
            model_name: Model name/path (default from settings)
            batch_size: Batch size for encode() (default from settings)
            device: cpu, cuda or mps (default from settings)
            normalize: L2-normalize vectors (default True)
        """
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self.device = device or settings.EMBEDDING_DEVICE
        self.normalize = normalize

        self.model: Optional[SentenceTransformer] = None
        self._initialized = False
        self._load_lock = threading.Lock()

        self._validate_device()

    def _validate_device(self) -> None:
        """Validate and adjust device setting based on availability."""
        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA not available, falling back to CPU")
            self.device = "cpu"
        elif self.device == "mps" and not torch.backends.mps.is_available():
            logger.warning("MPS not available, falling back to CPU")
            self.device = "cpu"

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Load the model. Idempotent.

        Downloads the model on first use, then reads it from the local
        sentence-transformers cache.
        """
        if self._initialized:
            return

        await asyncio.to_thread(self._load_model)

    def _load_model(self) -> None:
        with self._load_lock:
            if self._initialized:
                return

            logger.info(f"Loading embedding model: {self.model_name} on {self.device}")
            try:
                self.model = SentenceTransformer(self.model_name, device=self.device)
            except Exception as e:
                logger.error(f"Failed to load embedding model: {e}")
                raise

            self._initialized = True
            logger.info(
                f"Embedding model loaded. Dimension: {self.dimension}, Device: {self.device}"
            )

    @property
    def dimension(self) -> int:
        """
        Embedding dimension.

        Falls back to the configured dimension before the model is loaded.
        """
        if self.model is None:
            return settings.EMBEDDING_DIMENSION
        return self.model.get_sentence_embedding_dimension()

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            RuntimeError: If initialize() has not been awaited
        """
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed many texts in batches of ``batch_size``.

        Blank texts get a zero vector instead of going through the model.

        Returns:
            One vector per input text, in order
        """
        if not self._initialized:
            raise RuntimeError("Embedding service not initialized. Call initialize() first.")

        if not texts:
            return []

        valid = [(i, text) for i, text in enumerate(texts) if text and text.strip()]
        zero = [0.0] * self.dimension
        result = [list(zero) for _ in texts]

        if not valid:
            logger.warning("Only empty texts provided for embedding")
            return result

        embeddings = await asyncio.to_thread(
            self._encode,
            [text for _, text in valid],
        )

        for (position, _), vector in zip(valid, embeddings):
            result[position] = vector.tolist()

        return result

    def _encode(self, texts: list[str]) -> np.ndarray:
        """Run the model (sync, executed in a worker thread)."""
        return self.model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
            convert_to_numpy=True,
        )

    async def shutdown(self) -> None:
        """Free the model. initialize() may be called again afterwards."""
        with self._load_lock:
            if self.model is not None:
                if self.device == "cuda":
                    torch.cuda.empty_cache()
                del self.model
                self.model = None

            self._initialized = False

        logger.info("Embedding service shut down")
