from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol

from loguru import logger

from lightbrowser.config import settings
from lightbrowser.core.errors import embedding_error


class EmbeddingProvider(Protocol):
    async def embed_text(self, text: str) -> list[float]:
        ...

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        ...


class LocalEmbeddingService:
    """sentence-transformers model loaded once per process and never unloaded."""

    def __init__(self, model_name: str | None = None, batch_size: int | None = None):
        self.model_name = model_name or settings.embed_model
        self.batch_size = batch_size or int(settings.embed_batch_size)
        self._model: Any | None = None
        self._load_error: str | None = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def model_info(self) -> dict[str, Any]:
        dimensions = None
        if self._model is not None:
            dimensions = self._model.get_sentence_embedding_dimension()
        return {
            "model": self.model_name,
            "batch_size": self.batch_size,
            "loaded": self.is_loaded,
            "dimensions": dimensions,
        }

    async def preload(self) -> None:
        await self._ensure_model()

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        await self._ensure_model()
        return await asyncio.to_thread(self._embed_sync, texts)

    async def embed_text(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text])
        return vectors[0]

    async def _ensure_model(self) -> None:
        if self._model is not None:
            return
        async with self._lock:
            if self._model is None:
                await asyncio.to_thread(self._load_model)
        if self._model is None:
            raise embedding_error(self._load_error or f"Embedding model {self.model_name} is not available")

    def _load_model(self) -> None:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            self._load_error = f"sentence-transformers is not installed: {exc}"
            return
        started = time.monotonic()
        try:
            self._model = SentenceTransformer(self.model_name)
        except Exception as exc:
            self._load_error = f"Failed to load embedding model {self.model_name}: {exc}"
            return
        self._load_error = None
        logger.info(f"Loaded embedding model {self.model_name} in {time.monotonic() - started:.1f}s")

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        retries = 3
        for attempt in range(retries):
            try:
                vectors = self._model.encode(
                    texts,
                    batch_size=self.batch_size,
                    normalize_embeddings=True,
                    show_progress_bar=False,
                )
                return [list(map(float, row)) for row in vectors]
            except Exception as exc:
                if attempt == retries - 1:
                    raise embedding_error(f"Embedding failed after {retries} attempts: {exc}") from exc
                logger.debug(f"Embedding attempt {attempt + 1} failed: {exc}")
                time.sleep(0.2 * (attempt + 1))
        raise embedding_error("Embedding failed")


_service: LocalEmbeddingService | None = None


def get_embedding_service() -> LocalEmbeddingService:
    global _service
    if _service is None:
        _service = LocalEmbeddingService()
    return _service
