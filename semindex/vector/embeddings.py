"""
Embedding providers.
Local sentence-transformers model with single-flight lazy loading, plus a
deterministic hashing provider for tests and offline use.
"""

from abc import ABC, abstractmethod
from concurrent.futures import Future
import hashlib
import re
import threading
import time
from typing import List, Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from ..core.config import EMBED_BATCH_SIZE, EMBED_DIM, EMBED_MODEL_NAME, MAX_EMBED_CHARS
from ..core.errors import ModelUnavailable
from ..util.logging import logger


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> np.ndarray:
        """Generate a normalized float32 embedding vector for given text."""
        pass

    @abstractmethod
    def embed_texts(self, texts: List[str]) -> List[np.ndarray]:
        """Embed several texts. Output order and length match the input."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass

    @property
    @abstractmethod
    def model_version(self) -> str:
        """Tag stored next to every vector this provider produces."""
        pass

    def preload(self) -> None:
        """Make sure the backend is ready before a long run."""
        pass

    def is_ready(self) -> bool:
        return True


def truncate_for_embedding(text: str, max_chars: int = MAX_EMBED_CHARS) -> str:
    """Cut text down to a character bound that fits the model window.

    Approximate on purpose: characters are not tokens.
    """
    if text is None:
        return ""
    return text[:max_chars]


_TOKEN_RE = re.compile(r"[a-z0-9]+")
_SUFFIXES = ("ing", "es", "ed", "s")


def _stem(token: str) -> str:
    for suffix in _SUFFIXES:
        if token.endswith(suffix) and len(token) - len(suffix) >= 3:
            return token[:-len(suffix)]
    return token


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Feature-hashes lightly stemmed word tokens into ``dimension`` signed
    buckets and L2-normalizes the result. Texts sharing vocabulary score
    high, unrelated texts score near zero, and no model weights are needed.
    """

    VERSION = "hash-v1"

    def __init__(self, dimension: int = EMBED_DIM, max_chars: int = MAX_EMBED_CHARS):
        self.dimension = dimension
        self.max_chars = max_chars

    @property
    def model_version(self) -> str:
        return f"{self.VERSION}:{self.dimension}"

    def _bucket(self, token: str):
        digest = hashlib.md5(token.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "little") % self.dimension
        sign = 1.0 if digest[4] & 1 else -1.0
        return index, sign

    def embed_text(self, text: str) -> np.ndarray:
        """Generate deterministic embedding vector using hash function."""
        vector = np.zeros(self.dimension, dtype=np.float32)
        text = truncate_for_embedding(text, self.max_chars).lower()

        for token in _TOKEN_RE.findall(text):
            index, sign = self._bucket(_stem(token))
            vector[index] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.astype(np.float32)

    def embed_texts(self, texts: List[str]) -> List[np.ndarray]:
        return [self.embed_text(text) for text in texts]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Uses all-MiniLM-L6-v2 by default: 384 dimensions, mean pooling. The model
    is loaded on first use. Threads that arrive while the load is running
    wait on the same future instead of starting a second load. A failed load
    is reported to everyone waiting on it and then forgotten, so the next
    call tries again.
    """

    def __init__(
        self,
        model_name: str = EMBED_MODEL_NAME,
        cache_dir: Optional[str] = None,
        max_chars: int = MAX_EMBED_CHARS,
        batch_size: int = EMBED_BATCH_SIZE,
        device: Optional[str] = None,
    ):
        self.model_name = model_name
        self.cache_dir = cache_dir
        self.max_chars = max_chars
        self.batch_size = batch_size
        self.device = device
        self._model = None
        self._dimension = None
        self._load_lock = threading.Lock()
        self._load_future: Optional[Future] = None
        # One encode at a time against the shared model instance
        self._encode_lock = threading.Lock()

    @property
    def model_version(self) -> str:
        return f"st:{self.model_name}"

    def _load_model(self):
        logger.log_model_event("load", self.model_name, {
            "message": "Loading embedding model (first run downloads weights into the cache)",
            "cache_dir": self.cache_dir or "default",
        }, status="started")
        start = time.time()
        model = SentenceTransformer(self.model_name, cache_folder=self.cache_dir, device=self.device)
        logger.log_model_event("load", self.model_name, {
            "elapsed_ms": round((time.time() - start) * 1000, 2),
            "dimension": model.get_sentence_embedding_dimension(),
        })
        return model

    def _ensure_model(self):
        model = self._model
        if model is not None:
            return model

        with self._load_lock:
            if self._model is not None:
                return self._model
            future = self._load_future
            is_loader = future is None
            if is_loader:
                future = Future()
                self._load_future = future

        if not is_loader:
            # Raises the loader's ModelUnavailable if the load failed
            return future.result()

        try:
            model = self._load_model()
        except Exception as e:
            error = ModelUnavailable(self.model_name, str(e))
            logger.log_model_event("load", self.model_name, {"error": str(e)[:200]}, status="failed")
            with self._load_lock:
                self._load_future = None
            future.set_exception(error)
            raise error from e

        with self._load_lock:
            self._model = model
        future.set_result(model)
        return model

    def preload(self) -> None:
        self._ensure_model()

    def is_ready(self) -> bool:
        return self._model is not None

    def embed_text(self, text: str) -> np.ndarray:
        """Generate embedding vector using sentence transformers."""
        model = self._ensure_model()
        with self._encode_lock:
            embedding = model.encode(
                truncate_for_embedding(text, self.max_chars),
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=False,
            )
        return np.asarray(embedding, dtype=np.float32).reshape(-1)

    def embed_texts(self, texts: List[str]) -> List[np.ndarray]:
        """Embed texts in model batches of ``batch_size``."""
        if not texts:
            return []

        model = self._ensure_model()
        truncated = [truncate_for_embedding(text, self.max_chars) for text in texts]
        with self._encode_lock:
            embeddings = model.encode(
                truncated,
                batch_size=self.batch_size,
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=False,
            )
        embeddings = np.asarray(embeddings, dtype=np.float32)
        return [embeddings[i] for i in range(len(truncated))]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            model = self._ensure_model()
            dimension = model.get_sentence_embedding_dimension()
            if dimension is None:
                # Get dimension by encoding a dummy string
                dimension = len(self.embed_text("test"))
            self._dimension = int(dimension)
        return self._dimension
