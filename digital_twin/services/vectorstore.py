# services/vectorstore.py
"""
Embedding provider and the on-disk side-store for static-fact embeddings.

Static facts change rarely, so their vectors are persisted next to the raw
data and reused across restarts. Entries are keyed by fact id plus a hash of
the content; editing a fact invalidates just that entry, and switching the
embedding model invalidates the whole file.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from langchain_openai import OpenAIEmbeddings

from .errors import ProviderError
from .settings import EMBED_MODEL, EMBEDDINGS_PATH

logger = logging.getLogger("digital_twin.vectorstore")


def get_embeddings() -> OpenAIEmbeddings:
    return OpenAIEmbeddings(model=EMBED_MODEL)


class OpenAIEmbedder:
    """Thin wrapper that maps upstream failures to ProviderError."""

    def __init__(self, embeddings: Optional[OpenAIEmbeddings] = None):
        self._embeddings = embeddings or get_embeddings()
        self.model = getattr(self._embeddings, "model", None) or EMBED_MODEL

    def embed(self, text: str) -> List[float]:
        try:
            return self._embeddings.embed_query(text)
        except Exception as exc:
            logger.error("Embedding error: %s", exc)
            raise ProviderError("Failed to generate embedding") from exc

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            vectors = self._embeddings.embed_documents(list(texts))
        except Exception as exc:
            logger.error("Batch embedding error: %s", exc)
            raise ProviderError("Failed to generate batch embeddings") from exc
        if len(vectors) != len(texts):
            raise ProviderError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors


def content_key(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


def embedder_model(embedder) -> Optional[str]:
    return getattr(embedder, "model", None)


class StaticEmbeddingStore:
    """JSON file of embedded static documents.

    Layout: {"model": ..., "dim": ..., "rows": [{id, type, content, content_key, embedding}, ...]}.
    Rows written by a different embedding model are treated as absent.
    """

    def __init__(self, path: Path | str = EMBEDDINGS_PATH):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self, model: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
        if not self.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Embedding store unreadable: %s (%s)", self.path, exc)
            return None
        if not isinstance(data, dict) or not isinstance(data.get("rows"), list):
            logger.warning("Embedding store has unexpected shape: %s", self.path)
            return None
        stored_model = data.get("model")
        if model and stored_model != model:
            logger.warning("Embedding store was built with %s, not %s; ignoring it", stored_model, model)
            return None
        return data["rows"]

    def save(self, rows: List[Dict[str, Any]], model: Optional[str] = None) -> None:
        os.makedirs(self.path.parent, exist_ok=True)
        dim = len(rows[0].get("embedding") or []) if rows else 0
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({"model": model, "dim": dim, "rows": rows}, f, indent=2)
        os.replace(tmp, self.path)
        logger.info("Saved %d static embeddings (%s, dim=%d) to %s", len(rows), model, dim, self.path)
