"""
Embedding client for vector-based semantic search.

Wraps the Google GenAI embedding API for single-text document and query
embedding with a configurable model, dimension, and request timeout.
"""

from __future__ import annotations

import asyncio
import math
import os
from typing import Any

import httpx
from google.genai import Client as GenAIClient
from google.genai import errors as genai_errors
from google.genai.types import HttpOptions

from .config import env_float, env_int
from .errors import InvalidResponse, ServiceUnavailable


_DEFAULT_MODEL = "gemini-embedding-001"
_DEFAULT_DIM = 768
_DEFAULT_TIMEOUT = 30.0


class EmbeddingClient:
    """Turn one text into one fixed-length vector via Google GenAI."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        timeout: float | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model or os.getenv("WIKI_SEARCH_EMBEDDING_MODEL", _DEFAULT_MODEL)
        self.dim = dim or env_int("WIKI_SEARCH_EMBEDDING_DIM", _DEFAULT_DIM)
        self.timeout = (
            timeout
            if timeout is not None
            else env_float("WIKI_SEARCH_EMBEDDING_TIMEOUT", _DEFAULT_TIMEOUT)
        )

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if resolved_key is None:
                raise ValueError(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = GenAIClient(
                api_key=resolved_key,
                http_options=HttpOptions(timeout=int(self.timeout * 1000)),
            )

    async def embed(self, text: str) -> list[float]:
        """Embed a page chunk for storage."""
        return await self._embed(text, task_type="RETRIEVAL_DOCUMENT")

    async def embed_query(self, text: str) -> list[float]:
        """Embed a search query."""
        return await self._embed(text, task_type="RETRIEVAL_QUERY")

    async def _embed(self, text: str, *, task_type: str) -> list[float]:
        try:
            result = await asyncio.wait_for(
                self._client.aio.models.embed_content(
                    model=self.model,
                    contents=[text],
                    config={
                        "task_type": task_type,
                        "output_dimensionality": self.dim,
                    },
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ServiceUnavailable(
                f"Embedding request timed out after {self.timeout:g}s"
            ) from exc
        except genai_errors.APIError as exc:
            raise ServiceUnavailable(
                f"Embedding service error {exc.code}: {exc.message}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ServiceUnavailable(f"Embedding service unreachable: {exc}") from exc

        return self._validate(result)

    def _validate(self, result: Any) -> list[float]:
        embeddings = getattr(result, "embeddings", None)
        if not embeddings:
            raise InvalidResponse("Embedding response contained no vectors")
        values = getattr(embeddings[0], "values", None)
        if values is None:
            raise InvalidResponse("Embedding response vector is empty")

        vector: list[float] = []
        for value in values:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidResponse(
                    f"Embedding response contains non-numeric value {value!r}"
                )
            if not math.isfinite(value):
                raise InvalidResponse("Embedding response contains non-finite values")
            vector.append(float(value))

        if len(vector) != self.dim:
            raise InvalidResponse(
                f"Expected {self.dim}-dimensional vector from {self.model}, "
                f"got {len(vector)}"
            )
        return vector
