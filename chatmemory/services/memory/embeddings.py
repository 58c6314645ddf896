"""Text embedding helper shared by the vector-capable memory stores.

Wraps an async OpenAI/Azure OpenAI client exposing `embeddings.create(...)`
and returns plain `list[float]` vectors. Rate-limit (429) failures raise
`RuntimeError` so callers can distinguish throttling; other SDK errors bubble
unchanged.
"""

from __future__ import annotations

import inspect
from typing import Any

from chatmemory.core.structured_logging import get_logger

STATUS_TOO_MANY_REQUESTS = 429

logger = get_logger(__name__)


def _is_rate_limit_error(exc: Exception) -> bool:
    code = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if isinstance(code, int) and code == STATUS_TOO_MANY_REQUESTS:
        return True
    resp_code = getattr(getattr(exc, "response", None), "status_code", None)
    if isinstance(resp_code, int) and resp_code == STATUS_TOO_MANY_REQUESTS:
        return True
    text = str(exc).lower()
    return "429" in text or "rate limit" in text


class EmbeddingGenerator:
    """Generate embeddings with a single deployment."""

    def __init__(self, client: Any, deployment: str) -> None:
        self._client = client
        self._deployment = deployment

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for `text`.

        Raises:
            RuntimeError: If the request was rate-limited, or the response
                carried no embedding.
        """
        try:
            resp: Any = await self._client.embeddings.create(
                input=[text], model=self._deployment
            )
        except Exception as exc:
            if _is_rate_limit_error(exc):
                raise RuntimeError("Embedding request was rate-limited (429).") from exc
            raise

        data: Any = getattr(resp, "data", None)
        vec: Any = None
        if isinstance(data, list) and data:
            first = data[0]
            vec = getattr(first, "embedding", None)
            if vec is None and isinstance(first, dict):
                vec = first.get("embedding")

        if not isinstance(vec, list) or not vec:
            raise RuntimeError(
                f"Embedding deployment {self._deployment!r} returned no vector."
            )
        logger.debug("Embedding generated", deployment=self._deployment, dims=len(vec))
        return [float(v) for v in vec]

    async def close(self) -> None:
        close_fn = getattr(self._client, "close", None)
        if close_fn is not None:
            res = close_fn()
            if inspect.isawaitable(res):
                await res
