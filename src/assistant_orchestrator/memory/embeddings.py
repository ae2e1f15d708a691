"""Embedding generation collaborator."""

from __future__ import annotations

from typing import Any, Protocol

from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.errors import EmbeddingError
from assistant_orchestrator.llm.http import post_json_with_retry


class Embedder(Protocol):
    def embed(self, text: str) -> list[float]: ...


class OpenAIEmbeddingClient:
    """Call an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        dimensions: int | None = None,
        timeout_s: float = 10.0,
        max_retries: int = 1,
        backoff_s: float = 0.5,
    ) -> None:
        if not api_key:
            raise EmbeddingError("OPENAI_API_KEY is missing")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.dimensions = dimensions
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIEmbeddingClient":
        return cls(
            api_key=settings.resolved_openai_api_key(),
            model=settings.embedding_model,
            base_url=settings.resolved_embedding_base_url(),
            dimensions=settings.embedding_dimensions,
            timeout_s=settings.embedding_timeout_s,
            max_retries=settings.llm_max_retries,
            backoff_s=settings.llm_backoff_s,
        )

    def embed(self, text: str) -> list[float]:
        cleaned = text.strip()
        if not cleaned:
            raise EmbeddingError("Cannot embed empty text")

        body: dict[str, Any] = {"model": self.model, "input": cleaned}
        if self.dimensions is not None:
            body["dimensions"] = self.dimensions
        response_json = post_json_with_retry(
            url=f"{self.base_url}/embeddings",
            api_key=self.api_key,
            body=body,
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
            backoff_s=self.backoff_s,
            error_cls=EmbeddingError,
        )
        return _parse_embedding(response_json)


def _parse_embedding(response_json: dict[str, Any]) -> list[float]:
    data = response_json.get("data")
    if not isinstance(data, list) or not data:
        raise EmbeddingError("Embedding response missing data")
    vector = data[0].get("embedding") if isinstance(data[0], dict) else None
    if not isinstance(vector, list) or not vector:
        raise EmbeddingError("Embedding response missing vector")
    try:
        return [float(value) for value in vector]
    except (TypeError, ValueError) as exc:
        raise EmbeddingError("Embedding vector contains non-numeric values") from exc
