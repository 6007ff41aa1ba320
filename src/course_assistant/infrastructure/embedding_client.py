"""Embedding client backed by the OpenAI embeddings endpoint."""

from __future__ import annotations

from openai import AsyncOpenAI

from course_assistant.application.exceptions import EmptyInputError, UpstreamError
from course_assistant.infrastructure.retry import RetryPolicy


class OpenAIEmbeddingClient:
    """Turns text into a fixed-length vector, retrying transient upstream failures."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """
        Initialize the embedding client.

        Args:
            client: Async OpenAI client (its own retries should be disabled)
            model: Embedding model identifier
            dimensions: Requested vector size, or None for the model default
            retry_policy: Retry/backoff policy for upstream calls
        """
        self.client = client
        self.model = model
        self.dimensions = dimensions
        self.retry_policy = retry_policy or RetryPolicy()

    def _create_kwargs(self, text: str) -> dict:
        """Build kwargs for embeddings.create."""
        kwargs: dict = {"model": self.model, "input": text}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions
        return kwargs

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding for a single text.

        Raises:
            EmptyInputError: If the text is empty after trimming.
            UpstreamError: If the call fails or returns no embedding.
        """
        text = (text or "").strip()
        if not text:
            raise EmptyInputError("Text cannot be empty")

        kwargs = self._create_kwargs(text)
        response = await self.retry_policy.run(
            lambda: self.client.embeddings.create(**kwargs),
            description="Embedding request",
        )

        if not response.data:
            raise UpstreamError(500, "Empty embedding response")
        return [float(x) for x in response.data[0].embedding]
