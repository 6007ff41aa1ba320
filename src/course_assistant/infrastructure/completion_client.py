"""Chat-completion client (blocking and streaming) backed by the OpenAI API."""

from __future__ import annotations

from collections.abc import AsyncIterator

import openai
from loguru import logger
from openai import AsyncOpenAI

from course_assistant.application.exceptions import UpstreamError
from course_assistant.domain.models import ChatMessage, CompletionChunk, CompletionResult
from course_assistant.infrastructure.retry import RetryPolicy, to_upstream_error


class OpenAICompletionClient:
    """Calls ``chat.completions.create`` with the shared retry policy.

    Retries cover only establishing the request. Once a stream has started
    emitting tokens, a failure is mapped and raised directly because partial
    output has already reached the caller.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.retry_policy = retry_policy or RetryPolicy()

    def _create_kwargs(self, messages: list[ChatMessage]) -> dict:
        return {
            "model": self.model,
            "messages": [m.model_dump() for m in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def complete(self, messages: list[ChatMessage]) -> CompletionResult:
        """Run a blocking completion and return the trimmed answer with token usage."""
        kwargs = self._create_kwargs(messages)
        completion = await self.retry_policy.run(
            lambda: self.client.chat.completions.create(**kwargs),
            description="Completion request",
        )

        if not completion.choices:
            raise UpstreamError(500, "No response choices returned from upstream")

        choice = completion.choices[0]
        if not choice.message or not choice.message.content:
            raise UpstreamError(500, "Empty response content")

        usage = completion.usage
        return CompletionResult(
            content=choice.message.content.strip(),
            tokens_used=usage.total_tokens if usage else 0,
            model=completion.model,
        )

    async def stream_complete(self, messages: list[ChatMessage]) -> AsyncIterator[CompletionChunk]:
        """Yield content deltas as they arrive.

        The terminal chunk carries ``tokens_used`` (requested through
        ``stream_options.include_usage``).
        """
        kwargs = self._create_kwargs(messages)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

        stream = await self.retry_policy.run(
            lambda: self.client.chat.completions.create(**kwargs),
            description="Streaming completion request",
        )

        try:
            async for chunk in stream:
                content = ""
                if chunk.choices:
                    content = chunk.choices[0].delta.content or ""
                tokens_used = chunk.usage.total_tokens if chunk.usage else None

                if content or tokens_used is not None:
                    yield CompletionChunk(content=content, tokens_used=tokens_used, model=chunk.model)
        except openai.APIError as exc:
            logger.error("Completion stream interrupted: {}", exc)
            raise to_upstream_error(exc) from exc
        finally:
            await stream.close()
