import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Literal

import httpx
from openai import APIError, AsyncOpenAI
from pydantic import BaseModel

from planner.core.config import settings
from planner.exceptions import ProviderError, UnsupportedProviderError

logger = logging.getLogger(__name__)


class CompletionOptions(BaseModel):
    model: str | None = None
    max_tokens: int | None = None


class CompletionUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int | None = None


class CompletionResult(BaseModel):
    content: str
    usage: CompletionUsage
    finish_reason: str | None = None


class TextChunk(BaseModel):
    type: Literal["text"] = "text"
    text: str


class DoneChunk(BaseModel):
    type: Literal["done"] = "done"
    usage: CompletionUsage | None = None


StreamChunk = TextChunk | DoneChunk


class AIProvider(ABC):
    """
    Uniform completion surface over a hosted model API.

    One network call per invocation and no retries: failures surface once as
    ProviderError. Closing the `stream` iterator (or cancelling the task
    consuming it) closes the underlying HTTP response. A provider owns its
    HTTP client; use it as an async context manager or call `aclose`.
    """

    id: str
    name: str

    def __init__(self, default_model: str):
        self.default_model = default_model

    def _model(self, options: CompletionOptions | None) -> str:
        return (options.model if options and options.model else None) or self.default_model

    def _max_tokens(self, options: CompletionOptions | None) -> int:
        return (options.max_tokens if options and options.max_tokens else None) or settings.DEFAULT_MAX_TOKENS

    @abstractmethod
    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> CompletionResult:
        """Run a single non-streaming completion."""

    @abstractmethod
    def stream(self, prompt: str, options: CompletionOptions | None = None) -> AsyncIterator[StreamChunk]:
        """Yield text chunks, then exactly one DoneChunk."""

    async def aclose(self) -> None:
        """Release the HTTP client."""

    async def __aenter__(self) -> "AIProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class OpenAIProvider(AIProvider):
    id = "openai"
    name = "OpenAI"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str | None = None,
    ):
        super().__init__(default_model or settings.OPENAI_DEFAULT_MODEL)
        # The SDK retries by default; retry policy belongs to the caller.
        self.client = AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY,
            base_url=base_url or settings.OPENAI_BASE_URL,
            max_retries=0,
        )

    async def aclose(self) -> None:
        await self.client.close()

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> CompletionResult:
        model = self._model(options)
        logger.info("Issuing completion request to %s model %s...", self.id, model)
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_completion_tokens=self._max_tokens(options),
            )
        except APIError as exc:
            logger.error("Completion request to %s failed: %s", self.id, exc)
            raise ProviderError(self.id, str(exc), getattr(exc, "status_code", None)) from exc

        if not getattr(response, "choices", None):
            raise ProviderError(self.id, f"Provider {self.id} returned no output for model {model}")

        choice = response.choices[0]
        usage = CompletionUsage()
        if response.usage is not None:
            usage = CompletionUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return CompletionResult(
            content=choice.message.content or "",
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    async def stream(self, prompt: str, options: CompletionOptions | None = None) -> AsyncIterator[StreamChunk]:
        model = self._model(options)
        logger.info("Issuing streaming request to %s model %s...", self.id, model)
        usage: CompletionUsage | None = None
        try:
            response_stream = await self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_completion_tokens=self._max_tokens(options),
                stream=True,
                stream_options={"include_usage": True},
            )
            try:
                async for chunk in response_stream:
                    if chunk.usage is not None:
                        usage = CompletionUsage(
                            prompt_tokens=chunk.usage.prompt_tokens,
                            completion_tokens=chunk.usage.completion_tokens,
                            total_tokens=chunk.usage.total_tokens,
                        )
                    if not chunk.choices:
                        continue
                    text = chunk.choices[0].delta.content
                    if text:
                        yield TextChunk(text=text)
            finally:
                await response_stream.close()
        except APIError as exc:
            logger.error("Streaming request to %s failed: %s", self.id, exc)
            raise ProviderError(self.id, str(exc), getattr(exc, "status_code", None)) from exc

        yield DoneChunk(usage=usage)


class AnthropicProvider(AIProvider):
    """Anthropic Messages API over plain HTTP."""

    id = "anthropic"
    name = "Anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(default_model or settings.ANTHROPIC_DEFAULT_MODEL)
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.base_url = (base_url or settings.ANTHROPIC_BASE_URL).rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(60.0, read=None))

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": settings.ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }

    def _payload(self, prompt: str, options: CompletionOptions | None, *, stream: bool) -> dict:
        payload = {
            "model": self._model(options),
            "max_tokens": self._max_tokens(options),
            "messages": [{"role": "user", "content": prompt}],
        }
        if stream:
            payload["stream"] = True
        return payload

    def _status_error(self, response: httpx.Response) -> ProviderError:
        message = response.text
        try:
            body = response.json()
            message = body.get("error", {}).get("message") or message
        except (ValueError, AttributeError):
            pass
        return ProviderError(self.id, f"HTTP {response.status_code}: {message}", response.status_code)

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> CompletionResult:
        payload = self._payload(prompt, options, stream=False)
        logger.info("Issuing completion request to %s model %s...", self.id, payload["model"])
        try:
            response = await self.client.post(
                f"{self.base_url}/v1/messages", headers=self._headers(), json=payload
            )
        except httpx.HTTPError as exc:
            logger.error("Completion request to %s failed: %s", self.id, exc)
            raise ProviderError(self.id, str(exc)) from exc

        if response.status_code >= 400:
            raise self._status_error(response)

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("Completion reply from %s was not JSON: %s", self.id, response.text[:200])
            raise ProviderError(self.id, "Provider returned a non-JSON response", response.status_code) from exc
        if not isinstance(body, dict):
            raise ProviderError(self.id, "Provider returned an unexpected response body", response.status_code)

        text = "".join(
            block.get("text") or ""
            for block in body.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        )
        raw_usage = body.get("usage")
        if not isinstance(raw_usage, dict):
            raw_usage = {}
        prompt_tokens = int(raw_usage.get("input_tokens") or 0)
        completion_tokens = int(raw_usage.get("output_tokens") or 0)
        return CompletionResult(
            content=text,
            usage=CompletionUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=body.get("stop_reason"),
        )

    async def stream(self, prompt: str, options: CompletionOptions | None = None) -> AsyncIterator[StreamChunk]:
        payload = self._payload(prompt, options, stream=True)
        logger.info("Issuing streaming request to %s model %s...", self.id, payload["model"])
        prompt_tokens = 0
        completion_tokens = 0
        try:
            async with self.client.stream(
                "POST", f"{self.base_url}/v1/messages", headers=self._headers(), json=payload
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise self._status_error(response)

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data:
                        continue
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("Skipping undecodable %s stream event: %s", self.id, data[:200])
                        continue

                    event_type = event.get("type")
                    if event_type == "message_start":
                        usage = (event.get("message") or {}).get("usage") or {}
                        prompt_tokens = int(usage.get("input_tokens") or 0)
                    elif event_type == "content_block_delta":
                        delta = event.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield TextChunk(text=delta["text"])
                    elif event_type == "message_delta":
                        usage = event.get("usage") or {}
                        completion_tokens = int(usage.get("output_tokens") or completion_tokens)
                    elif event_type == "error":
                        message = (event.get("error") or {}).get("message") or "Stream error"
                        raise ProviderError(self.id, message)
        except httpx.HTTPError as exc:
            logger.error("Streaming request to %s failed: %s", self.id, exc)
            raise ProviderError(self.id, str(exc)) from exc

        yield DoneChunk(
            usage=CompletionUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            )
        )


PROVIDERS: dict[str, type[AIProvider]] = {
    OpenAIProvider.id: OpenAIProvider,
    AnthropicProvider.id: AnthropicProvider,
}


def provider_class(provider_id: str) -> type[AIProvider]:
    """Resolve a provider id without building a client; unknown ids fail immediately."""
    provider_cls = PROVIDERS.get((provider_id or "").strip().lower())
    if provider_cls is None:
        raise UnsupportedProviderError(provider_id, sorted(PROVIDERS))
    return provider_cls


def get_provider(provider_id: str, **config) -> AIProvider:
    return provider_class(provider_id)(**config)


async def run_completion(
    provider_id: str,
    prompt: str,
    *,
    model: str | None = None,
    max_tokens: int | None = None,
    provider: AIProvider | None = None,
) -> CompletionResult:
    """Run one completion. A provider resolved here from `provider_id` is closed afterwards."""
    options = CompletionOptions(model=model, max_tokens=max_tokens)
    if provider is not None:
        return await provider.complete(prompt, options)
    async with get_provider(provider_id) as ai:
        return await ai.complete(prompt, options)


async def run_completion_stream(
    provider_id: str,
    prompt: str,
    *,
    model: str | None = None,
    max_tokens: int | None = None,
    provider: AIProvider | None = None,
) -> AsyncIterator[StreamChunk]:
    options = CompletionOptions(model=model, max_tokens=max_tokens)
    if provider is not None:
        async with aclosing(provider.stream(prompt, options)) as chunks:
            async for chunk in chunks:
                yield chunk
        return
    async with get_provider(provider_id) as ai, aclosing(ai.stream(prompt, options)) as chunks:
        async for chunk in chunks:
            yield chunk
