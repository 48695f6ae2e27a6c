"""Anthropic provider service with streaming, rate limiting and retries."""

import asyncio
import os
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from anthropic.types import Message as AnthropicMessage
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from orchestra.clients.base import ChatOptions
from orchestra.exceptions import OperationCancelled, ProviderError
from orchestra.models.execution import ChatResult, LLMUsage, ModelInfo
from orchestra.models.messages import Message, ToolUse
from orchestra.models.tools import ToolCall, ToolRound
from orchestra.services.token_estimator import estimate_tokens
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

PROVIDER_TYPE = "anthropic"

ANTHROPIC_MODELS = [
    ModelInfo(key="anthropic/claude-opus-4-5-20251101", name="Opus 4.5"),
    ModelInfo(key="anthropic/claude-sonnet-4-5-20250929", name="Sonnet 4.5"),
    ModelInfo(key="anthropic/claude-haiku-4-5-20251001", name="Haiku 4.5"),
    ModelInfo(key="anthropic/claude-sonnet-4-20250514", name="Sonnet 4"),
]

RETRYABLE_STATUS_CODES = frozenset({429, 529})
MAX_RETRY_AFTER = 120  # seconds


@dataclass
class AnthropicConfig:
    """Configuration for the Anthropic provider."""

    max_tokens: int = 8192
    max_retries: int = 3
    retry_delay: float = 1.0
    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000


class AnthropicRateLimiter:
    """Client-side moving-window limits on requests and tokens per minute."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = PROVIDER_TYPE) -> None:
        """Wait until the request fits within both limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        # A single request larger than the whole window can never fit; let the API decide
        cost = min(max(estimated_tokens, 1), self.token_limit.amount)
        if not self.limiter.hit(self.token_limit, token_identifier, cost=cost):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit: Any, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        wait_time = max(0.0, window_stats.reset_time - time.time())
        if wait_time > 0:
            logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)


def _tool_round_to_messages(tool_round: ToolRound) -> list[dict[str, Any]]:
    """Replay a round as an assistant tool_use turn followed by a user tool_result turn."""
    assistant_content: list[dict[str, Any]] = []
    if tool_round.text_content:
        assistant_content.append({"type": "text", "text": tool_round.text_content})
    assistant_content.extend(
        {"type": "tool_use", "id": call.id, "name": call.name, "input": call.input} for call in tool_round.tool_calls
    )

    results = [
        {
            "type": "tool_result",
            "tool_use_id": result.tool_use_id,
            "content": result.content,
            "is_error": result.is_error,
        }
        for result in tool_round.tool_results
    ]
    return [{"role": "assistant", "content": assistant_content}, {"role": "user", "content": results}]


def _estimate_request_tokens(messages: list[dict[str, Any]], system_prompt: str | None) -> int:
    """Rough token count for rate limiting; images are not counted."""
    text = system_prompt or ""
    for message in messages:
        content = message["content"]
        if isinstance(content, str):
            text += content
            continue
        for block in content:
            text += str(block.get("text") or block.get("content") or block.get("input") or "")
    return estimate_tokens(text)


class AnthropicProvider:
    """Provider service for Anthropic's Messages API."""

    provider_type = PROVIDER_TYPE

    def __init__(
        self,
        api_key: str | None = None,
        config: AnthropicConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize the provider.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Provider configuration
            client: Pre-built SDK client, mainly for tests
        """
        self.config = config or AnthropicConfig()
        if client is None:
            anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
            if not anthropic_api_key:
                raise ProviderError("ANTHROPIC_API_KEY environment variable is required")
            # Retries are handled here so they can back off through the rate limiter
            client = AsyncAnthropic(api_key=anthropic_api_key, max_retries=0)

        self.client = client
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

    def get_available_models(self) -> list[ModelInfo]:
        return list(ANTHROPIC_MODELS)

    async def send_message(self, messages: list[Message], options: ChatOptions) -> ChatResult:
        payload = await self._convert_messages(messages, options)
        return await self._create_message(payload, options)

    async def send_message_with_tool_results(
        self, messages: list[Message], rounds: list[ToolRound], options: ChatOptions
    ) -> ChatResult:
        payload = await self._convert_messages(messages, options)
        for tool_round in rounds:
            payload.extend(_tool_round_to_messages(tool_round))
        return await self._create_message(payload, options)

    async def _convert_messages(self, messages: list[Message], options: ChatOptions) -> list[dict[str, Any]]:
        """Convert history to the API format, loading image attachments when possible."""
        converted: list[dict[str, Any]] = []
        for message in messages:
            if message.role == "log":
                continue

            images = [a for a in message.attachments if a.type == "image"] if options.image_loader else []
            if not images:
                converted.append({"role": message.role, "content": message.content})
                continue

            # Images go before the text
            content: list[dict[str, Any]] = []
            for attachment in images:
                data = await options.image_loader(attachment.path)
                content.append(
                    {
                        "type": "image",
                        "source": {"type": "base64", "media_type": attachment.mime_type, "data": data},
                    }
                )
            if message.content:
                content.append({"type": "text", "text": message.content})
            converted.append({"role": message.role, "content": content})

        return converted

    async def _create_message(self, messages: list[dict[str, Any]], options: ChatOptions) -> ChatResult:
        estimated_tokens = _estimate_request_tokens(messages, options.system_prompt)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": options.model,
            "max_tokens": self.config.max_tokens,
            "messages": messages,
        }
        if options.system_prompt:
            request_params["system"] = options.system_prompt
        if options.tools:
            request_params["tools"] = [tool.model_dump() for tool in options.tools]

        logger.debug(
            f"Making Anthropic API call with model: {options.model}, "
            f"{len(messages)} messages, {len(options.tools)} tools"
        )
        return await self._request_with_retries(lambda: self._stream(request_params, options))

    async def _stream(self, request_params: dict[str, Any], options: ChatOptions) -> ChatResult:
        """Stream one response.

        Once any output has reached the callbacks a failure is no longer
        retryable: it is raised as ``ProviderError`` so the caller never sees
        the same text twice.
        """
        tool_use: list[ToolUse] = []
        delivered = False

        try:
            async with self.client.messages.stream(**request_params) as stream:
                async for event in stream:
                    if options.cancel_token is not None and options.cancel_token.cancelled:
                        raise OperationCancelled()

                    if event.type == "text":
                        delivered = True
                        options.on_chunk(event.text)
                    elif event.type == "content_block_start" and event.content_block.type == "tool_use":
                        delivered = True
                        entry = ToolUse(id=event.content_block.id, type=event.content_block.name)
                        tool_use.append(entry)
                        options.on_tool_use(entry)

                response = await stream.get_final_message()
        except (APIStatusError, APIConnectionError) as e:
            if not delivered:
                raise
            logger.error(f"Anthropic stream failed after output was delivered: {e}")
            raise ProviderError(f"Anthropic stream interrupted: {e}") from e

        logger.debug(
            f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(response.content)}"
        )
        return self._to_chat_result(response, tool_use)

    @staticmethod
    def _to_chat_result(response: AnthropicMessage, tool_use: list[ToolUse]) -> ChatResult:
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, input=dict(block.input or {})))

        usage = None
        if response.usage:
            usage = LLMUsage(input_tokens=response.usage.input_tokens, output_tokens=response.usage.output_tokens)

        return ChatResult(
            content="".join(text_parts),
            stop_reason=response.stop_reason,
            tool_calls=tool_calls,
            tool_use=tool_use,
            usage=usage,
        )

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run an API request, retrying overload, rate-limit and server errors."""
        for attempt in range(self.config.max_retries):
            last_attempt = attempt == self.config.max_retries - 1
            try:
                return await call()

            except APIStatusError as e:
                retryable = e.status_code in RETRYABLE_STATUS_CODES or e.status_code >= 500
                if not retryable or last_attempt:
                    raise

                delay = self.config.retry_delay * (2**attempt)
                retry_after = e.response.headers.get("retry-after") if e.response is not None else None
                if retry_after and retry_after.isdigit() and int(retry_after) < MAX_RETRY_AFTER:
                    delay = max(delay, float(retry_after))
                logger.warning(f"Anthropic API returned {e.status_code}, retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

            except APIConnectionError as e:
                if last_attempt:
                    raise
                delay = self.config.retry_delay * (2**attempt)
                logger.warning(f"Anthropic API connection failed ({e}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

        raise ProviderError(f"Failed to complete request after {self.config.max_retries} attempts")
