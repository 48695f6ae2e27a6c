"""Fit conversation history into a per-call token budget."""

from dataclasses import dataclass

from orchestra.models.messages import Message
from orchestra.models.tools import ToolDefinition
from orchestra.services.token_estimator import (
    CHARS_PER_TOKEN,
    TRUNCATION_MARKER,
    estimate_message_tokens,
    estimate_tokens,
    estimate_tool_tokens,
    truncate_to_token_budget,
)
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOTAL_BUDGET = 16000
DEFAULT_RESPONSE_RESERVE = 4000
DEFAULT_TOOL_RESULT_MAX_TOKENS = 500

# Floor for the newest message's content when it alone overflows the budget
MIN_LATEST_CONTENT_TOKENS = 100


@dataclass
class ContextManagerConfig:
    """Configuration for context budgeting."""

    total_budget: int = DEFAULT_TOTAL_BUDGET
    response_reserve: int = DEFAULT_RESPONSE_RESERVE
    tool_result_max_tokens: int = DEFAULT_TOOL_RESULT_MAX_TOKENS
    always_include_latest: bool = True  # Keep the newest message even if it must be shortened


@dataclass(frozen=True)
class ContextBudget:
    """Token budget for one provider call."""

    total: int
    system_prompt: int
    tools: int
    response: int
    messages: int  # Available for conversation history


@dataclass
class TruncatedContext:
    """History prepared for a provider call."""

    messages: list[Message]
    estimated_tokens: int
    truncated: bool
    truncated_count: int  # How many old messages were dropped
    content_truncated: bool = False  # Whether the newest message's content was shortened


def truncate_tool_result(text: str, max_chars: int) -> str:
    """Shorten a tool result to its head and tail around a truncation marker.

    Text already within ``max_chars`` is returned unchanged.
    """
    if len(text) <= max_chars:
        return text

    half = max(max_chars // 2 - 20, 0)
    if half == 0:
        return TRUNCATION_MARKER
    return f"{text[:half]}\n\n{TRUNCATION_MARKER}\n\n{text[-half:]}"


class ContextManager:
    """Turns a token ceiling into a message budget and trims history to fit it."""

    def __init__(self, config: ContextManagerConfig | None = None):
        self.config = config or ContextManagerConfig()

    def calculate_budget(self, system_prompt: str, tools: list[ToolDefinition]) -> ContextBudget:
        """Calculate the token budget left for messages after fixed costs."""
        system_prompt_tokens = estimate_tokens(system_prompt)
        tool_tokens = estimate_tool_tokens(tools)

        available_for_messages = max(
            0,
            self.config.total_budget - system_prompt_tokens - tool_tokens - self.config.response_reserve,
        )

        return ContextBudget(
            total=self.config.total_budget,
            system_prompt=system_prompt_tokens,
            tools=tool_tokens,
            response=self.config.response_reserve,
            messages=available_for_messages,
        )

    def prepare_context(self, messages: list[Message], budget: ContextBudget) -> TruncatedContext:
        """Prepare messages to fit within budget.

        Log messages are dropped and oversized tool results shortened first.
        History is then kept newest-first until the next older message would
        overflow the budget; everything older than that is dropped. The
        result is in chronological order.
        """
        filtered = [message for message in messages if message.role != "log"]
        if not filtered:
            return TruncatedContext(messages=[], estimated_tokens=0, truncated=False, truncated_count=0)

        prepared = [self._truncate_tool_results(message) for message in filtered]

        kept: list[Message] = []
        total_tokens = 0
        content_truncated = False

        remaining = prepared
        if self.config.always_include_latest:
            newest = prepared[-1]
            newest, content_truncated = self._fit_newest(newest, budget)
            kept.append(newest)
            total_tokens = estimate_message_tokens(newest)
            remaining = prepared[:-1]

        for message in reversed(remaining):
            message_tokens = estimate_message_tokens(message)
            if total_tokens + message_tokens > budget.messages:
                break
            kept.append(message)
            total_tokens += message_tokens

        kept.reverse()
        truncated_count = len(prepared) - len(kept)

        return TruncatedContext(
            messages=kept,
            estimated_tokens=total_tokens,
            truncated=truncated_count > 0 or content_truncated,
            truncated_count=truncated_count,
            content_truncated=content_truncated,
        )

    def _fit_newest(self, message: Message, budget: ContextBudget) -> tuple[Message, bool]:
        """Shorten the newest message's content if it alone exceeds the budget."""
        message_tokens = estimate_message_tokens(message)
        if message_tokens <= budget.messages:
            return message, False

        overhead = message_tokens - estimate_tokens(message.content)
        content_budget = max(MIN_LATEST_CONTENT_TOKENS, budget.messages - overhead)
        logger.info(
            f"Newest message ({message_tokens} tokens) exceeds the {budget.messages} token budget, "
            f"truncating its content to {content_budget} tokens"
        )
        content = truncate_to_token_budget(message.content, content_budget)
        return message.model_copy(update={"content": content}), True

    def _truncate_tool_results(self, message: Message) -> Message:
        """Truncate verbose tool results within a message."""
        if not message.tool_use:
            return message

        max_chars = self.config.tool_result_max_tokens * CHARS_PER_TOKEN
        if all(not tool.result or len(tool.result) <= max_chars for tool in message.tool_use):
            return message

        tool_use = [
            tool.model_copy(update={"result": truncate_tool_result(tool.result, max_chars)})
            if tool.result and len(tool.result) > max_chars
            else tool
            for tool in message.tool_use
        ]
        return message.model_copy(update={"tool_use": tool_use})
