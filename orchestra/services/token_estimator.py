"""Cheap length-based token estimates for budgeting.

These are approximations of provider token counts, not exact values: the
only guarantees are that they are reproducible for the same input and
monotonic in text length.
"""

import json
import math
import re

from orchestra.models.messages import Message
from orchestra.models.tools import ToolDefinition

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 10  # Role, timestamp, message structure
ATTACHMENT_TOKENS = 1000  # Images are ~1K tokens each
TOOL_USE_OVERHEAD_TOKENS = 20

TRUNCATION_MARKER = "[...truncated...]"

_CLEAN_BREAK = re.compile(r"\n\n|\. ")


def estimate_tokens(text: str) -> int:
    """Estimate token count from text using ~4 chars per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message_tokens(message: Message) -> int:
    """Estimate tokens for a message including structure, attachments and tool results."""
    tokens = estimate_tokens(message.content) + MESSAGE_OVERHEAD_TOKENS
    tokens += len(message.attachments) * ATTACHMENT_TOKENS

    for tool_use in message.tool_use:
        tokens += estimate_tokens(tool_use.result or "") + TOOL_USE_OVERHEAD_TOKENS

    return tokens


def estimate_tool_tokens(tools: list[ToolDefinition]) -> int:
    """Estimate tokens for a tool catalog."""
    return sum(
        estimate_tokens(tool.name + tool.description + json.dumps(tool.input_schema, separators=(",", ":")))
        for tool in tools
    )


def truncate_to_token_budget(text: str, max_tokens: int) -> str:
    """Truncate text to fit a token budget, keeping the end (most recent info).

    Cuts at a paragraph or sentence boundary when one is close to the start
    of the kept tail.
    """
    if estimate_tokens(text) <= max_tokens:
        return text

    tail = text[-max_tokens * CHARS_PER_TOKEN :] if max_tokens > 0 else ""

    clean_break = _CLEAN_BREAK.search(tail)
    if clean_break and 0 < clean_break.start() < 200:
        tail = tail[clean_break.end() :].lstrip("\n. ")

    return f"{TRUNCATION_MARKER}\n\n{tail}"
