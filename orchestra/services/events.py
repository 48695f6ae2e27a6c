"""Incremental event sink for a tool-execution run."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from orchestra.models.execution import SubagentResponse
from orchestra.models.messages import ToolUse
from orchestra.models.tools import ApprovalRequest

ApprovalCallback = Callable[[ApprovalRequest], Awaitable[bool]]


def ignore_event(*_args: Any) -> None:
    """Default callback for events nobody listens to."""
    return None


@dataclass
class ExecutionEvents:
    """Callbacks fired as a run progresses.

    Every hook defaults to a no-op, so callers only supply what they render.
    ``on_tool_use`` fires when a tool call is first seen and ``on_tool_result``
    once the same entry has its result patched in.
    """

    on_chunk: Callable[[str], None] = ignore_event
    on_tool_use: Callable[[ToolUse], None] = ignore_event
    on_tool_result: Callable[[ToolUse], None] = ignore_event
    on_subagent_response: Callable[[SubagentResponse], None] = ignore_event
