"""Provider responses, sub-agent records and engine results."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field

from orchestra.models.messages import SkillUse, ToolUse
from orchestra.models.tools import ToolCall

cuid = cuid_wrapper()

StopReason = Literal["end_turn", "tool_use", "max_tokens", "stop_sequence"]


class ModelInfo(BaseModel):
    """A model offered by a provider."""

    key: str  # "provider/model-id"
    name: str


@dataclass
class LLMUsage:
    """Token usage information from the provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class ChatResult:
    """Provider-agnostic response to one request."""

    content: str
    stop_reason: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_use: list[ToolUse] = field(default_factory=list)  # For display
    usage: LLMUsage | None = None

    @property
    def wants_tools(self) -> bool:
        return self.stop_reason == "tool_use" and bool(self.tool_calls)


class SubagentSpec(BaseModel):
    """One agent requested through ``spawn_subagent``."""

    id: str = Field(default_factory=cuid)
    name: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1, description="provider/model-id")
    prompt: str = Field(..., min_length=1)
    system_prompt: str | None = Field(default=None, alias="systemPrompt")

    class Config:
        populate_by_name = True
        extra = "ignore"


class SubagentResponse(BaseModel):
    """Outcome of one sub-agent run, kept for UI display."""

    id: str
    name: str
    model: str
    prompt: str
    content: str = ""
    tool_use: list[ToolUse] = Field(default_factory=list)
    skill_use: list[SkillUse] = Field(default_factory=list)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class ExecutionStatus(StrEnum):
    """How a run ended."""

    COMPLETED = "completed"
    MAX_ITERATIONS = "max_iterations"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    """Result from executing the tool loop."""

    final_content: str
    all_tool_uses: list[ToolUse]
    skill_uses: list[SkillUse]
    iterations: int
    subagent_responses: list[SubagentResponse] = field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.COMPLETED
    truncated_count: int = 0

    @property
    def cancelled(self) -> bool:
        return self.status is ExecutionStatus.CANCELLED
