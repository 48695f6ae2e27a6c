"""Tool call data models (provider-agnostic)."""

from typing import Any

from pydantic import BaseModel, Field, model_validator


class ToolDefinition(BaseModel):
    """Complete tool definition handed to the provider."""

    name: str
    description: str
    input_schema: dict[str, Any]


class ToolCall(BaseModel):
    """A tool call requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "ignore"


class ApprovalRequest(BaseModel):
    """Payload shown to a human before a write-class tool may take effect."""

    path: str
    original_content: str
    new_content: str


class ToolResult(BaseModel):
    """Result of a tool call."""

    tool_use_id: str = ""
    content: str
    is_error: bool = False
    requires_approval: bool = False
    approval_data: ApprovalRequest | None = None


class ToolContext(BaseModel):
    """Per-call context passed to tool handlers.

    Write-class tools only detect and describe their mutation unless
    ``require_write_approval`` is explicitly ``False``.
    """

    message_id: str | None = None
    conversation_id: str | None = None
    require_write_approval: bool = True

    def provenance(self) -> dict[str, str]:
        """Identifiers recorded alongside a vault write."""
        values = {"message_id": self.message_id, "conversation_id": self.conversation_id}
        return {key: value for key, value in values.items() if value}


class ToolRound(BaseModel):
    """One loop iteration: the model's tool calls plus their results."""

    text_content: str | None = None
    tool_calls: list[ToolCall]
    tool_results: list[ToolResult]

    class Config:
        frozen = True

    @model_validator(mode="after")
    def check_results_match_calls(self) -> "ToolRound":
        """Every call in a round must have exactly one result."""
        if len(self.tool_results) != len(self.tool_calls):
            raise ValueError(
                f"Tool round has {len(self.tool_calls)} calls but {len(self.tool_results)} results"
            )

        call_ids = {call.id for call in self.tool_calls}
        orphaned = [result.tool_use_id for result in self.tool_results if result.tool_use_id not in call_ids]
        if orphaned:
            raise ValueError(f"Tool results without a matching call: {', '.join(orphaned)}")

        return self
