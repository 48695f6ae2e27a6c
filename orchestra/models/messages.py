"""Conversation message data models."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class Attachment(BaseModel):
    """A file attached to a message (images only)."""

    type: Literal["image"] = "image"
    path: str  # Vault-relative path, e.g. attachments/{conversation}-img-001.png
    mime_type: str


class ToolUse(BaseModel):
    """Display record of one tool invocation.

    ``result`` and ``is_error`` are filled in once the matching tool call has
    executed; ``id`` is the provider's tool-call id and is the only key used
    to correlate the two.
    """

    id: str | None = None
    type: str
    input: dict[str, Any] | None = None
    result: str | None = None
    is_error: bool | None = None


class SkillUse(BaseModel):
    """A skill consulted while producing a message."""

    name: str
    description: str | None = None


class Message(BaseModel):
    """A message in a conversation.

    ``log`` messages are for UI display only and never reach a provider.
    """

    role: Literal["user", "assistant", "log"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    model: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    tool_use: list[ToolUse] = Field(default_factory=list)
    skill_use: list[SkillUse] = Field(default_factory=list)

    class Config:
        frozen = True
