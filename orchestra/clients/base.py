"""Provider service interface consumed by the tool-execution engine."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from orchestra.models.execution import ChatResult, ModelInfo
from orchestra.models.messages import Message, ToolUse
from orchestra.models.tools import ToolDefinition, ToolRound
from orchestra.services.cancellation import CancellationToken
from orchestra.services.events import ignore_event

ImageLoader = Callable[[str], Awaitable[str]]  # Vault-relative path -> base64 data


@dataclass
class ChatOptions:
    """Options for one provider request."""

    model: str
    system_prompt: str | None = None
    tools: list[ToolDefinition] = field(default_factory=list)
    on_chunk: Callable[[str], None] = ignore_event
    on_tool_use: Callable[[ToolUse], None] = ignore_event
    cancel_token: CancellationToken | None = None
    image_loader: ImageLoader | None = None


class ProviderService(Protocol):
    """A language-model provider able to run tool rounds.

    Implementations stream text through ``options.on_chunk``, report each
    tool call they see through ``options.on_tool_use`` and stop promptly
    once ``options.cancel_token`` is cancelled.
    """

    provider_type: str

    async def send_message(self, messages: list[Message], options: ChatOptions) -> ChatResult:
        """Send conversation history and return the model's response."""
        ...

    async def send_message_with_tool_results(
        self, messages: list[Message], rounds: list[ToolRound], options: ChatOptions
    ) -> ChatResult:
        """Send history followed by every tool round so far."""
        ...

    def get_available_models(self) -> list[ModelInfo]:
        """Models this provider offers, keyed ``provider/model-id``."""
        ...
