"""Shared fixtures: a scripted provider, a temporary vault and wired-up registries."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import pytest

from orchestra.clients.base import ChatOptions
from orchestra.clients.registry import ProviderRegistry
from orchestra.models.execution import ChatResult, ModelInfo
from orchestra.models.messages import Message, ToolUse
from orchestra.models.skills import Skill
from orchestra.models.tools import ToolCall, ToolRound
from orchestra.services.executor import ToolExecutionEngine
from orchestra.services.skills import SkillRegistry
from orchestra.services.vault import LocalVault
from orchestra.tools.registry import ToolsRegistry, create_default_tools_registry

Responder = Callable[[list[Message], list[ToolRound], ChatOptions], Awaitable[ChatResult]]


@dataclass
class ProviderCall:
    """One request seen by the scripted provider."""

    messages: list[Message]
    rounds: list[ToolRound]
    options: ChatOptions


class ScriptedProvider:
    """Provider that replays a script of responses.

    Script entries are ``ChatResult`` objects (streamed through the option
    callbacks like a real provider would), exceptions to raise, or async
    callables that produce the response themselves. Once the script runs
    out, ``responder`` is used, defaulting to a plain "done" answer.
    """

    def __init__(
        self,
        script: list[Any] | None = None,
        provider_type: str = "fake",
        models: tuple[str, ...] = ("model-a",),
        responder: Responder | None = None,
    ):
        self.script = list(script or [])
        self.provider_type = provider_type
        self.models = models
        self.responder = responder
        self.calls: list[ProviderCall] = []

    async def send_message(self, messages: list[Message], options: ChatOptions) -> ChatResult:
        return await self._next(messages, [], options)

    async def send_message_with_tool_results(
        self, messages: list[Message], rounds: list[ToolRound], options: ChatOptions
    ) -> ChatResult:
        return await self._next(messages, rounds, options)

    def get_available_models(self) -> list[ModelInfo]:
        return [ModelInfo(key=f"{self.provider_type}/{model}", name=model) for model in self.models]

    async def _next(self, messages: list[Message], rounds: list[ToolRound], options: ChatOptions) -> ChatResult:
        self.calls.append(ProviderCall(messages=list(messages), rounds=list(rounds), options=options))

        if self.script:
            entry = self.script.pop(0)
        elif self.responder is not None:
            return await self.responder(messages, rounds, options)
        else:
            entry = text_response("done")

        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return await entry(messages, rounds, options)

        if entry.content:
            options.on_chunk(entry.content)
        for tool_use in entry.tool_use:
            options.on_tool_use(tool_use)
        return entry


def text_response(text: str) -> ChatResult:
    return ChatResult(content=text, stop_reason="end_turn")


def tool_response(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> ChatResult:
    """A response requesting tools; each call is ``(id, name, input)``."""
    return ChatResult(
        content=text,
        stop_reason="tool_use",
        tool_calls=[ToolCall(id=call_id, name=name, input=params) for call_id, name, params in calls],
        tool_use=[ToolUse(id=call_id, type=name) for call_id, name, _ in calls],
    )


@pytest.fixture
def vault(tmp_path):
    """A LocalVault rooted in a temporary directory with a couple of notes."""
    (tmp_path / "notes").mkdir()
    (tmp_path / "notes" / "todo.md").write_text("- buy milk\n- call mom\n", encoding="utf-8")
    (tmp_path / "memory.md").write_text("User likes tea.", encoding="utf-8")
    return LocalVault(tmp_path)


@pytest.fixture
def skill_registry():
    return SkillRegistry(
        [
            Skill(
                name="summarize",
                description="Summarize a note",
                instructions="Read the note and write three bullet points.",
            )
        ]
    )


@pytest.fixture
def secrets():
    return {"SERPER_API_KEY": "sk-test-123"}


@pytest.fixture
def tools_registry(vault, skill_registry, secrets) -> ToolsRegistry:
    return create_default_tools_registry(vault, skill_registry, secrets)


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def provider_registry(provider):
    return ProviderRegistry([provider])


@pytest.fixture
def engine(tools_registry, skill_registry, provider_registry):
    return ToolExecutionEngine(tools_registry, skill_registry, provider_registry)
