"""Tests for spawn_subagent fan-out."""

import asyncio
import json

import pytest

from orchestra.clients.registry import ProviderRegistry
from orchestra.models.execution import ChatResult, ExecutionStatus, SubagentResponse, SubagentSpec
from orchestra.models.messages import Message
from orchestra.services.events import ExecutionEvents
from orchestra.services.executor import ToolExecutionEngine, ToolExecutionOptions
from orchestra.services.subagents import MAX_SUBAGENTS, parse_subagent_specs, synthesize_responses

from .conftest import ScriptedProvider, text_response, tool_response

MESSAGES = [Message(role="user", content="Ask a few experts about tea.")]


async def _echo(messages, rounds, options) -> ChatResult:
    prompt = messages[-1].content
    if prompt == "fail":
        raise RuntimeError("model exploded")
    return text_response(f"answer to {prompt}")


def _agents(*names: str, model: str = "sub/model-a") -> dict:
    specs = [{"name": name, "model": model, "prompt": name} for name in names]
    return {"agents": json.dumps(specs)}


@pytest.fixture
def sub_provider():
    return ScriptedProvider(provider_type="sub", responder=_echo)


@pytest.fixture
def parent():
    return ScriptedProvider(provider_type="parent")


@pytest.fixture
def fanout_engine(tools_registry, skill_registry, parent, sub_provider):
    return ToolExecutionEngine(tools_registry, skill_registry, ProviderRegistry([parent, sub_provider]))


def _spawn_result(parent: ScriptedProvider):
    return parent.calls[1].rounds[0].tool_results[0]


class TestSpawnSubagent:
    """Tests for running sub-agents from the tool loop."""

    @pytest.mark.asyncio
    async def test_runs_agents_and_synthesizes(self, fanout_engine, parent, sub_provider):
        """Test that agents run and their answers are combined under headings."""
        parent.script = [tool_response(("sp1", "spawn_subagent", _agents("a", "b"))), text_response("Both agree.")]

        result = await fanout_engine.run(parent, MESSAGES, "model-a")

        assert result.final_content == "Both agree."
        assert len(sub_provider.calls) == 2
        spawn_result = _spawn_result(parent)
        assert spawn_result.is_error is False
        assert spawn_result.content == (
            "## a (sub/model-a)\n\nanswer to a\n\n## b (sub/model-a)\n\nanswer to b"
        )
        assert [r.content for r in result.subagent_responses] == ["answer to a", "answer to b"]

    @pytest.mark.asyncio
    async def test_accepts_agents_as_list(self, fanout_engine, parent, sub_provider):
        """Test that agents may be given as a list instead of a JSON string."""
        agents = [{"name": "a", "model": "sub/model-a", "prompt": "a"}]
        parent.script = [tool_response(("sp1", "spawn_subagent", {"agents": agents})), text_response("ok")]

        await fanout_engine.run(parent, MESSAGES, "model-a")

        assert len(sub_provider.calls) == 1

    @pytest.mark.asyncio
    async def test_only_first_three_run(self, fanout_engine, parent, sub_provider):
        """Test that extra agents are skipped and named in the result."""
        parent.script = [
            tool_response(("sp1", "spawn_subagent", _agents("a", "b", "c", "d", "e"))),
            text_response("ok"),
        ]

        result = await fanout_engine.run(parent, MESSAGES, "model-a")

        assert len(sub_provider.calls) == MAX_SUBAGENTS
        assert [r.name for r in result.subagent_responses] == ["a", "b", "c"]
        assert _spawn_result(parent).content.endswith("Note: only the first 3 agents were run. Skipped: d, e")

    @pytest.mark.asyncio
    async def test_unknown_model_fails_before_anything_runs(self, fanout_engine, parent, sub_provider):
        """Test that one invalid model fails the call before any agent starts."""
        agents = [
            {"name": "a", "model": "sub/model-a", "prompt": "a"},
            {"name": "b", "model": "nope/model-x", "prompt": "b"},
        ]
        parent.script = [
            tool_response(("sp1", "spawn_subagent", {"agents": json.dumps(agents)})),
            text_response("ok"),
        ]

        result = await fanout_engine.run(parent, MESSAGES, "model-a")

        spawn_result = _spawn_result(parent)
        assert spawn_result.is_error is True
        assert spawn_result.content.startswith("Invalid model for agent b:")
        assert sub_provider.calls == []
        assert result.subagent_responses == []

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_siblings(self, fanout_engine, parent):
        """Test that a failing agent is reported without failing the others."""
        parent.script = [tool_response(("sp1", "spawn_subagent", _agents("ok", "fail"))), text_response("ok")]

        result = await fanout_engine.run(parent, MESSAGES, "model-a")

        succeeded, failed = result.subagent_responses
        assert succeeded.content == "answer to ok"
        assert succeeded.failed is False
        assert failed.error == "model exploded"
        spawn_result = _spawn_result(parent)
        assert spawn_result.is_error is False
        assert "## fail (sub/model-a) [failed]\n\nError: model exploded" in spawn_result.content

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("agents", "message"),
        [
            ("not json", "Invalid spawn_subagent input:"),
            ("[]", "spawn_subagent requires at least one agent"),
            ('[{"name": "a"}]', "Invalid spawn_subagent input:"),
        ],
    )
    async def test_invalid_input(self, fanout_engine, parent, sub_provider, agents, message):
        """Test the errors for malformed or empty agent lists."""
        parent.script = [tool_response(("sp1", "spawn_subagent", {"agents": agents})), text_response("ok")]

        await fanout_engine.run(parent, MESSAGES, "model-a")

        assert _spawn_result(parent).is_error is True
        assert _spawn_result(parent).content.startswith(message)
        assert sub_provider.calls == []

    @pytest.mark.asyncio
    async def test_nested_runs_cannot_spawn(self, fanout_engine, parent, sub_provider):
        """Test that nested runs get their own system prompt and no spawn_subagent tool."""
        specs = [{"name": "a", "model": "sub/model-a", "prompt": "a", "systemPrompt": "You are a tea expert."}]
        parent.script = [
            tool_response(("sp1", "spawn_subagent", {"agents": json.dumps(specs)})),
            text_response("ok"),
        ]

        await fanout_engine.run(parent, MESSAGES, "model-a", ToolExecutionOptions(system_prompt="Parent prompt"))

        nested = sub_provider.calls[0]
        tool_names = [tool.name for tool in nested.options.tools]
        assert "spawn_subagent" not in tool_names
        assert "read_file" in tool_names
        assert nested.options.system_prompt == "You are a tea expert."
        assert nested.options.model == "model-a"
        assert [m.content for m in nested.messages] == ["a"]

    @pytest.mark.asyncio
    async def test_nested_tools_limited_to_parent_tools(self, fanout_engine, parent, sub_provider, tmp_path):
        """Test that a parent restricted to read-only tools cannot hand write tools to its agents."""
        allowed = [t for t in fanout_engine.get_tool_definitions() if t.name in {"read_file", "spawn_subagent"}]
        sub_provider.script = [
            tool_response(("w1", "write_file", {"path": "memory.md", "content": "hacked"})),
            text_response("could not write"),
        ]
        parent.script = [tool_response(("sp1", "spawn_subagent", _agents("a"))), text_response("ok")]

        async def approve(request):
            return True

        await fanout_engine.run(
            parent, MESSAGES, "model-a", ToolExecutionOptions(tools=allowed, on_approval_required=approve)
        )

        assert [tool.name for tool in sub_provider.calls[0].options.tools] == ["read_file"]
        assert sub_provider.calls[1].rounds[0].tool_results[0].content == "Unknown tool: write_file"
        assert (tmp_path / "memory.md").read_text(encoding="utf-8") == "User likes tea."

    @pytest.mark.asyncio
    async def test_nested_spawn_request_is_an_unknown_tool(self, fanout_engine, parent, sub_provider):
        """Test that a nested attempt to spawn agents is answered as an unknown tool."""
        sub_provider.script = [
            tool_response(("n1", "spawn_subagent", _agents("deeper"))),
            text_response("gave up"),
        ]
        parent.script = [tool_response(("sp1", "spawn_subagent", _agents("a"))), text_response("ok")]

        result = await fanout_engine.run(parent, MESSAGES, "model-a")

        assert result.subagent_responses[0].content == "gave up"
        assert sub_provider.calls[1].rounds[0].tool_results[0].content == "Unknown tool: spawn_subagent"

    @pytest.mark.asyncio
    async def test_subagent_tools_recorded_on_response_only(self, fanout_engine, parent, sub_provider):
        """Test that nested tool use is kept on the agent response, not the parent's display."""
        sub_provider.script = [tool_response(("r1", "read_file", {"path": "memory.md"})), text_response("Tea.")]
        parent.script = [tool_response(("sp1", "spawn_subagent", _agents("a"))), text_response("ok")]
        seen_by_parent = []
        subagent_events: list[SubagentResponse] = []
        events = ExecutionEvents(on_tool_use=seen_by_parent.append, on_subagent_response=subagent_events.append)

        result = await fanout_engine.run(parent, MESSAGES, "model-a", ToolExecutionOptions(events=events))

        [response] = subagent_events
        assert response.content == "Tea."
        assert [(t.type, t.result) for t in response.tool_use] == [("read_file", "User likes tea.")]
        assert [t.type for t in seen_by_parent] == ["spawn_subagent"]
        assert [t.type for t in result.all_tool_uses] == ["spawn_subagent"]

    @pytest.mark.asyncio
    async def test_parent_cancellation_reaches_subagents(self, fanout_engine, parent, sub_provider):
        """Test that cancelling inside an agent cancels the parent run."""
        async def cancel_everything(messages, rounds, options):
            options.cancel_token.cancel()
            await asyncio.sleep(10)

        sub_provider.script = [cancel_everything]
        parent.script = [tool_response(("sp1", "spawn_subagent", _agents("a")), text="Asking.")]

        result = await asyncio.wait_for(fanout_engine.run(parent, MESSAGES, "model-a"), timeout=2)

        assert result.status == ExecutionStatus.CANCELLED
        assert result.final_content == "Asking."
        assert len(parent.calls) == 1


class TestSpecParsing:
    """Tests for parse_subagent_specs and synthesize_responses."""

    def test_parse_json_string(self):
        """Test parsing agents from a JSON string."""
        [spec] = parse_subagent_specs('[{"name": "a", "model": "sub/m", "prompt": "p", "systemPrompt": "s"}]')
        assert spec.system_prompt == "s"

    def test_parse_rejects_object(self):
        """Test that a single JSON object is not accepted as the agents list."""
        with pytest.raises(ValueError, match="JSON array"):
            parse_subagent_specs('{"name": "a"}')

    def test_synthesize_with_skipped(self):
        """Test the note listing skipped agents."""
        response = SubagentResponse(id="1", name="a", model="sub/m", prompt="p", content="hi")
        skipped = [SubagentSpec(name="z", model="sub/m", prompt="p")]

        assert synthesize_responses([response], skipped) == (
            "## a (sub/m)\n\nhi\n\nNote: only the first 3 agents were run. Skipped: z"
        )
