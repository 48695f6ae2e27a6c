"""Sub-agent fan-out for the ``spawn_subagent`` tool."""

import asyncio
import json
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from orchestra.clients.base import ProviderService
from orchestra.clients.registry import ProviderRegistry
from orchestra.exceptions import ModelResolutionError, OperationCancelled
from orchestra.models.execution import SubagentResponse, SubagentSpec
from orchestra.models.messages import Message
from orchestra.models.tools import ToolCall, ToolDefinition, ToolResult
from orchestra.services.cancellation import CancellationToken
from orchestra.services.events import ExecutionEvents
from orchestra.utils.logging import get_logger

if TYPE_CHECKING:
    from orchestra.services.executor import ToolExecutionEngine, ToolExecutionOptions

logger = get_logger(__name__)

SPAWN_SUBAGENT_TOOL_NAME = "spawn_subagent"
MAX_SUBAGENTS = 3
SUBAGENT_MAX_ITERATIONS = 5

SPAWN_SUBAGENT_TOOL = ToolDefinition(
    name=SPAWN_SUBAGENT_TOOL_NAME,
    description=(
        f"Run up to {MAX_SUBAGENTS} independent agents in parallel, each answering its own prompt with its own "
        "model, and return their combined answers. Sub-agents can use every tool except spawn_subagent."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "agents": {
                "type": "string",
                "description": (
                    'JSON array of agents, e.g. [{"name": "researcher", '
                    '"model": "anthropic/claude-sonnet-4-5-20250929", '
                    '"prompt": "...", "systemPrompt": "optional"}]'
                ),
            }
        },
        "required": ["agents"],
    },
)

_SPECS_ADAPTER = TypeAdapter(list[SubagentSpec])


def parse_subagent_specs(raw: Any) -> list[SubagentSpec]:
    """Parse the ``agents`` input, given either as a JSON string or as a list.

    Raises:
        ValueError: If the input is not a list of valid agent specs
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"agents must be a JSON array: {e.msg}") from e
    if not isinstance(raw, list):
        raise ValueError("agents must be a JSON array of agent specs")

    try:
        return _SPECS_ADAPTER.validate_python(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValueError(details) from e


def synthesize_responses(responses: list[SubagentResponse], skipped: list[SubagentSpec]) -> str:
    """Combine sub-agent answers into the text handed back to the parent model."""
    sections = []
    for response in responses:
        if response.failed:
            sections.append(f"## {response.name} ({response.model}) [failed]\n\nError: {response.error}")
        else:
            sections.append(f"## {response.name} ({response.model})\n\n{response.content}")

    if skipped:
        names = ", ".join(spec.name for spec in skipped)
        sections.append(f"Note: only the first {MAX_SUBAGENTS} agents were run. Skipped: {names}")

    return "\n\n".join(sections)


class SubagentOrchestrator:
    """Runs sub-agents as nested, independent runs of the tool-execution engine."""

    def __init__(self, engine: "ToolExecutionEngine", provider_registry: ProviderRegistry):
        self.engine = engine
        self.provider_registry = provider_registry

    @property
    def tool_definition(self) -> ToolDefinition:
        """The spawn_subagent definition, listing the models agents may use."""
        models = ", ".join(model.key for model in self.provider_registry.get_all_available_models())
        description = f"{SPAWN_SUBAGENT_TOOL.description} Available models: {models or '(none)'}"
        return SPAWN_SUBAGENT_TOOL.model_copy(update={"description": description})

    async def spawn(
        self,
        tool_call: ToolCall,
        parent_options: "ToolExecutionOptions",
        token: CancellationToken,
    ) -> tuple[ToolResult, list[SubagentResponse]]:
        """Validate every requested agent, then run up to ``MAX_SUBAGENTS`` in parallel.

        One unknown model fails the whole call before anything runs. After
        that, an agent's failure is recorded on its own response and never
        affects its siblings.
        """
        try:
            specs = parse_subagent_specs(tool_call.input.get("agents"))
        except ValueError as e:
            return self._error(tool_call, f"Invalid spawn_subagent input: {e}"), []

        if not specs:
            return self._error(tool_call, "spawn_subagent requires at least one agent"), []

        resolved: list[tuple[SubagentSpec, ProviderService, str]] = []
        for spec in specs:
            try:
                provider, model_id = self.provider_registry.resolve(spec.model)
            except ModelResolutionError as e:
                logger.warning(f"Rejecting spawn_subagent: agent {spec.name!r} uses an invalid model: {e}")
                return self._error(tool_call, f"Invalid model for agent {spec.name}: {e}"), []
            resolved.append((spec, provider, model_id))

        runnable, skipped = resolved[:MAX_SUBAGENTS], [spec for spec, _, _ in resolved[MAX_SUBAGENTS:]]
        if skipped:
            logger.warning(f"spawn_subagent asked for {len(specs)} agents, running the first {MAX_SUBAGENTS}")

        logger.info(f"Spawning {len(runnable)} sub-agents: {', '.join(spec.name for spec, _, _ in runnable)}")
        responses = list(
            await asyncio.gather(
                *(
                    self._run_agent(spec, provider, model_id, parent_options, token)
                    for spec, provider, model_id in runnable
                )
            )
        )
        token.raise_if_cancelled()

        for response in responses:
            parent_options.events.on_subagent_response(response)

        failed = sum(response.failed for response in responses)
        logger.info(f"Sub-agents finished: {len(responses) - failed} succeeded, {failed} failed")
        result = ToolResult(tool_use_id=tool_call.id, content=synthesize_responses(responses, skipped))
        return result, responses

    async def _run_agent(
        self,
        spec: SubagentSpec,
        provider: ProviderService,
        model_id: str,
        parent_options: "ToolExecutionOptions",
        token: CancellationToken,
    ) -> SubagentResponse:
        options = replace(
            parent_options,
            max_iterations=SUBAGENT_MAX_ITERATIONS,
            tools=self._nested_tools(parent_options),
            system_prompt=spec.system_prompt,
            events=ExecutionEvents(),
            cancel_token=token,
            allow_subagents=False,
        )
        messages = [Message(role="user", content=spec.prompt)]
        response = SubagentResponse(id=spec.id, name=spec.name, model=spec.model, prompt=spec.prompt)

        try:
            result = await self.engine.run(provider, messages, model_id, options)
        except OperationCancelled:
            raise
        except Exception as e:
            logger.error(f"Sub-agent {spec.name!r} failed: {e}", exc_info=True)
            return response.model_copy(update={"error": str(e) or type(e).__name__})

        return response.model_copy(
            update={"content": result.final_content, "tool_use": result.all_tool_uses, "skill_use": result.skill_uses}
        )

    def _nested_tools(self, parent_options: "ToolExecutionOptions") -> list[ToolDefinition]:
        """The parent's tools minus spawn_subagent; sub-agents never get more than their parent."""
        if parent_options.tools is None:
            return self.engine.get_tool_definitions(allow_subagents=False)
        return [tool for tool in parent_options.tools if tool.name != SPAWN_SUBAGENT_TOOL_NAME]

    @staticmethod
    def _error(tool_call: ToolCall, message: str) -> ToolResult:
        return ToolResult(tool_use_id=tool_call.id, content=message, is_error=True)
