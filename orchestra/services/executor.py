"""Tool-execution engine: drives provider/tool rounds until the model stops calling tools."""

import asyncio
from dataclasses import dataclass, field

from orchestra.clients.base import ChatOptions, ImageLoader, ProviderService
from orchestra.clients.registry import ProviderRegistry
from orchestra.exceptions import OperationCancelled
from orchestra.models.execution import ChatResult, ExecutionResult, ExecutionStatus, SubagentResponse
from orchestra.models.messages import Message, SkillUse, ToolUse
from orchestra.models.skills import ConversationRef
from orchestra.models.tools import ToolCall, ToolContext, ToolDefinition, ToolResult, ToolRound
from orchestra.services.cancellation import CancellationToken
from orchestra.services.context_manager import ContextManager, ContextManagerConfig
from orchestra.services.events import ApprovalCallback, ExecutionEvents
from orchestra.services.skills import SkillRegistry
from orchestra.services.subagents import SPAWN_SUBAGENT_TOOL_NAME, SubagentOrchestrator
from orchestra.tools.registry import ToolsRegistry
from orchestra.tools.skills import USE_SKILL_TOOL_NAME
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 10
DISPLAY_RESULT_MAX_CHARS = 500
ROUND_SEPARATOR = " "  # Streamed between rounds so text from consecutive rounds doesn't run together


@dataclass
class ToolExecutionOptions:
    """Per-run options for ``ToolExecutionEngine.run``."""

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    tools: list[ToolDefinition] | None = None  # Defaults to every registered tool
    system_prompt: str | None = None
    tool_context: ToolContext = field(default_factory=ToolContext)
    events: ExecutionEvents = field(default_factory=ExecutionEvents)
    on_approval_required: ApprovalCallback | None = None  # Without one, write-class tools are always rejected
    cancel_token: CancellationToken | None = None
    image_loader: ImageLoader | None = None
    allow_subagents: bool = True


@dataclass
class _RunState:
    offered: set[str] = field(default_factory=set)  # Names of the tools handed to the provider
    tool_uses: list[ToolUse] = field(default_factory=list)
    skill_uses: list[SkillUse] = field(default_factory=list)
    subagent_responses: list[SubagentResponse] = field(default_factory=list)
    streamed: list[str] = field(default_factory=list)

    @property
    def streamed_text(self) -> str:
        return "".join(self.streamed)

    @property
    def displayed_tool_uses(self) -> list[ToolUse]:
        return [tool_use for tool_use in self.tool_uses if tool_use.type != USE_SKILL_TOOL_NAME]


class ToolExecutionEngine:
    """Runs a conversation against a provider with tool support.

    The registries are injected once and shared by every run, including the
    nested runs made for sub-agents.
    """

    def __init__(
        self,
        tools_registry: ToolsRegistry,
        skill_registry: SkillRegistry | None = None,
        provider_registry: ProviderRegistry | None = None,
        context_config: ContextManagerConfig | None = None,
    ):
        self.tools_registry = tools_registry
        self.skill_registry = skill_registry
        self.provider_registry = provider_registry
        self.context_manager = ContextManager(context_config)
        self.subagents = SubagentOrchestrator(self, provider_registry) if provider_registry else None

    def get_tool_definitions(self, allow_subagents: bool = True) -> list[ToolDefinition]:
        """Definitions offered to the model by default."""
        tools = self.tools_registry.get_tool_definitions()
        if allow_subagents and self.subagents is not None:
            tools.append(self.subagents.tool_definition)
        return tools

    async def run(
        self,
        provider: ProviderService,
        messages: list[Message],
        model: str,
        options: ToolExecutionOptions | None = None,
    ) -> ExecutionResult:
        """Run the tool loop until the model stops requesting tools.

        Args:
            provider: Provider service to talk to
            messages: Conversation history, oldest first
            model: Provider-specific model id (without the provider prefix)
            options: Per-run options

        Returns:
            The final text plus everything recorded along the way. Cancellation
            is reported through ``status``; provider failures propagate.
        """
        options = options or ToolExecutionOptions()
        token = options.cancel_token or CancellationToken()
        tools = options.tools if options.tools is not None else self.get_tool_definitions(options.allow_subagents)
        state = _RunState(offered={tool.name for tool in tools})

        def on_chunk(text: str) -> None:
            state.streamed.append(text)
            options.events.on_chunk(text)

        chat_options = ChatOptions(
            model=model,
            system_prompt=options.system_prompt,
            tools=tools,
            on_chunk=on_chunk,
            on_tool_use=options.events.on_tool_use,
            cancel_token=token,
            image_loader=options.image_loader,
        )

        budget = self.context_manager.calculate_budget(options.system_prompt or "", tools)
        prepared = self.context_manager.prepare_context(messages, budget)
        if prepared.truncated:
            logger.info(
                f"Dropped {prepared.truncated_count} old messages to fit {budget.messages} token budget "
                f"({prepared.estimated_tokens} tokens used)"
            )

        logger.info(f"Starting run with {model}: {len(prepared.messages)} messages, {len(tools)} tools")

        rounds: list[ToolRound] = []
        iterations = 0
        try:
            result = await token.guard(provider.send_message(prepared.messages, chat_options))
            self._record_tool_uses(result, state)

            while iterations < options.max_iterations and result.wants_tools:
                iterations += 1
                self._track_skills(result.tool_calls, state)

                tool_results = await self._execute_round(result.tool_calls, options, token, state)
                rounds.append(
                    ToolRound(
                        text_content=result.content or None,
                        tool_calls=result.tool_calls,
                        tool_results=tool_results,
                    )
                )

                on_chunk(ROUND_SEPARATOR)

                result = await token.guard(
                    provider.send_message_with_tool_results(prepared.messages, rounds, chat_options)
                )
                self._record_tool_uses(result, state)

        except OperationCancelled:
            logger.info(f"Run cancelled after {iterations} iterations")
            return ExecutionResult(
                final_content=state.streamed_text,
                all_tool_uses=state.displayed_tool_uses,
                skill_uses=state.skill_uses,
                iterations=iterations,
                subagent_responses=state.subagent_responses,
                status=ExecutionStatus.CANCELLED,
                truncated_count=prepared.truncated_count,
            )

        status = ExecutionStatus.COMPLETED
        if result.wants_tools:
            logger.warning(f"Stopped after reaching max iterations ({options.max_iterations})")
            status = ExecutionStatus.MAX_ITERATIONS

        logger.info(f"Run finished ({status}) after {iterations} iterations")
        return ExecutionResult(
            final_content=result.content,
            all_tool_uses=state.displayed_tool_uses,
            skill_uses=state.skill_uses,
            iterations=iterations,
            subagent_responses=state.subagent_responses,
            status=status,
            truncated_count=prepared.truncated_count,
        )

    def _record_tool_uses(self, result: ChatResult, state: _RunState) -> None:
        known_ids = {tool_use.id for tool_use in state.tool_uses if tool_use.id}
        state.tool_uses.extend(
            tool_use for tool_use in result.tool_use if not tool_use.id or tool_use.id not in known_ids
        )

    def _track_skills(self, tool_calls: list[ToolCall], state: _RunState) -> None:
        for tool_call in tool_calls:
            if tool_call.name != USE_SKILL_TOOL_NAME:
                continue

            name = tool_call.input.get("name")
            if not isinstance(name, str) or not name:
                continue
            if any(skill_use.name == name for skill_use in state.skill_uses):
                continue

            skill = self.skill_registry.get_skill(name) if self.skill_registry else None
            state.skill_uses.append(SkillUse(name=name, description=skill.description if skill else None))

    async def _execute_round(
        self,
        tool_calls: list[ToolCall],
        options: ToolExecutionOptions,
        token: CancellationToken,
        state: _RunState,
    ) -> list[ToolResult]:
        """Execute every call of a round concurrently; results keep call order."""
        outcomes = await asyncio.gather(
            *(self._execute_tool_call(tool_call, options, token, state) for tool_call in tool_calls),
            return_exceptions=True,
        )

        results: list[ToolResult] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
        return results

    async def _execute_tool_call(
        self,
        tool_call: ToolCall,
        options: ToolExecutionOptions,
        token: CancellationToken,
        state: _RunState,
    ) -> ToolResult:
        token.raise_if_cancelled()

        if tool_call.name not in state.offered:
            logger.warning(f"Model called {tool_call.name}, which was not offered in this run")
            result = ToolResult(tool_use_id=tool_call.id, content=f"Unknown tool: {tool_call.name}", is_error=True)
        elif tool_call.name == SPAWN_SUBAGENT_TOOL_NAME and options.allow_subagents and self.subagents is not None:
            result, responses = await self.subagents.spawn(tool_call, options, token)
            state.subagent_responses.extend(responses)
        else:
            result = await token.guard(self.tools_registry.execute(tool_call, options.tool_context))
            if result.requires_approval and result.approval_data is not None:
                result = await self._resolve_approval(tool_call, result, options, token)

        if tool_call.name != USE_SKILL_TOOL_NAME:
            self._attach_result(tool_call, result, options.events, state)
        return result

    async def _resolve_approval(
        self,
        tool_call: ToolCall,
        pending: ToolResult,
        options: ToolExecutionOptions,
        token: CancellationToken,
    ) -> ToolResult:
        """Ask the human, then perform the write only if approved."""
        approval = pending.approval_data
        assert approval is not None

        if options.on_approval_required is None:
            logger.warning(f"No approval callback configured, rejecting {tool_call.name} on {approval.path}")
            approved = False
        else:
            try:
                approved = await token.guard(options.on_approval_required(approval))
            except OperationCancelled:
                raise
            except Exception as e:
                logger.error(f"Approval callback failed for {approval.path}: {e}", exc_info=True)
                return ToolResult(
                    tool_use_id=tool_call.id, content=f"Approval failed for {approval.path}: {e}", is_error=True
                )

        if not approved:
            logger.warning(f"User rejected {tool_call.name} on {approval.path}")
            return ToolResult(
                tool_use_id=tool_call.id, content=f"User rejected the write to {approval.path}", is_error=True
            )

        logger.info(f"User approved {tool_call.name} on {approval.path}")
        approved_context = options.tool_context.model_copy(update={"require_write_approval": False})
        return await token.guard(self.tools_registry.execute(tool_call, approved_context))

    def _attach_result(
        self, tool_call: ToolCall, result: ToolResult, events: ExecutionEvents, state: _RunState
    ) -> None:
        """Patch the call's display entry with a preview of its result."""
        entry = next((tool_use for tool_use in state.tool_uses if tool_use.id == tool_call.id), None)
        if entry is None:
            # Provider never reported this call while streaming
            entry = ToolUse(id=tool_call.id, type=tool_call.name)
            state.tool_uses.append(entry)
            events.on_tool_use(entry)

        if entry.input is None:
            entry.input = tool_call.input
        entry.result = result.content[:DISPLAY_RESULT_MAX_CHARS]
        entry.is_error = result.is_error
        events.on_tool_result(entry)


def build_system_prompt_with_skills(
    skill_registry: SkillRegistry,
    base_prompt: str | None = None,
    conversation: ConversationRef | None = None,
) -> str:
    """Assemble a system prompt with the skill catalog and optional conversation details."""
    sections: list[str] = []
    if conversation is not None:
        details = f"Conversation ID: {conversation.id}"
        if conversation.title:
            details += f"\nTitle: {conversation.title}"
        sections.append(f"# Current Conversation\n\n{details}")

    skills_prompt = skill_registry.build_system_prompt().strip()
    if skills_prompt:
        sections.append(skills_prompt)
    if base_prompt:
        sections.append(base_prompt)

    return "\n\n".join(sections)
