"""Non-interactive trigger evaluation on top of the tool-execution engine."""

import json
import re
from datetime import datetime

from orchestra.clients.registry import ProviderRegistry
from orchestra.models.execution import ExecutionStatus
from orchestra.models.messages import Message
from orchestra.models.triggers import TriggerConfig, TriggerResult
from orchestra.services.cancellation import CancellationToken
from orchestra.services.executor import ToolExecutionEngine, ToolExecutionOptions, build_system_prompt_with_skills
from orchestra.services.skills import SkillRegistry
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

TRIGGER_MAX_ITERATIONS = 5

_CODE_BLOCK_VERDICT = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```\s*$")
_BARE_VERDICT = re.compile(r"\{[^{}]*\"triggered\"[^{}]*\}\s*$")

BASELINE_ACKNOWLEDGEMENT = (
    "I will compare the current state against this baseline and only trigger if there is a meaningful change."
)

_BASELINE_INSTRUCTIONS = """A BASELINE from your last notification is provided below.
The baseline is your last assistant message from when you previously triggered.
Only trigger if the current state has MEANINGFULLY CHANGED from this baseline.
Do NOT re-trigger for the same condition that was already reported.
Compare the current data against the baseline to detect changes."""

_FIRST_CHECK_INSTRUCTIONS = """This is the FIRST CHECK - no baseline exists yet.
Gather the current state and evaluate the condition.
If the condition is already met, trigger and report it.
Your assistant response will become the baseline for future comparisons."""


def build_trigger_system_prompt(has_baseline: bool, now: datetime | None = None) -> str:
    """System prompt for a trigger check, including the current time and the verdict format."""
    now = (now or datetime.now()).astimezone()
    instructions = _BASELINE_INSTRUCTIONS if has_baseline else _FIRST_CHECK_INSTRUCTIONS

    return f"""You are a trigger evaluation system that monitors conditions and notifies the user when they're met.

Current time: {now.strftime("%I:%M %p")} on {now.strftime("%A, %B %d, %Y")}
Timezone: {now.tzname()}

{instructions}

You have access to tools like http_get to gather real-time information. Use them as needed.

Your response format depends on whether you should trigger:

IF TRIGGERING (condition met / changed meaningfully):
Provide a helpful, informative response to the user about the current state.
Include specific data points (numbers, prices, percentages, etc.) that are relevant.
End your response with a JSON block:
```json
{{"triggered": true}}
```

IF NOT TRIGGERING (condition not met / no meaningful change):
End with a JSON block explaining why:
```json
{{"triggered": false, "reason": "brief explanation"}}
```

You MUST end with the JSON block. Any text before it will be shown to the user if triggered."""


def extract_baseline(config: TriggerConfig, messages: list[Message]) -> str | None:
    """Find the assistant message written when the trigger last fired."""
    if config.last_triggered is None:
        return None

    for message in messages:
        if message.role == "assistant" and message.timestamp == config.last_triggered:
            return message.content
    return None


def parse_trigger_response(content: str) -> TriggerResult:
    """Parse the trailing JSON verdict of a trigger response."""
    code_block = _CODE_BLOCK_VERDICT.search(content)
    bare = None if code_block else _BARE_VERDICT.search(content)
    if code_block:
        verdict_json, body = code_block.group(1), content[: code_block.start()]
    elif bare:
        verdict_json, body = bare.group(0), content[: bare.start()]
    else:
        return TriggerResult(result="error", error=f'No JSON verdict found in response: "{content[-200:]}"')

    try:
        verdict = json.loads(verdict_json)
    except json.JSONDecodeError as e:
        return TriggerResult(result="error", error=f"Parse error: {e}")

    triggered = verdict.get("triggered") if isinstance(verdict, dict) else None
    if not isinstance(triggered, bool):
        return TriggerResult(
            result="error",
            error=f'Invalid response: triggered must be boolean, got "{type(triggered).__name__}"',
        )

    if triggered:
        return TriggerResult(result="triggered", response=body.strip() or "Condition met.")
    return TriggerResult(result="skipped", response=str(verdict.get("reason") or "Condition not met"))


class TriggerExecutor:
    """Evaluates a trigger's condition with tools and reports whether it fired."""

    def __init__(
        self,
        engine: ToolExecutionEngine,
        provider_registry: ProviderRegistry,
        skill_registry: SkillRegistry,
    ):
        self.engine = engine
        self.provider_registry = provider_registry
        self.skill_registry = skill_registry

    async def execute(
        self,
        config: TriggerConfig,
        conversation_messages: list[Message],
        cancel_token: CancellationToken | None = None,
    ) -> TriggerResult:
        """Run one trigger check.

        Raises:
            ModelResolutionError: If the trigger's model is not available
        """
        provider, model_id = self.provider_registry.resolve(config.model)

        baseline = extract_baseline(config, conversation_messages)
        messages: list[Message] = []
        if baseline:
            messages.append(Message(role="user", content=f"BASELINE (from your last notification):\n\n{baseline}"))
            messages.append(Message(role="assistant", content=BASELINE_ACKNOWLEDGEMENT))
        messages.append(Message(role="user", content=config.trigger_prompt))

        system_prompt = build_system_prompt_with_skills(
            self.skill_registry, base_prompt=build_trigger_system_prompt(has_baseline=bool(baseline))
        )
        options = ToolExecutionOptions(
            max_iterations=TRIGGER_MAX_ITERATIONS,
            system_prompt=system_prompt,
            cancel_token=cancel_token,
        )

        logger.info(f"Evaluating trigger with {config.model} (baseline: {'yes' if baseline else 'no'})")
        result = await self.engine.run(provider, messages, model_id, options)
        if result.status is ExecutionStatus.CANCELLED:
            return TriggerResult(result="error", error="Trigger evaluation was cancelled")

        verdict = parse_trigger_response(result.final_content)
        logger.info(f"Trigger evaluated: {verdict.result}")
        return verdict
