#!/usr/bin/env python3
"""Interactive chat CLI for trying the tool-execution engine against a local vault."""

import asyncio
import signal

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from orchestra.clients.anthropic import AnthropicProvider
from orchestra.clients.registry import ProviderRegistry
from orchestra.config import Settings
from orchestra.models.execution import ExecutionResult, SubagentResponse
from orchestra.models.messages import Message, ToolUse
from orchestra.models.tools import ApprovalRequest, ToolContext
from orchestra.services.cancellation import CancellationToken
from orchestra.services.events import ExecutionEvents
from orchestra.services.executor import ToolExecutionEngine, ToolExecutionOptions, build_system_prompt_with_skills
from orchestra.services.skills import SkillRegistry
from orchestra.services.vault import LocalVault
from orchestra.tools.registry import create_default_tools_registry
from orchestra.utils.logging import setup_logging


class ChatCLI:
    """Interactive chat session backed by the tool-execution engine."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.console = Console()
        self.vault = LocalVault(settings.vault_path)
        self.skill_registry = SkillRegistry()
        self.provider_registry = ProviderRegistry(
            [AnthropicProvider(api_key=settings.anthropic_api_key, config=settings.anthropic)]
        )
        self.messages: list[Message] = []

    async def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Orchestra - Interactive Chat[/bold blue]\n"
                f"Vault: {self.settings.vault_path}\n"
                f"Model: {self.settings.default_model}\n"
                "Commands: /help, /clear, /quit. Ctrl-C cancels a running response.",
                border_style="blue",
            )
        )

        async with httpx.AsyncClient() as http_client:
            tools_registry = create_default_tools_registry(
                self.vault, self.skill_registry, self.settings.secrets, http_client
            )
            engine = ToolExecutionEngine(
                tools_registry, self.skill_registry, self.provider_registry, self.settings.context
            )

            while True:
                try:
                    user_input = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/bold cyan]")
                except (EOFError, KeyboardInterrupt):
                    break

                command = user_input.strip().lower()
                if command in ["/quit", "/exit"]:
                    break
                elif command == "/help":
                    self._show_help()
                    continue
                elif command == "/clear":
                    self.messages = []
                    self.console.print("[yellow]Conversation cleared[/yellow]")
                    continue
                elif command == "":
                    continue

                self.messages.append(Message(role="user", content=user_input))
                result = await self._run(engine)
                self._record_response(result)

        self.console.print("\n[yellow]Goodbye![/yellow]")

    async def _run(self, engine: ToolExecutionEngine) -> ExecutionResult:
        provider, model_id = self.provider_registry.resolve(self.settings.default_model)
        token = CancellationToken()
        options = ToolExecutionOptions(
            system_prompt=build_system_prompt_with_skills(self.skill_registry),
            tool_context=ToolContext(conversation_id="cli"),
            events=ExecutionEvents(
                on_chunk=lambda text: self.console.print(text, end="", markup=False, highlight=False),
                on_tool_use=self._show_tool_use,
                on_subagent_response=self._show_subagent_response,
            ),
            on_approval_required=self._ask_approval,
            cancel_token=token,
            image_loader=self.vault.read_base64,
        )

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, token.cancel)
        try:
            self.console.print("\n[bold green]Assistant[/bold green]: ", end="")
            return await engine.run(provider, self.messages, model_id, options)
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            self.console.print()

    def _record_response(self, result: ExecutionResult) -> None:
        if result.cancelled:
            self.console.print("[yellow]Response cancelled[/yellow]")
        for tool_use in result.all_tool_uses:
            style = "red" if tool_use.is_error else "dim"
            self.console.print(f"[{style}]{tool_use.type}: {(tool_use.result or '')[:120]!r}[/{style}]")
        if result.skill_uses:
            self.console.print(f"[dim]Skills used: {', '.join(s.name for s in result.skill_uses)}[/dim]")

        self.messages.append(
            Message(
                role="assistant",
                content=result.final_content,
                model=self.settings.default_model,
                tool_use=result.all_tool_uses,
                skill_use=result.skill_uses,
            )
        )

    def _show_tool_use(self, tool_use: ToolUse) -> None:
        self.console.print(f"\n[magenta]Using tool {tool_use.type}[/magenta]")

    def _show_subagent_response(self, response: SubagentResponse) -> None:
        body = f"Error: {response.error}" if response.failed else response.content
        self.console.print(
            Panel(Markdown(body), title=f"[bold]{response.name}[/bold] ({response.model})", border_style="cyan")
        )

    async def _ask_approval(self, request: ApprovalRequest) -> bool:
        self.console.print(
            Panel(
                f"[bold]Current:[/bold]\n{request.original_content or '(new file)'}\n\n"
                f"[bold]Proposed:[/bold]\n{request.new_content}",
                title=f"[yellow]Write to {request.path}[/yellow]",
                border_style="yellow",
            )
        )
        return await asyncio.to_thread(Confirm.ask, "Allow this write?", default=False)

    def _show_help(self) -> None:
        """Show help information."""
        self.console.print(
            Panel(
                "[bold]Available Commands:[/bold]\n"
                "• /help - Show this help message\n"
                "• /clear - Clear the conversation\n"
                "• /quit or /exit - Exit the chat\n\n"
                "[bold]Environment:[/bold] ANTHROPIC_API_KEY, ORCHESTRA_VAULT_PATH, ORCHESTRA_DEFAULT_MODEL, LOG_LEVEL",
                title="[blue]Help[/blue]",
                border_style="blue",
            )
        )


def main() -> None:
    """Main entry point for the chat CLI."""
    settings = Settings.from_env()
    setup_logging(settings.log)
    asyncio.run(ChatCLI(settings).start())


if __name__ == "__main__":
    main()
