"""Tools registry: dispatches tool calls by name to their handlers."""

from collections.abc import Mapping

import httpx
from pydantic import ValidationError

from orchestra.exceptions import OperationCancelled, ToolError
from orchestra.models.tools import ToolCall, ToolContext, ToolDefinition, ToolResult
from orchestra.services.skills import SkillRegistry
from orchestra.services.vault import Vault
from orchestra.tools.base import ToolHandler
from orchestra.tools.files import AppendFileTool, ReadFileTool, WriteFileTool
from orchestra.tools.http import HttpGetTool, HttpPostTool
from orchestra.tools.search import SearchDirectoryTool
from orchestra.tools.secrets import GetSecretTool
from orchestra.tools.skills import UseSkillTool
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)


def _format_validation_error(tool_name: str, error: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}" for err in error.errors()
    )
    return f"Invalid input for {tool_name}: {details}"


class ToolsRegistry:
    """Registry for managing the tools available to the model.

    ``execute`` never raises for tool-level problems: unknown names, invalid
    input and handler failures all come back as ``is_error`` results.
    Cancellation is the one exception that propagates.
    """

    def __init__(self, handlers: list[ToolHandler] | None = None):
        self._tools: dict[str, ToolHandler] = {}
        for handler in handlers or []:
            self.register_tool(handler)

    def register_tool(self, handler: ToolHandler) -> None:
        """Register a new tool in the registry."""
        self._tools[handler.name] = handler

    def get_tool_definitions(self) -> list[ToolDefinition]:
        """Get provider-facing definitions of every registered tool."""
        return [handler.definition for handler in self._tools.values()]

    def get_tool(self, name: str) -> ToolHandler | None:
        return self._tools.get(name)

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def execute(self, tool_call: ToolCall, context: ToolContext | None = None) -> ToolResult:
        """Execute one tool call.

        A write-class tool only proposes its change, returning
        ``requires_approval=True`` with the approval payload, unless the
        context explicitly sets ``require_write_approval=False``.
        """
        context = context or ToolContext()
        logger.debug(f"Executing tool {tool_call.name} ({tool_call.id})")

        handler = self._tools.get(tool_call.name)
        if handler is None:
            logger.error(f"Unknown tool: {tool_call.name}")
            return ToolResult(tool_use_id=tool_call.id, content=f"Unknown tool: {tool_call.name}", is_error=True)

        try:
            params = handler.parse_input(tool_call.input)

            if handler.requires_approval and context.require_write_approval:
                approval = await handler.propose(params, context)
                logger.info(f"{tool_call.name} on {approval.path} requires approval")
                return ToolResult(
                    tool_use_id=tool_call.id,
                    content=f"Approval required to modify {approval.path}",
                    requires_approval=True,
                    approval_data=approval,
                )

            content = await handler.execute(params, context)
        except OperationCancelled:
            raise
        except ValidationError as e:
            message = _format_validation_error(tool_call.name, e)
            logger.error(f"{tool_call.name} failed: {message}")
            return ToolResult(tool_use_id=tool_call.id, content=message, is_error=True)
        except ToolError as e:
            logger.error(f"{tool_call.name} failed: {e}")
            return ToolResult(tool_use_id=tool_call.id, content=str(e), is_error=True)
        except Exception as e:
            logger.error(f"{tool_call.name} raised an unexpected error: {e}", exc_info=True)
            return ToolResult(tool_use_id=tool_call.id, content=f"Tool execution error: {e}", is_error=True)

        logger.debug(f"{tool_call.name} completed successfully")
        return ToolResult(tool_use_id=tool_call.id, content=content)


def create_default_tools_registry(
    vault: Vault,
    skill_registry: SkillRegistry,
    secrets: Mapping[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ToolsRegistry:
    """Create a registry holding every built-in tool.

    The HTTP tools are only registered when an ``http_client`` is given; its
    lifetime belongs to the caller.
    """
    secrets = secrets or {}
    handlers: list[ToolHandler] = [
        ReadFileTool(vault),
        WriteFileTool(vault),
        AppendFileTool(vault),
        SearchDirectoryTool(vault),
        GetSecretTool(secrets),
        UseSkillTool(skill_registry),
    ]
    if http_client is not None:
        handlers += [HttpGetTool(http_client, secrets), HttpPostTool(http_client, secrets)]

    return ToolsRegistry(handlers)
