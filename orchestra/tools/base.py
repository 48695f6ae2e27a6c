"""Base types and path rules for tools."""

import re
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel

from orchestra.exceptions import ToolError
from orchestra.models.tools import ApprovalRequest, ToolContext, ToolDefinition

# Subtrees file tools may touch; root-level files are allowed too
FILE_TOOL_DIRECTORIES = ("notes/", "skills/")

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


class ToolHandler(ABC):
    """A tool the model can call.

    Subclasses declare ``name``, ``description`` and a pydantic
    ``input_model`` whose JSON schema is handed to the provider. ``execute``
    returns the tool output as text and raises ``ToolError`` on failure.

    Write-class tools set ``requires_approval`` and implement ``propose``,
    which describes the mutation without performing it.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    input_model: ClassVar[type[BaseModel]]
    requires_approval: ClassVar[bool] = False

    @property
    def definition(self) -> ToolDefinition:
        """Get the provider-facing definition of this tool."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.input_model.model_json_schema(),
        )

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_model.model_validate(raw_input)

    @abstractmethod
    async def execute(self, params: Any, context: ToolContext) -> str:
        """Run the tool and return its output."""

    async def propose(self, params: Any, context: ToolContext) -> ApprovalRequest:
        """Describe the change a write-class tool would make."""
        raise NotImplementedError(f"{self.name} does not require approval")


def validate_path(path: str) -> str:
    """Validate a vault-relative path and return it with forward slashes.

    Raises:
        ToolError: If the path is absolute or contains a parent-directory segment
    """
    normalized = path.replace("\\", "/")
    if not normalized or normalized.startswith("/") or ".." in normalized or _DRIVE_LETTER.match(normalized):
        raise ToolError('Invalid path: must be relative and cannot contain ".."')
    return normalized


def check_file_access(path: str) -> None:
    """Confine file tools to root-level files and the notes/ and skills/ trees."""
    if "/" not in path.strip("/"):
        return
    if not path.startswith(FILE_TOOL_DIRECTORIES):
        raise ToolError(
            f"Access denied: {path} is outside the allowed vault directories (notes/, skills/ or root files)"
        )
