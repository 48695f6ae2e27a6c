"""Vault file tools: read, write and append."""

from pydantic import BaseModel, Field

from orchestra.exceptions import ToolError
from orchestra.models.tools import ApprovalRequest, ToolContext
from orchestra.services.vault import Vault
from orchestra.tools.base import ToolHandler, check_file_access, validate_path
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

_SCOPE = "allowed vault directories (notes/, skills/) or root files like memory.md. Cannot access conversations/."


class ReadFileInput(BaseModel):
    """Input schema for read_file."""

    path: str = Field(
        ...,
        min_length=1,
        description='Relative path within vault (e.g., "memory.md", "notes/todo.md", "skills/my-skill/SKILL.md")',
    )


class WriteFileInput(BaseModel):
    """Input schema for write_file."""

    path: str = Field(..., min_length=1, description='Relative path within vault (e.g., "memory.md", "notes/todo.md")')
    content: str = Field(..., description="Content to write")


class AppendFileInput(WriteFileInput):
    """Input schema for append_file."""

    content: str = Field(..., description="Content to append")


class _VaultFileTool(ToolHandler):
    def __init__(self, vault: Vault):
        self.vault = vault

    async def _read_existing(self, path: str) -> str:
        if not await self.vault.exists(path):
            return ""
        return await self.vault.read_text(path)

    @staticmethod
    def _checked_path(path: str) -> str:
        path = validate_path(path)
        check_file_access(path)
        return path


class ReadFileTool(_VaultFileTool):
    name = "read_file"
    description = f"Read a file from {_SCOPE}"
    input_model = ReadFileInput

    async def execute(self, params: ReadFileInput, context: ToolContext) -> str:
        path = self._checked_path(params.path)
        if not await self.vault.exists(path) or await self.vault.is_dir(path):
            raise ToolError(f"File not found: {path}")

        try:
            return await self.vault.read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ToolError(f"Error reading file: {e}") from e


class WriteFileTool(_VaultFileTool):
    name = "write_file"
    description = f"Write content to a file in {_SCOPE}"
    input_model = WriteFileInput
    requires_approval = True

    async def propose(self, params: WriteFileInput, context: ToolContext) -> ApprovalRequest:
        path = self._checked_path(params.path)
        return ApprovalRequest(
            path=path,
            original_content=await self._read_existing(path),
            new_content=params.content,
        )

    async def execute(self, params: WriteFileInput, context: ToolContext) -> str:
        path = self._checked_path(params.path)
        try:
            await self.vault.write_text(path, params.content, context.provenance())
        except OSError as e:
            raise ToolError(f"Error writing file: {e}") from e
        return f"Successfully wrote to {path}"


class AppendFileTool(_VaultFileTool):
    name = "append_file"
    description = f"Append content to a file in {_SCOPE}"
    input_model = AppendFileInput
    requires_approval = True

    async def propose(self, params: AppendFileInput, context: ToolContext) -> ApprovalRequest:
        path = self._checked_path(params.path)
        existing = await self._read_existing(path)
        return ApprovalRequest(path=path, original_content=existing, new_content=existing + params.content)

    async def execute(self, params: AppendFileInput, context: ToolContext) -> str:
        path = self._checked_path(params.path)
        try:
            existing = await self._read_existing(path)
            await self.vault.write_text(path, existing + params.content, context.provenance())
        except OSError as e:
            raise ToolError(f"Error appending to file: {e}") from e
        return f"Successfully appended to {path}"
