"""search_directory: case-insensitive filename and content search over the vault."""

import json
from dataclasses import dataclass, field

from pydantic import BaseModel, Field, field_validator

from orchestra.exceptions import ToolError
from orchestra.models.tools import ToolContext
from orchestra.services.vault import Vault
from orchestra.tools.base import ToolHandler, validate_path
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

MAX_RESULTS = 50
DEFAULT_MAX_RESULTS = 20
MAX_FILE_SIZE = 100 * 1024
MAX_RECURSION_DEPTH = 3
MAX_FILES_TO_SEARCH = 500
SNIPPET_CONTEXT = 50

SEARCHABLE_DIRECTORIES = ("notes/", "skills/", "conversations/")
TEXT_EXTENSIONS = frozenset({"md", "txt", "yaml", "yml", "json", "js", "ts", "css", "html"})


class SearchDirectoryInput(BaseModel):
    """Input schema for search_directory."""

    directory: str = Field(
        ..., min_length=1, description='Directory to search (e.g., "notes/", "skills/", "conversations/")'
    )
    query: str = Field(..., min_length=1, description="Text to search for (case-insensitive)")
    search_content: str = Field(
        default="true", description='Search file contents as well as names ("true" or "false")'
    )
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, description=f"Maximum files to return (up to {MAX_RESULTS})")
    file_extension: str | None = Field(default=None, description='Only search files with this extension (e.g., "md")')

    @field_validator("max_results", mode="before")
    @classmethod
    def coerce_max_results(cls, v: object) -> int:
        """Models often send numbers as strings; fall back to the default on junk."""
        try:
            value = int(v)  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return DEFAULT_MAX_RESULTS
        return min(value, MAX_RESULTS) if value > 0 else DEFAULT_MAX_RESULTS


@dataclass
class _SearchState:
    query: str
    search_content: bool
    file_extension: str | None
    max_results: int
    results: list[dict] = field(default_factory=list)
    total_matches: int = 0
    searched_files: int = 0

    @property
    def exhausted(self) -> bool:
        return len(self.results) >= self.max_results or self.searched_files >= MAX_FILES_TO_SEARCH


def is_text_file(filename: str) -> bool:
    _, dot, ext = filename.rpartition(".")
    return bool(dot) and ext.lower() in TEXT_EXTENSIONS


def find_matches(content: str, query: str) -> list[dict]:
    """Find lines containing ``query`` (already lower-cased) with a snippet of context."""
    matches = []
    for number, line in enumerate(content.split("\n"), start=1):
        index = line.lower().find(query)
        if index == -1:
            continue

        start = max(0, index - SNIPPET_CONTEXT)
        end = min(len(line), index + len(query) + SNIPPET_CONTEXT)
        snippet = line[start:end]
        if start > 0:
            snippet = "..." + snippet
        if end < len(line):
            snippet = snippet + "..."
        matches.append({"line": number, "snippet": snippet})
    return matches


class SearchDirectoryTool(ToolHandler):
    name = "search_directory"
    description = (
        "Search for files by name and content within notes/, skills/ or conversations/. "
        "Returns matching file paths with line numbers and snippets as JSON."
    )
    input_model = SearchDirectoryInput

    def __init__(self, vault: Vault):
        self.vault = vault

    async def execute(self, params: SearchDirectoryInput, context: ToolContext) -> str:
        directory = validate_path(params.directory)
        dir_path = directory if directory.endswith("/") else directory + "/"
        if not dir_path.startswith(SEARCHABLE_DIRECTORIES):
            raise ToolError(f'Access denied: search not allowed for directory "{params.directory}"')

        if not await self.vault.is_dir(directory):
            raise ToolError(f"Directory not found: {params.directory}")

        state = _SearchState(
            query=params.query.lower(),
            search_content=params.search_content.strip().lower() != "false",
            file_extension=params.file_extension.lstrip(".") if params.file_extension else None,
            max_results=params.max_results,
        )
        await self._search(directory.rstrip("/"), state, depth=0)

        logger.debug(
            f"search_directory {directory!r} for {params.query!r}: "
            f"{len(state.results)} files matched, {state.searched_files} searched"
        )
        response = {
            "results": state.results[: state.max_results],
            "total_matches": state.total_matches,
            "searched_files": state.searched_files,
        }
        return json.dumps(response, indent=2)

    async def _search(self, directory: str, state: _SearchState, depth: int) -> None:
        if depth > MAX_RECURSION_DEPTH or state.exhausted:
            return

        try:
            entries = await self.vault.list_dir(directory)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return

        for name, is_dir in entries:
            if state.exhausted:
                break

            path = f"{directory}/{name}"
            if is_dir:
                await self._search(path, state, depth + 1)
                continue

            if state.file_extension and not name.endswith(f".{state.file_extension}"):
                continue
            if not is_text_file(name):
                continue

            state.searched_files += 1
            filename_matches = state.query in name.lower()
            content_matches: list[dict] = []

            if state.search_content:
                try:
                    content = await self.vault.read_text(path)
                except (OSError, UnicodeDecodeError) as e:
                    logger.debug(f"Skipping unreadable file {path}: {e}")
                    content = ""
                if len(content) > MAX_FILE_SIZE:
                    continue
                content_matches = find_matches(content, state.query)

            if filename_matches or content_matches:
                state.results.append({"path": path, "matches": content_matches})
                state.total_matches += max(1, len(content_matches))
