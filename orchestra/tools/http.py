"""HTTP tools: http_get and http_post over a shared httpx client."""

import json
from collections.abc import Mapping

import httpx
from pydantic import BaseModel, Field

from orchestra.exceptions import ToolError
from orchestra.models.tools import ToolContext
from orchestra.tools.base import ToolHandler
from orchestra.tools.secrets import resolve_secret_tokens
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

HTTP_TIMEOUT = 30.0  # seconds
MAX_CONTENT_LENGTH = 50000
CONTENT_TRUNCATED_NOTE = "\n\n[Content truncated...]"


class HttpGetInput(BaseModel):
    """Input schema for http_get."""

    url: str = Field(..., min_length=1, description="URL to fetch")


class HttpPostInput(BaseModel):
    """Input schema for http_post."""

    url: str = Field(..., min_length=1, description="URL to post to")
    body: str = Field(..., min_length=1, description="Request body (JSON string)")
    headers: str | None = Field(default=None, description="Optional headers as JSON object")


class _HttpTool(ToolHandler):
    def __init__(self, client: httpx.AsyncClient, secrets: Mapping[str, str]):
        self.client = client
        self.secrets = secrets

    def _resolve(self, text: str) -> str:
        return resolve_secret_tokens(text, self.secrets)

    async def _send(self, request: httpx.Request) -> str:
        # Never log the resolved URL: it may carry a secret
        logger.debug(f"{self.name}: {request.method} {request.url.host}")
        try:
            response = await self.client.send(request)
        except httpx.TimeoutException as e:
            raise ToolError(f"Request timed out after {int(HTTP_TIMEOUT)} seconds") from e
        except httpx.HTTPError as e:
            raise ToolError(f"HTTP request failed: {e}") from e

        if not response.is_success:
            raise ToolError(f"HTTP error: {response.status_code} {response.reason_phrase}")

        return _format_body(response)


def _format_body(response: httpx.Response) -> str:
    if "application/json" in response.headers.get("content-type", ""):
        try:
            content = json.dumps(response.json(), indent=2)
        except ValueError:
            content = response.text
    else:
        content = response.text

    if len(content) > MAX_CONTENT_LENGTH:
        content = content[:MAX_CONTENT_LENGTH] + CONTENT_TRUNCATED_NOTE
    return content


class HttpGetTool(_HttpTool):
    name = "http_get"
    description = (
        "Fetch content from a URL. Supports secret tokens like ${{SECRET_NAME}} in the url which are "
        "resolved before the request is made."
    )
    input_model = HttpGetInput

    async def execute(self, params: HttpGetInput, context: ToolContext) -> str:
        try:
            request = self.client.build_request("GET", self._resolve(params.url), timeout=HTTP_TIMEOUT)
        except httpx.InvalidURL as e:
            raise ToolError(f"HTTP request failed: {e}") from e
        return await self._send(request)


class HttpPostTool(_HttpTool):
    name = "http_post"
    description = (
        "Send POST request to a URL. Supports secret tokens like ${{SECRET_NAME}} in url, body, and headers "
        "which are resolved before the request is made."
    )
    input_model = HttpPostInput

    async def execute(self, params: HttpPostInput, context: ToolContext) -> str:
        headers = {"Content-Type": "application/json"}
        if params.headers:
            try:
                custom_headers = json.loads(self._resolve(params.headers))
            except json.JSONDecodeError as e:
                raise ToolError("Invalid headers JSON format") from e
            if not isinstance(custom_headers, dict):
                raise ToolError("Invalid headers JSON format")
            headers.update({str(key): str(value) for key, value in custom_headers.items()})

        try:
            request = self.client.build_request(
                "POST",
                self._resolve(params.url),
                headers=headers,
                content=self._resolve(params.body),
                timeout=HTTP_TIMEOUT,
            )
        except httpx.InvalidURL as e:
            raise ToolError(f"HTTP request failed: {e}") from e
        return await self._send(request)
