"""Secret references: the model handles ``${{NAME}}`` tokens, never secret values."""

import re
from collections.abc import Mapping

from pydantic import BaseModel, Field

from orchestra.exceptions import ToolError
from orchestra.models.tools import ToolContext
from orchestra.tools.base import ToolHandler

ALLOWED_SECRET_KEYS = ("SERPER_API_KEY", "OPENWEATHER_API_KEY", "SERPAPI_API_KEY")

SECRET_TOKEN_PATTERN = re.compile(r"\$\{\{([A-Z_]+)\}\}")


def secret_token(key: str) -> str:
    return "${{" + key + "}}"


def resolve_secret_tokens(text: str, secrets: Mapping[str, str]) -> str:
    """Replace ``${{NAME}}`` tokens with configured secret values.

    Tokens naming an unconfigured secret are left as they are.
    """

    def _replace(match: re.Match[str]) -> str:
        return secrets.get(match.group(1)) or match.group(0)

    return SECRET_TOKEN_PATTERN.sub(_replace, text)


class GetSecretInput(BaseModel):
    """Input schema for get_secret."""

    key: str = Field(..., min_length=1, description="Secret name (e.g., SERPER_API_KEY)")


class GetSecretTool(ToolHandler):
    name = "get_secret"
    description = (
        "Get a reference token for an API key or secret. Returns ${{SECRET_NAME}} which can be used "
        "in http_post headers/body and will be resolved to the actual value."
    )
    input_model = GetSecretInput

    def __init__(self, secrets: Mapping[str, str]):
        self.secrets = secrets

    async def execute(self, params: GetSecretInput, context: ToolContext) -> str:
        if params.key not in ALLOWED_SECRET_KEYS:
            raise ToolError(
                f"Unknown or unauthorized secret key: {params.key}. "
                f"Available keys: {', '.join(ALLOWED_SECRET_KEYS)}"
            )
        if not self.secrets.get(params.key):
            raise ToolError(f"Secret {params.key} is not configured. Set the {params.key} environment variable.")
        return secret_token(params.key)
