"""Environment-driven settings for wiring the engine's collaborators."""

import os
from dataclasses import dataclass, field

from orchestra.clients.anthropic import AnthropicConfig
from orchestra.services.context_manager import (
    DEFAULT_RESPONSE_RESERVE,
    DEFAULT_TOOL_RESULT_MAX_TOKENS,
    DEFAULT_TOTAL_BUDGET,
    ContextManagerConfig,
)
from orchestra.tools.secrets import ALLOWED_SECRET_KEYS
from orchestra.utils.logging import LogConfig

DEFAULT_MODEL = "anthropic/claude-sonnet-4-5-20250929"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class Settings:
    """Process-wide settings, read once at startup."""

    anthropic_api_key: str | None = None
    vault_path: str = "."
    default_model: str = DEFAULT_MODEL
    log: LogConfig = field(default_factory=LogConfig)
    context: ContextManagerConfig = field(default_factory=ContextManagerConfig)
    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    secrets: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Raises:
            ValueError: If a numeric variable is not an integer
        """
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            vault_path=os.getenv("ORCHESTRA_VAULT_PATH", "."),
            default_model=os.getenv("ORCHESTRA_DEFAULT_MODEL", DEFAULT_MODEL),
            log=LogConfig(level=os.getenv("LOG_LEVEL", "INFO")),
            context=ContextManagerConfig(
                total_budget=_int_env("ORCHESTRA_CONTEXT_BUDGET", DEFAULT_TOTAL_BUDGET),
                response_reserve=_int_env("ORCHESTRA_RESPONSE_RESERVE", DEFAULT_RESPONSE_RESERVE),
                tool_result_max_tokens=_int_env("ORCHESTRA_TOOL_RESULT_MAX_TOKENS", DEFAULT_TOOL_RESULT_MAX_TOKENS),
            ),
            secrets={key: value for key in ALLOWED_SECRET_KEYS if (value := os.getenv(key))},
        )
