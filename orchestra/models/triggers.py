"""Trigger configuration and evaluation results."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class TriggerConfig(BaseModel):
    """A condition that is periodically re-evaluated against a conversation."""

    enabled: bool = True
    trigger_prompt: str = Field(..., min_length=1, alias="triggerPrompt")
    model: str = Field(..., description="provider/model-id")
    interval_minutes: int = Field(default=60, gt=0, alias="intervalMinutes")
    last_checked: datetime | None = Field(default=None, alias="lastChecked")
    last_triggered: datetime | None = Field(default=None, alias="lastTriggered")

    class Config:
        populate_by_name = True


class TriggerResult(BaseModel):
    """Outcome of one trigger evaluation.

    ``response`` holds the full answer when triggered and a short reason
    when skipped.
    """

    result: Literal["triggered", "skipped", "error"]
    response: str = ""
    error: str | None = None
