"""Skill data models."""

from pydantic import BaseModel


class Skill(BaseModel):
    """A skill: a named set of instructions loaded on demand via ``use_skill``."""

    name: str
    description: str
    instructions: str  # Markdown body of SKILL.md (after frontmatter)
    path: str = "__bundled__"


class ConversationRef(BaseModel):
    """Identifies the conversation a system prompt is built for."""

    id: str
    title: str | None = None
