"""use_skill: hands the model a skill's full instructions."""

from pydantic import BaseModel, Field

from orchestra.exceptions import ToolError
from orchestra.models.tools import ToolContext
from orchestra.services.skills import SkillRegistry
from orchestra.tools.base import ToolHandler

USE_SKILL_TOOL_NAME = "use_skill"


class UseSkillInput(BaseModel):
    """Input schema for use_skill."""

    name: str = Field(..., min_length=1, description="Name of the skill to use")


class UseSkillTool(ToolHandler):
    name = USE_SKILL_TOOL_NAME
    description = (
        "Load and use a skill. Call this tool when you want to use one of the available skills. "
        "The skill instructions will be returned and you should follow them to complete the task."
    )
    input_model = UseSkillInput

    def __init__(self, skill_registry: SkillRegistry):
        self.skill_registry = skill_registry

    async def execute(self, params: UseSkillInput, context: ToolContext) -> str:
        instructions = self.skill_registry.get_skill_instructions(params.name)
        if instructions is None:
            available = ", ".join(self.skill_registry.get_skill_names())
            raise ToolError(f"Unknown skill: {params.name}. Available skills: {available}")

        return f"# Skill: {params.name}\n\nFollow these instructions to complete the task:\n\n{instructions}"
