"""Skill registry: the catalog summarized in system prompts and served by use_skill."""

from orchestra.models.skills import Skill
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

SKILLS_PROMPT_HEADER = (
    "# Available Skills\n\n"
    "You have access to the following skills. To use a skill, call the `use_skill` tool with the skill name. "
    "The tool will return detailed instructions that you should follow to complete the task.\n\n"
)


class SkillRegistry:
    """Registry of loaded skills, keyed by name.

    Loading skill files from disk is the caller's job; the registry is
    populated with ``register`` or replaced wholesale with ``replace``.
    """

    def __init__(self, skills: list[Skill] | None = None):
        self._skills: dict[str, Skill] = {}
        for skill in skills or []:
            self.register(skill)

    def register(self, skill: Skill) -> None:
        """Register a skill, overwriting one with the same name."""
        self._skills[skill.name] = skill

    def replace(self, skills: list[Skill]) -> None:
        """Replace the whole catalog, e.g. after reloading the vault."""
        self._skills = {skill.name: skill for skill in skills}
        logger.info(f"Loaded {len(skills)} skills: {', '.join(self._skills) or '(none)'}")

    def get_skills(self) -> list[Skill]:
        return list(self._skills.values())

    def get_skill(self, name: str) -> Skill | None:
        return self._skills.get(name)

    def get_skill_names(self) -> list[str]:
        return list(self._skills)

    def get_skill_instructions(self, name: str) -> str | None:
        """Get the full instructions for a skill, or None if it is unknown."""
        skill = self._skills.get(name)
        return skill.instructions if skill else None

    def build_system_prompt(self, base_prompt: str | None = None) -> str:
        """Build a prompt listing each skill's name and description.

        Full instructions are only loaded on demand through ``use_skill``.
        """
        prompt = ""
        if base_prompt:
            prompt += base_prompt + "\n\n"

        skills = self.get_skills()
        if skills:
            prompt += SKILLS_PROMPT_HEADER
            for skill in skills:
                prompt += f"- **{skill.name}**: {skill.description}\n"
            prompt += "\n"

        return prompt
