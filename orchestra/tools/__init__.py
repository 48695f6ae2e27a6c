"""Tools the model can call."""

from orchestra.tools.registry import ToolsRegistry, create_default_tools_registry

__all__ = ["ToolsRegistry", "create_default_tools_registry"]
