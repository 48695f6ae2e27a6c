"""Tool-execution engine for multi-round, tool-using AI conversations."""

__version__ = "0.1.0"
