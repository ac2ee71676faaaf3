"""Tasktrail MCP: checklist progress tracking with completion inference."""

__version__ = "0.1.0"

__all__ = ["__version__"]
