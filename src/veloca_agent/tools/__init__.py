"""
Tools module for agent capabilities.
"""

from .base import Tool, ToolHandler, ToolOutcome, ToolParameter, ToolResult
from .registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolHandler",
    "ToolOutcome",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
]
