"""Tools for toolchat."""

from .base import (
    AddNumbersTool,
    AddTool,
    CalculateTool,
    DivideTool,
    MultiplyTool,
    SubtractTool,
    Tool,
    ToolArgs,
    WeatherTool,
    get_all_tools,
    get_default_tools,
    get_math_tools,
)
from .registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolArgs",
    "ToolRegistry",
    "WeatherTool",
    "AddNumbersTool",
    "AddTool",
    "SubtractTool",
    "MultiplyTool",
    "DivideTool",
    "CalculateTool",
    "get_default_tools",
    "get_math_tools",
    "get_all_tools",
]
