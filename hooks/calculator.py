"""Calculator hook for toolchat.

Usage:
    toolchat --hook hooks/calculator.py "What is 10 divided by 0?"

Swaps the demo tools for the arithmetic set.
"""

from toolchat.tools.base import get_math_tools

# Tools to add
TOOLS = get_math_tools()

# The weather demo and add_numbers are replaced by the math tools
REMOVE_TOOLS = {"get_weather", "add_numbers"}

SYSTEM_PROMPT = """You are a careful calculator assistant.

Use the arithmetic tools for every computation instead of doing it in
your head. If a tool reports an error, tell the user what went wrong."""
