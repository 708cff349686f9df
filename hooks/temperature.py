"""Temperature conversion hook for toolchat.

Usage:
    toolchat --hook hooks/temperature.py "Is 72°F warm in Celsius terms?"

Adds a convert_temperature tool next to the default tools.
"""

from typing import Literal

from pydantic import Field

from toolchat.tools.base import Tool, ToolArgs


class ConvertTemperatureTool(Tool):
    """Convert between Celsius and Fahrenheit."""

    name = "convert_temperature"
    description = "Convert a temperature between Celsius (C) and Fahrenheit (F)."

    class Args(ToolArgs):
        value: float = Field(description="Temperature to convert")
        to: Literal["C", "F"] = Field(description="Target unit, 'C' or 'F'")

    def run(self, value: float, to: str) -> str:
        if to == "C":
            return f"{value:g}°F = {(value - 32) * 5 / 9:.1f}°C"
        return f"{value:g}°C = {value * 9 / 5 + 32:.1f}°F"


# Tools to add
TOOLS = [ConvertTemperatureTool()]
