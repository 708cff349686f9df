"""Base tool class and built-in tools."""

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from toolchat.errors import ToolArgumentError, ToolError, ToolExecutionError
from toolchat.tools.expression import evaluate

logger = logging.getLogger(__name__)


class ToolArgs(BaseModel):
    """Base for tool argument schemas. Unknown arguments are rejected."""

    model_config = ConfigDict(extra="forbid")


def stringify(value: Any) -> str:
    """Render a tool's return value as message content."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class Tool(ABC):
    """Base class for all tools.

    Subclasses set ``name``, ``description`` and an ``Args`` model, and
    implement ``run`` (plain or ``async``). ``invoke`` validates a raw
    payload against ``Args`` before calling ``run``.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    Args: ClassVar[type[ToolArgs]] = ToolArgs

    @property
    def parameters(self) -> dict:
        """JSON Schema for the tool's arguments, as shown to the model."""
        schema = self.Args.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        return schema

    def validate(self, payload: Any) -> ToolArgs:
        """Check a raw argument payload against ``Args``.

        ``payload`` may also be the raw JSON text a server sent when it
        could not be decoded upstream.

        Raises:
            ToolArgumentError: naming each offending field.
        """
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as exc:
                raise ToolArgumentError(self.name, {"arguments": f"invalid JSON ({exc.msg})"}) from exc
        try:
            return self.Args.model_validate(payload if payload is not None else {})
        except ValidationError as exc:
            fields = {}
            for error in exc.errors():
                loc = ".".join(str(part) for part in error["loc"]) or "arguments"
                fields[loc] = error["msg"]
            raise ToolArgumentError(self.name, fields) from exc

    @abstractmethod
    def run(self, **kwargs) -> Any:
        """Execute the tool with validated arguments."""

    async def invoke(self, payload: Any) -> str:
        """Validate ``payload``, run the tool and return its stringified result."""
        args = self.validate(payload)
        logger.debug("Invoking %s with %r", self.name, args)
        try:
            if inspect.iscoroutinefunction(self.run):
                result = await self.run(**dict(args))
            else:
                # Blocking tools run in a worker thread
                result = await asyncio.to_thread(self.run, **dict(args))
            if inspect.isawaitable(result):
                result = await result
        except ToolError:
            raise
        except Exception as exc:
            raise ToolExecutionError(self.name, exc) from exc
        return stringify(result)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class WeatherTool(Tool):
    """Pretend to look up the weather."""

    name = "get_weather"
    description = "Get current weather for a location"

    class Args(ToolArgs):
        location: str = Field(description="City name like 'San Francisco'")

    def run(self, location: str) -> str:
        return f"The weather in {location} is sunny and 72°F"


class _BinaryArgs(ToolArgs):
    a: float = Field(description="First number")
    b: float = Field(description="Second number")


class AddNumbersTool(Tool):
    """Add two numbers and show the working."""

    name = "add_numbers"
    description = "Add two numbers together"
    Args = _BinaryArgs

    def run(self, a: float, b: float) -> str:
        return f"{stringify(a)} + {stringify(b)} = {stringify(a + b)}"


class AddTool(Tool):
    name = "add"
    description = "Add two numbers"
    Args = _BinaryArgs

    def run(self, a: float, b: float) -> float:
        return a + b


class SubtractTool(Tool):
    name = "subtract"
    description = "Subtract the second number from the first"
    Args = _BinaryArgs

    def run(self, a: float, b: float) -> float:
        return a - b


class MultiplyTool(Tool):
    name = "multiply"
    description = "Multiply two numbers"
    Args = _BinaryArgs

    def run(self, a: float, b: float) -> float:
        return a * b


class DivideTool(Tool):
    name = "divide"
    description = "Divide the first number by the second"
    Args = _BinaryArgs

    def run(self, a: float, b: float) -> float:
        if b == 0:
            raise ValueError("Cannot divide by zero")
        return a / b


class CalculateTool(Tool):
    """Evaluate an arithmetic expression with a restricted grammar."""

    name = "calculate"
    description = (
        "Evaluate an arithmetic expression. Supports numbers, + - * /, "
        "unary minus and parentheses, e.g. '(3 + 4) * 2'."
    )

    class Args(ToolArgs):
        expression: str = Field(description="Arithmetic expression like '12 * (3 + 4)'")

    def run(self, expression: str) -> float:
        return evaluate(expression)


def get_default_tools() -> list[Tool]:
    """Return the default set of tools."""
    return [
        WeatherTool(),
        AddNumbersTool(),
    ]


def get_math_tools() -> list[Tool]:
    """Return the four-function arithmetic tools plus ``calculate``."""
    return [
        AddTool(),
        SubtractTool(),
        MultiplyTool(),
        DivideTool(),
        CalculateTool(),
    ]


def get_all_tools() -> list[Tool]:
    return get_default_tools() + get_math_tools()
