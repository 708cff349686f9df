"""Tool registry: name-keyed lookup and dispatch of tool calls.

The registry is filled once before a conversation starts and only read
while it runs. ``dispatch`` never raises for tool-level failures; they
come back as error results for the model to read.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from toolchat.errors import ToolError, ToolTimeoutError, UnknownToolError
from toolchat.messages import ToolResult

if TYPE_CHECKING:
    from toolchat.messages import ToolCall
    from toolchat.tools.base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for the tools a model may call."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        """Return the tool registered under ``name``, or None."""
        return self._tools.get(name)

    def resolve(self, name: str) -> Tool:
        """Like ``get`` but raises ``UnknownToolError`` on a miss."""
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name, available=self.names())
        return tool

    @property
    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    async def dispatch(self, call: ToolCall, timeout: float | None = None) -> ToolResult:
        """Execute a tool call and return its result.

        Unknown tools, invalid arguments, exceptions raised by the tool
        and timeouts all produce a ``ToolResult`` with ``is_error=True``.
        """
        try:
            tool = self.resolve(call.name)
            if timeout is None:
                content = await tool.invoke(call.args)
            else:
                try:
                    content = await asyncio.wait_for(tool.invoke(call.args), timeout)
                except asyncio.TimeoutError:
                    raise ToolTimeoutError(call.name, timeout) from None
        except ToolError as exc:
            logger.info("Tool call %s (%s) failed: %s", call.id, call.name, exc)
            return ToolResult(tool_call_id=call.id, content=f"Error: {exc}", is_error=True)
        return ToolResult(tool_call_id=call.id, content=content)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))
