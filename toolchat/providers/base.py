"""Base provider protocol for LLM backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolchat.tools.base import Tool

from toolchat.messages import Message, ToolCall


@dataclass
class Usage:
    """Token usage from a response."""
    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass
class StreamEvent:
    """An event from a streaming response."""
    text: str = ""
    tool_calls: list[ToolCall] | None = None
    stop_reason: str | None = None
    tool_use_started: bool = False  # Signal that tool use is beginning
    usage: Usage | None = None  # Token usage (typically at end of response)


class Provider(ABC):
    """Abstract base class for LLM providers.

    Tools are bound once with ``bind_tools`` and then offered to the
    model on every ``stream``/``complete`` call.
    """

    name: str  # Provider identifier, e.g. "ollama"

    def __init__(self) -> None:
        self.tools: list[Tool] = []

    def bind_tools(self, tools: list[Tool]) -> Provider:
        """Bind the tools the model may request. Returns ``self``."""
        self.tools = list(tools)
        return self

    def tool_specs(self) -> list[dict]:
        """Bound tools in the function-calling format shared by Ollama and OpenAI."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in self.tools
        ]

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        system: str = "",
    ) -> AsyncIterator[StreamEvent]:
        """Stream a response from the LLM.

        Args:
            messages: Conversation history
            system: System prompt

        Yields:
            StreamEvent objects with text chunks, tool calls, and stop reason

        Raises:
            ProviderError: If the endpoint fails
        """

    async def complete(
        self,
        messages: list[Message],
        system: str = "",
        on_text: Callable[[str], None] | None = None,
    ) -> tuple[Message, Usage]:
        """Collect a streamed response into one assistant message.

        ``on_text`` receives text chunks as they arrive.
        """
        text = ""
        tool_calls: list[ToolCall] = []
        usage = Usage()
        async for event in self.stream(messages, system=system):
            if event.text:
                text += event.text
                if on_text:
                    on_text(event.text)
            if event.tool_calls:
                tool_calls = list(event.tool_calls)
            if event.usage:
                usage = usage + event.usage
        return Message.assistant(text, tool_calls), usage
