"""Exception hierarchy for toolchat.

    ToolchatError
    ├── ConfigError
    ├── ProviderError(provider)
    ├── ConversationError
    ├── MaxTurnsExceededError(max_turns, conversation, partial)
    ├── ExpressionError
    └── ToolError(tool)
        ├── UnknownToolError
        ├── ToolArgumentError(fields)
        ├── ToolExecutionError
        └── ToolTimeoutError(timeout)

Tool errors never escape the conversation loop: they are turned into
tool-result messages so the model can react to them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolchat.messages import Conversation


class ToolchatError(Exception):
    """Base exception for all toolchat errors."""


class ConfigError(ToolchatError):
    """Invalid configuration (unknown provider, bad hook file, ...)."""


class ProviderError(ToolchatError):
    """The model endpoint failed or could not be reached."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ConversationError(ToolchatError):
    """A message would break the request/result pairing of a conversation."""


class MaxTurnsExceededError(ToolchatError):
    """The model kept requesting tools past the configured turn limit."""

    def __init__(self, max_turns: int, conversation: Conversation, partial: str = "") -> None:
        self.max_turns = max_turns
        self.conversation = conversation
        self.partial = partial
        super().__init__(f"No final answer after {max_turns} model turns")


class ExpressionError(ToolchatError):
    """An arithmetic expression could not be parsed or evaluated."""


class ToolError(ToolchatError):
    """Base for failures reported back to the model as tool results."""

    def __init__(self, tool: str, message: str) -> None:
        self.tool = tool
        super().__init__(message)


class UnknownToolError(ToolError):
    def __init__(self, tool: str, available: list[str] | None = None) -> None:
        self.available = list(available or [])
        message = f"unknown tool '{tool}'"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(tool, message)


class ToolArgumentError(ToolError):
    """The argument payload does not match the tool's schema."""

    def __init__(self, tool: str, fields: dict[str, str]) -> None:
        self.fields = fields
        details = "; ".join(f"{name}: {reason}" for name, reason in fields.items())
        super().__init__(tool, f"invalid arguments for '{tool}': {details}")


class ToolExecutionError(ToolError):
    """The tool's behaviour raised."""

    def __init__(self, tool: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(tool, str(cause) or type(cause).__name__)


class ToolTimeoutError(ToolError):
    def __init__(self, tool: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(tool, f"'{tool}' timed out after {timeout:g} seconds")
