"""Core message types for toolchat."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Literal

from toolchat.errors import ConversationError

Role = Literal["user", "assistant", "tool"]


def new_call_id() -> str:
    """Generate an identifier for a tool call the server left unnamed."""
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ToolCall:
    """A request from the LLM to execute a tool."""
    id: str
    name: str
    args: dict[str, Any] | str = field(default_factory=dict)  # str: undecodable JSON from the server


@dataclass(frozen=True)
class ToolResult:
    """The result of executing a tool."""
    tool_call_id: str
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class Message:
    """A message in the conversation."""
    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    tool_name: str | None = None
    is_error: bool = False

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: list[ToolCall] | None = None) -> Message:
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls or ()))

    @classmethod
    def tool_result(cls, result: ToolResult, tool_name: str | None = None) -> Message:
        return cls(
            role="tool",
            content=result.content,
            tool_call_id=result.tool_call_id,
            tool_name=tool_name,
            is_error=result.is_error,
        )


class Conversation:
    """Append-only message history that keeps tool calls and results paired.

    Every tool-result must answer a still-pending request of the latest
    assistant message, each request id is answered exactly once, and no
    new user or assistant message may be added while requests are pending.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = []
        self._pending: dict[str, ToolCall] = {}
        self._seen_ids: set[str] = set()
        for message in messages or []:
            self.append(message)

    @classmethod
    def start(cls, query: str) -> Conversation:
        return cls([Message.user(query)])

    def append(self, message: Message) -> None:
        if message.role == "tool":
            if message.tool_call_id not in self._pending:
                raise ConversationError(
                    f"tool result {message.tool_call_id!r} does not answer a pending tool call"
                )
            del self._pending[message.tool_call_id]
        else:
            if self._pending:
                raise ConversationError(
                    f"{len(self._pending)} tool call(s) still awaiting results: "
                    + ", ".join(self._pending)
                )
            if message.role == "assistant":
                for call in message.tool_calls:
                    if call.id in self._seen_ids or call.id in self._pending:
                        raise ConversationError(f"tool call id {call.id!r} reused")
                    self._pending[call.id] = call
                self._seen_ids.update(self._pending)
        self._messages.append(message)

    def has_call_id(self, call_id: str) -> bool:
        return call_id in self._seen_ids

    @property
    def pending(self) -> list[ToolCall]:
        """Tool calls of the latest assistant turn that have no result yet."""
        return list(self._pending.values())

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self) -> str:
        return f"Conversation({len(self._messages)} messages, {len(self._pending)} pending)"
