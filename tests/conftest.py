"""Shared test fixtures for toolchat."""

import io

import pytest
from rich.console import Console

from toolchat.messages import Message, ToolCall
from toolchat.providers.base import Provider, StreamEvent, Usage


class ScriptedProvider(Provider):
    """Provider that replays a fixed list of assistant replies.

    An exception in the script is raised instead of replying.
    """

    name = "scripted"

    def __init__(self, replies):
        super().__init__()
        self.replies = list(replies)
        self.calls: list[list[Message]] = []
        self.systems: list[str] = []

    async def stream(self, messages, system=""):
        self.calls.append(list(messages))
        self.systems.append(system)
        if not self.replies:
            raise AssertionError("ScriptedProvider ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if reply.content:
            yield StreamEvent(text=reply.content)
        yield StreamEvent(
            tool_calls=list(reply.tool_calls) or None,
            stop_reason="tool_use" if reply.tool_calls else "end_turn",
            usage=Usage(input_tokens=10, output_tokens=5),
        )


def tool_reply(*calls, content=""):
    """Assistant message requesting ``calls`` given as (id, name, args) tuples."""
    return Message.assistant(content, [ToolCall(id=i, name=n, args=a) for i, n, a in calls])


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=100)


@pytest.fixture
def make_provider():
    def _make(*replies):
        return ScriptedProvider(replies)

    return _make
