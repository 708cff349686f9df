"""Tests for the tool-calling conversation loop."""

import asyncio
import json

import pytest
from pydantic import Field

from tests.conftest import tool_reply
from toolchat.agent import Agent, build_system_prompt, hook_system_prompt, merge_hook_tools
from toolchat.errors import MaxTurnsExceededError, ProviderError
from toolchat.messages import Message
from toolchat.tools.base import AddTool, DivideTool, Tool, ToolArgs, get_default_tools, get_math_tools


def _tool_messages(conversation):
    return [m for m in conversation if m.role == "tool"]


class TestScenarios:
    async def test_addition(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "add", {"a": 15, "b": 25})),
            Message.assistant("15 + 25 is 40."),
        )
        agent = Agent(provider, tools=[AddTool()], console=console)

        answer = await agent.ask("What is 15 + 25?")

        assert answer == "15 + 25 is 40."
        second_call = provider.calls[1]
        assert [m.role for m in second_call] == ["user", "assistant", "tool"]
        assert second_call[2].content == "40"
        assert second_call[2].tool_call_id == "c1"

    async def test_divide_by_zero_is_reported_to_the_model(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "divide", {"a": 10, "b": 0})),
            Message.assistant("You can't divide 10 by zero."),
        )
        agent = Agent(provider, tools=[DivideTool()], console=console)

        answer = await agent.ask("What is 10 / 0?")

        assert answer == "You can't divide 10 by zero."
        result = provider.calls[1][-1]
        assert result.role == "tool"
        assert result.is_error
        assert "Cannot divide by zero" in result.content
        assert agent.stats.tool_errors == 1

    async def test_unknown_tool_does_not_crash(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "launch_rockets", {"count": 3})),
            Message.assistant("I don't have a rocket tool."),
        )
        agent = Agent(provider, tools=[AddTool()], console=console)

        answer = await agent.ask("Launch three rockets")

        assert answer == "I don't have a rocket tool."
        result = provider.calls[1][-1]
        assert result.is_error
        assert "unknown tool" in result.content

    async def test_invalid_arguments_name_the_field(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "add", {"a": 1, "c": 2})),
            Message.assistant("oops"),
        )
        agent = Agent(provider, tools=[AddTool()], console=console)

        await agent.ask("add")

        content = provider.calls[1][-1].content
        assert "b:" in content
        assert "c:" in content

    async def test_malformed_json_arguments_are_reported(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "add", '{"a": 1, "b":')),
            Message.assistant("Let me try that again."),
        )
        agent = Agent(provider, tools=[AddTool()], console=console)

        await agent.ask("add")

        result = provider.calls[1][-1]
        assert result.is_error
        assert "arguments: invalid JSON" in result.content


class TestLoop:
    async def test_no_tool_calls_terminates_immediately(self, make_provider, console) -> None:
        provider = make_provider(Message.assistant("Hello!"))
        agent = Agent(provider, console=console)

        assert await agent.ask("hi") == "Hello!"
        assert len(provider.calls) == 1
        assert agent.stats.turns == 1

    async def test_results_follow_request_order(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(
                ("c1", "get_weather", {"location": "New York"}),
                ("c2", "add_numbers", {"a": 25, "b": 17}),
                ("c3", "nope", {}),
            ),
            Message.assistant("Sunny, and 42."),
        )
        agent = Agent(provider, console=console)

        assert await agent.ask("Weather in New York? And 25 + 17?") == "Sunny, and 42."
        results = provider.calls[1][2:]
        assert [r.tool_call_id for r in results] == ["c1", "c2", "c3"]
        assert results[0].content == "The weather in New York is sunny and 72°F"
        assert results[1].content == "25 + 17 = 42"
        assert results[2].is_error

    async def test_every_result_matches_one_request(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "add", {"a": 1, "b": 2}), ("c2", "add", {"a": 3, "b": 4})),
            tool_reply(("c3", "add", {"a": 3, "b": 7})),
            Message.assistant("10"),
        )
        agent = Agent(provider, tools=[AddTool()], console=console)
        await agent.ask("sum things")

        final = provider.calls[-1]
        requested = [c.id for m in final if m.role == "assistant" for c in m.tool_calls]
        answered = [m.tool_call_id for m in final if m.role == "tool"]
        assert sorted(requested) == sorted(answered)
        assert len(set(answered)) == len(answered)

    async def test_missing_and_reused_ids_are_replaced(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("", "add", {"a": 1, "b": 2}), ("", "add", {"a": 3, "b": 4})),
            tool_reply(("call_0", "add", {"a": 1, "b": 1})),
            tool_reply(("call_0", "add", {"a": 2, "b": 2})),
            Message.assistant("done"),
        )
        agent = Agent(provider, tools=[AddTool()], console=console)
        await agent.ask("q")

        final = provider.calls[-1]
        answered = [m.tool_call_id for m in final if m.role == "tool"]
        assert len(answered) == 4
        assert len(set(answered)) == 4
        assert all(answered)

    async def test_max_turns(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "add", {"a": 1, "b": 2}), content="Let me add."),
            tool_reply(("c2", "add", {"a": 1, "b": 2})),
            Message.assistant("never reached"),
        )
        agent = Agent(provider, tools=[AddTool()], console=console, max_turns=2)

        with pytest.raises(MaxTurnsExceededError) as excinfo:
            await agent.ask("loop forever")

        exc = excinfo.value
        assert exc.max_turns == 2
        assert exc.partial == "Let me add."
        assert len(_tool_messages(exc.conversation)) == 2
        assert exc.conversation.pending == []
        assert len(provider.calls) == 2

    async def test_unlimited_turns(self, make_provider, console) -> None:
        replies = [tool_reply((f"c{i}", "add", {"a": i, "b": 1})) for i in range(15)]
        provider = make_provider(*replies, Message.assistant("finally"))
        agent = Agent(provider, tools=[AddTool()], console=console, max_turns=None)

        assert await agent.ask("q") == "finally"
        assert agent.stats.turns == 16

    def test_max_turns_must_be_positive(self, make_provider) -> None:
        with pytest.raises(ValueError):
            Agent(make_provider(), max_turns=0)

    async def test_provider_failure_propagates(self, make_provider, console) -> None:
        provider = make_provider(ProviderError("scripted", "connection refused"))
        agent = Agent(provider, console=console)

        with pytest.raises(ProviderError, match="connection refused"):
            await agent.ask("hi")

    async def test_provider_failure_after_tools(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "add", {"a": 1, "b": 2})),
            ProviderError("scripted", "gone"),
        )
        agent = Agent(provider, tools=[AddTool()], console=console)

        with pytest.raises(ProviderError):
            await agent.ask("hi")
        assert len(provider.calls) == 2

    async def test_tools_bound_once(self, make_provider, console) -> None:
        provider = make_provider(Message.assistant("ok"))
        agent = Agent(provider, tools=get_math_tools(), console=console)

        assert [t.name for t in provider.tools] == [t.name for t in agent.tools]
        await agent.ask("hi")
        assert "calculate" in provider.systems[0]

    def test_duplicate_tool_names_rejected(self, make_provider) -> None:
        provider = make_provider()
        with pytest.raises(ValueError, match="add"):
            Agent(provider, tools=[AddTool(), AddTool()])
        assert provider.tools == []

    async def test_stats(self, make_provider, console, tmp_path) -> None:
        provider = make_provider(
            tool_reply(("c1", "add", {"a": 1, "b": 2}), ("c2", "divide", {"a": 1, "b": 0})),
            Message.assistant("3"),
        )
        agent = Agent(provider, tools=[AddTool(), DivideTool()], console=console)
        await agent.ask("q")

        path = tmp_path / "stats.json"
        agent.write_stats(path)
        stats = json.loads(path.read_text())
        assert stats == {
            "queries": 1,
            "turns": 2,
            "tool_calls": 2,
            "tool_errors": 1,
            "input_tokens": 20,
            "output_tokens": 10,
        }

    async def test_chat_keeps_session_history(self, make_provider, console) -> None:
        provider = make_provider(Message.assistant("Hi!"), Message.assistant("Still here."))
        agent = Agent(provider, console=console)

        await agent.chat("hello")
        await agent.chat("are you there?")

        assert [m.role for m in provider.calls[1]] == ["user", "assistant", "user"]
        assert len(agent.conversation) == 4

    async def test_ask_starts_fresh(self, make_provider, console) -> None:
        provider = make_provider(Message.assistant("a"), Message.assistant("b"))
        agent = Agent(provider, console=console)

        await agent.ask("one")
        await agent.ask("two")

        assert provider.calls[1] == [Message.user("two")]


class _GateTool(Tool):
    """The "wait" call only finishes once the "open" call has run."""

    name = "gate"
    description = "Waits for or opens a gate"

    class Args(ToolArgs):
        action: str = Field(description="'wait' or 'open'")
        delay: float = Field(default=0, description="Seconds to sleep first")

    def __init__(self) -> None:
        self.opened = asyncio.Event()

    async def run(self, action: str, delay: float) -> str:
        await asyncio.sleep(delay)
        if action == "open":
            self.opened.set()
        else:
            await asyncio.wait_for(self.opened.wait(), 0.5)
        return action


class TestConcurrentTools:
    async def test_concurrent_results_keep_request_order(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(
                ("c1", "gate", {"action": "wait"}),
                ("c2", "gate", {"action": "open", "delay": 0.01}),
            ),
            Message.assistant("done"),
        )
        agent = Agent(provider, tools=[_GateTool()], console=console, concurrent_tools=True)

        await agent.ask("q")

        results = provider.calls[1][2:]
        assert [r.content for r in results] == ["wait", "open"]
        assert [r.tool_call_id for r in results] == ["c1", "c2"]
        assert not any(r.is_error for r in results)

    async def test_sequential_by_default(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "gate", {"action": "wait"}), ("c2", "gate", {"action": "open"})),
            Message.assistant("done"),
        )
        agent = Agent(provider, tools=[_GateTool()], console=console)

        await agent.ask("q")

        results = provider.calls[1][2:]
        assert results[0].is_error
        assert results[1].content == "open"

    async def test_tool_timeout(self, make_provider, console) -> None:
        provider = make_provider(
            tool_reply(("c1", "gate", {"action": "open", "delay": 5})),
            Message.assistant("too slow"),
        )
        agent = Agent(provider, tools=[_GateTool()], console=console, tool_timeout=0.01)

        assert await agent.ask("q") == "too slow"
        assert "timed out" in provider.calls[1][-1].content


class TestHooks:
    def test_merge_hook_tools(self) -> None:
        class Hook:
            TOOLS = get_math_tools()
            REMOVE_TOOLS = {"add_numbers"}

        names = [t.name for t in merge_hook_tools(get_default_tools(), [Hook])]
        assert names == ["get_weather", "add", "subtract", "multiply", "divide", "calculate"]

    def test_no_hooks(self) -> None:
        tools = get_default_tools()
        assert merge_hook_tools(tools, []) == tools

    def test_hook_system_prompt(self) -> None:
        class First:
            SYSTEM_PROMPT = "one"

        class Second:
            pass

        assert hook_system_prompt([First, Second]) == "one"
        assert hook_system_prompt([]) is None

    def test_system_prompt_lists_tools(self) -> None:
        prompt = build_system_prompt(get_default_tools())
        assert "- get_weather: Get current weather for a location" in prompt
        assert "- add_numbers: Add two numbers together" in prompt
