"""Main conversation loop for toolchat."""

import asyncio
import dataclasses
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.panel import Panel
from rich.status import Status

from toolchat.config import DEFAULT_MAX_TURNS, HISTORY_FILE
from toolchat.errors import MaxTurnsExceededError, ProviderError
from toolchat.messages import Conversation, Message, ToolCall, ToolResult, new_call_id
from toolchat.providers import Provider, create_provider
from toolchat.providers.base import Usage
from toolchat.tools.base import Tool, get_default_tools
from toolchat.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def build_system_prompt(tools: list[Tool]) -> str:
    """Build system prompt listing the available tools."""
    tool_lines = "\n".join(f"- {t.name}: {t.description}" for t in tools) or "(none)"
    return f"""You are a helpful assistant.

You have access to these tools:
{tool_lines}

Call a tool whenever it helps answer the question. If a tool reports an
error, explain the problem instead of guessing a result. Be concise."""


@dataclass
class RunStats:
    """Counters accumulated over every query an agent handles."""
    queries: int = 0
    turns: int = 0
    tool_calls: int = 0
    tool_errors: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    def add_usage(self, usage: Usage) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


class Agent:
    """Runs the ask / call tools / answer loop against a provider."""

    def __init__(
        self,
        provider: Provider,
        tools: list[Tool] | None = None,
        console: Console | None = None,
        max_turns: int | None = DEFAULT_MAX_TURNS,
        tool_timeout: float | None = None,
        concurrent_tools: bool = False,
        system_prompt: str | None = None,
    ):
        if max_turns is not None and max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.registry = ToolRegistry(get_default_tools() if tools is None else tools)
        self.provider = provider.bind_tools(self.registry.tools)
        self.console = console or Console()
        self.max_turns = max_turns
        self.tool_timeout = tool_timeout
        self.concurrent_tools = concurrent_tools
        self.system_prompt = system_prompt or build_system_prompt(self.registry.tools)
        self.conversation = Conversation()
        self.stats = RunStats()
        self._status: Status | None = None

    @property
    def tools(self) -> list[Tool]:
        return self.registry.tools

    def _show_status(self, message: str) -> None:
        """Show a spinner with the given message."""
        if self._status:
            self._status.stop()
        self._status = Status(message, console=self.console, spinner="dots")
        self._status.start()

    def _hide_status(self) -> None:
        """Hide the current spinner if any."""
        if self._status:
            self._status.stop()
            self._status = None

    async def ask(self, query: str) -> str:
        """Answer a single query in a fresh conversation.

        Returns:
            The text of the first assistant message that requests no tools.

        Raises:
            ProviderError: If the model endpoint fails.
            MaxTurnsExceededError: If the model is still calling tools
                after ``max_turns`` invocations.
        """
        return await self.run(Conversation.start(query))

    async def chat(self, user_input: str) -> str:
        """Answer a message within the agent's session-long conversation."""
        self.conversation.append(Message.user(user_input))
        return await self.run(self.conversation)

    async def run(self, conversation: Conversation) -> str:
        """Drive ``conversation`` until the model stops requesting tools."""
        self.stats.queries += 1
        turn = 0

        while True:
            if self.max_turns is not None and turn >= self.max_turns:
                partial = next(
                    (m.content for m in reversed(conversation.messages)
                     if m.role == "assistant" and m.content),
                    "",
                )
                logger.warning("Stopping after %d turns without a final answer", turn)
                raise MaxTurnsExceededError(self.max_turns, conversation, partial)

            turn += 1
            self.stats.turns += 1
            logger.debug("Turn %d: invoking %s", turn, self.provider.name)

            reply = await self._invoke_model(conversation)
            conversation.append(reply)

            if not reply.tool_calls:
                return reply.content

            self.console.print(
                f"\n[bold]Turn {turn}[/bold]: model requested "
                f"{len(reply.tool_calls)} tool call(s)"
            )
            calls = conversation.pending
            results = await self._execute_tools(calls)
            for call, result in zip(calls, results):
                conversation.append(Message.tool_result(result, tool_name=call.name))

    async def _invoke_model(self, conversation: Conversation) -> Message:
        printed = False

        def on_text(chunk: str) -> None:
            nonlocal printed
            self._hide_status()
            self.console.print(chunk, end="", markup=False, highlight=False)
            printed = True

        self._show_status("Thinking...")
        try:
            reply, usage = await self.provider.complete(
                list(conversation.messages), system=self.system_prompt, on_text=on_text
            )
        except ProviderError:
            logger.error("Model invocation failed on %s", self.provider.name)
            raise
        finally:
            self._hide_status()
        if printed:
            self.console.print()

        self.stats.add_usage(usage)
        return self._with_unique_ids(reply, conversation)

    def _with_unique_ids(self, reply: Message, conversation: Conversation) -> Message:
        """Replace missing or repeated tool call ids so each is answered once."""
        seen: set[str] = set()
        calls = []
        for call in reply.tool_calls:
            if not call.id or call.id in seen or conversation.has_call_id(call.id):
                call = dataclasses.replace(call, id=new_call_id())
            seen.add(call.id)
            calls.append(call)
        if calls == list(reply.tool_calls):
            return reply
        return dataclasses.replace(reply, tool_calls=tuple(calls))

    async def _execute_tools(self, calls: list[ToolCall]) -> list[ToolResult]:
        """Run the calls of one turn; results come back in request order."""
        for call in calls:
            self._show_tool_execution(call)

        if self.concurrent_tools and len(calls) > 1:
            results = list(await asyncio.gather(
                *(self.registry.dispatch(call, timeout=self.tool_timeout) for call in calls)
            ))
        else:
            results = []
            for call in calls:
                results.append(await self.registry.dispatch(call, timeout=self.tool_timeout))

        for call, result in zip(calls, results):
            self.stats.tool_calls += 1
            if result.is_error:
                self.stats.tool_errors += 1
            self._show_tool_result(call, result)
        return results

    def _show_tool_execution(self, call: ToolCall) -> None:
        """Display that a tool is being executed."""
        if isinstance(call.args, str):
            args_short = f"{call.args!r:.50}"
        else:
            args_short = ", ".join(f"{k}={v!r:.50}" for k, v in call.args.items())
        self.console.print(f"[dim]▶ {call.name}({args_short})[/dim]", highlight=False)

    def _show_tool_result(self, call: ToolCall, result: ToolResult) -> None:
        """Display a tool result (truncated if long)."""
        lines = result.content.split("\n")
        if len(lines) > 10:
            display = "\n".join(lines[:10]) + f"\n... ({len(lines) - 10} more lines)"
        else:
            display = result.content
        self.console.print(Panel(
            display,
            title=call.name,
            border_style="red" if result.is_error else "dim",
            padding=(0, 1),
        ))

    def write_stats(self, path: str | Path) -> None:
        Path(path).write_text(json.dumps(self.stats.to_dict(), indent=2) + "\n")


def merge_hook_tools(tools: list[Tool], hooks: list) -> list[Tool]:
    """Apply hooks' ``TOOLS`` and ``REMOVE_TOOLS`` to a tool list."""
    for hook in hooks:
        if hasattr(hook, "TOOLS"):
            tools = tools + list(hook.TOOLS)
        if hasattr(hook, "REMOVE_TOOLS"):
            remove = hook.REMOVE_TOOLS
            tools = [t for t in tools if t.name not in remove]
    return tools


def hook_system_prompt(hooks: list) -> str | None:
    """Return the system prompt of the last hook that sets one."""
    prompt = None
    for hook in hooks:
        prompt = getattr(hook, "SYSTEM_PROMPT", prompt)
    return prompt


async def run_agent(
    provider: str,
    model: str,
    host: str | None = None,
    hooks: list | None = None,
    query: str | None = None,
    max_turns: int | None = DEFAULT_MAX_TURNS,
    tool_timeout: float | None = None,
    concurrent_tools: bool = False,
    stats_file: str | None = None,
    console: Console | None = None,
) -> int:
    """Answer ``query``, or run the interactive loop if it is None.

    Returns the process exit code.
    """
    console = console or Console()
    error_console = Console(stderr=True)

    provider_kwargs = {"model_id": model}
    if host:
        provider_kwargs["host"] = host
    llm = create_provider(provider, **provider_kwargs)

    hooks = hooks or []
    tools = merge_hook_tools(get_default_tools(), hooks)
    agent = Agent(
        provider=llm,
        tools=tools,
        console=console,
        max_turns=max_turns,
        tool_timeout=tool_timeout,
        concurrent_tools=concurrent_tools,
        system_prompt=hook_system_prompt(hooks),
    )

    try:
        if query is not None:
            return await _answer_once(agent, query, console, error_console)
        await _interactive_loop(agent, provider, model, console, error_console)
        return 0
    finally:
        if stats_file:
            agent.write_stats(stats_file)


async def _answer_once(agent: Agent, query: str, console: Console, error_console: Console) -> int:
    console.print(f"[bold]Question:[/bold] {query}", highlight=False)
    try:
        answer = await agent.ask(query)
    except ProviderError as exc:
        error_console.print(f"[red]Model unavailable:[/red] {exc}", highlight=False)
        return 1
    except MaxTurnsExceededError as exc:
        error_console.print(f"[red]{exc}[/red]", highlight=False)
        if exc.partial:
            console.print(Panel(exc.partial, title="Partial answer", border_style="yellow"))
        return 1
    console.print(Panel(answer, title="Final answer", border_style="green"))
    return 0


async def _interactive_loop(
    agent: Agent, provider: str, model: str, console: Console, error_console: Console
) -> None:
    console.print(Panel(
        f"[bold]toolchat[/bold] - tool-calling chat with a local model\n"
        f"Provider: {provider} | Model: {model}\n"
        "Type your message and press Enter. Use Ctrl+C to exit.",
        border_style="blue",
    ))
    console.print("\n[bold]Tools:[/bold]")
    for tool in agent.tools:
        console.print(f"- {tool.name}: {tool.description}", highlight=False)

    # Use prompt_toolkit only for interactive terminals
    interactive = sys.stdin.isatty()
    session = PromptSession(history=FileHistory(HISTORY_FILE)) if interactive else None

    while True:
        try:
            console.print()
            if interactive:
                user_input = await session.prompt_async("> ")
            else:
                user_input = sys.stdin.readline()
                if not user_input:  # EOF
                    break
            if not user_input.strip():
                continue
            await agent.chat(user_input.strip())
        except ProviderError as exc:
            error_console.print(f"[red]Model unavailable:[/red] {exc}", highlight=False)
        except MaxTurnsExceededError as exc:
            error_console.print(f"[red]{exc}[/red]", highlight=False)
        except KeyboardInterrupt:
            console.print("\n[dim]Goodbye![/dim]")
            break
        except EOFError:
            break
