"""OpenAI-compatible provider for vLLM, LocalAI, llama.cpp, Ollama's /v1, etc."""

import json
import logging
from collections.abc import AsyncIterator

import openai
from openai import AsyncOpenAI

from toolchat.config import DEFAULT_OPENAI_API_KEY
from toolchat.errors import ProviderError
from toolchat.messages import Message, ToolCall, new_call_id
from toolchat.providers.base import Provider, StreamEvent, Usage

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(Provider):
    """Provider for OpenAI-compatible servers (vLLM, LocalAI, llama.cpp, etc.)."""

    name = "openai_compatible"

    def __init__(self, model_id: str, host: str, api_key: str = DEFAULT_OPENAI_API_KEY):
        """Initialize the OpenAI-compatible provider.

        Args:
            model_id: Model name on the server (required)
            host: Server URL without /v1 suffix (required)
            api_key: API key, defaults to "EMPTY" for servers without auth
        """
        super().__init__()
        self.model_id = model_id
        self.host = host
        self.client = AsyncOpenAI(base_url=f"{host.rstrip('/')}/v1", api_key=api_key)

    def _messages_to_openai(
        self, messages: list[Message], system: str
    ) -> list[dict]:
        """Convert messages to OpenAI's format."""
        openai_messages = []

        if system:
            openai_messages.append({"role": "system", "content": system})

        for msg in messages:
            if msg.role == "tool":
                openai_messages.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.content,
                })
            elif msg.tool_calls:
                openai_messages.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": (
                                    tc.args if isinstance(tc.args, str) else json.dumps(tc.args)
                                ),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                openai_messages.append({"role": msg.role, "content": msg.content})

        return openai_messages

    async def stream(
        self,
        messages: list[Message],
        system: str = "",
    ) -> AsyncIterator[StreamEvent]:
        """Stream a response from the OpenAI-compatible server."""
        kwargs = {
            "model": self.model_id,
            "messages": self._messages_to_openai(messages, system),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self.tools:
            kwargs["tools"] = self.tool_specs()

        # Track tool calls being built across chunks
        tool_call_builders: dict[int, dict] = {}
        usage = None
        final_finish_reason = None

        try:
            response = await self.client.chat.completions.create(**kwargs)

            async for chunk in response:
                # Handle usage (comes in final chunk with empty choices)
                if chunk.usage:
                    usage = Usage(
                        input_tokens=chunk.usage.prompt_tokens,
                        output_tokens=chunk.usage.completion_tokens,
                    )

                if not chunk.choices:
                    continue

                delta = chunk.choices[0].delta
                finish_reason = chunk.choices[0].finish_reason

                if delta.content:
                    yield StreamEvent(text=delta.content)

                # Tool calls are streamed incrementally
                if delta.tool_calls:
                    for tc_delta in delta.tool_calls:
                        idx = tc_delta.index
                        if idx not in tool_call_builders:
                            if not tool_call_builders:
                                yield StreamEvent(tool_use_started=True)
                            tool_call_builders[idx] = {"id": "", "name": "", "arguments": ""}
                        builder = tool_call_builders[idx]
                        if tc_delta.id:
                            builder["id"] = tc_delta.id
                        if tc_delta.function:
                            if tc_delta.function.name:
                                builder["name"] = tc_delta.function.name
                            if tc_delta.function.arguments:
                                builder["arguments"] += tc_delta.function.arguments

                # Usage comes in a later chunk, so don't yield yet
                if finish_reason:
                    final_finish_reason = finish_reason
        except openai.APIError as exc:
            raise ProviderError(self.name, f"{exc} (host: {self.host})") from exc

        if final_finish_reason or tool_call_builders:
            tool_calls = [
                self._build_tool_call(tool_call_builders[idx])
                for idx in sorted(tool_call_builders)
            ]
            stop_reason = "tool_use" if tool_calls else "end_turn"
            yield StreamEvent(
                tool_calls=tool_calls if tool_calls else None,
                stop_reason=stop_reason,
                usage=usage,
            )

    @staticmethod
    def _build_tool_call(builder: dict) -> ToolCall:
        raw = builder["arguments"]
        try:
            args = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            # Tool.validate reports the undecodable text back to the model
            logger.warning("Malformed arguments for %s: %r", builder["name"], raw)
            args = raw
        return ToolCall(
            id=builder["id"] or new_call_id(),
            name=builder["name"],
            args=args,
        )
