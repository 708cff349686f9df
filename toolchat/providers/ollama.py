"""Ollama provider for local models."""

from collections.abc import AsyncIterator

import httpx
import ollama

from toolchat.config import DEFAULT_OLLAMA_HOST, DEFAULT_OLLAMA_MODEL
from toolchat.errors import ProviderError
from toolchat.messages import Message, ToolCall, new_call_id
from toolchat.providers.base import Provider, StreamEvent, Usage


class OllamaProvider(Provider):
    """Ollama provider for local LLM inference."""

    name = "ollama"

    def __init__(
        self,
        model_id: str = DEFAULT_OLLAMA_MODEL,
        host: str = DEFAULT_OLLAMA_HOST,
    ):
        super().__init__()
        self.model_id = model_id
        self.host = host
        self.client = ollama.AsyncClient(host=host)

    def _messages_to_ollama(
        self, messages: list[Message], system: str
    ) -> list[dict]:
        """Convert messages to Ollama's format."""
        ollama_messages = []

        if system:
            ollama_messages.append({"role": "system", "content": system})

        for msg in messages:
            entry = {"role": msg.role, "content": msg.content}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "function": {
                            "name": tc.name,
                            "arguments": tc.args if isinstance(tc.args, dict) else {},
                        }
                    }
                    for tc in msg.tool_calls
                ]
            if msg.role == "tool" and msg.tool_name:
                entry["tool_name"] = msg.tool_name
            ollama_messages.append(entry)

        return ollama_messages

    async def stream(
        self,
        messages: list[Message],
        system: str = "",
    ) -> AsyncIterator[StreamEvent]:
        """Stream a response from Ollama."""
        ollama_messages = self._messages_to_ollama(messages, system)
        tools = self.tool_specs()

        tool_calls = []

        try:
            response = await self.client.chat(
                model=self.model_id,
                messages=ollama_messages,
                tools=tools or None,
                stream=True,
            )
            async for chunk in response:
                message = chunk.get("message") or {}

                # Handle text content
                if content := message.get("content"):
                    yield StreamEvent(text=content)

                # Ollama sends whole tool calls, without ids
                if tc_list := message.get("tool_calls"):
                    if not tool_calls:
                        yield StreamEvent(tool_use_started=True)
                    for tc in tc_list:
                        fn = tc.get("function") or {}
                        tool_calls.append(ToolCall(
                            id=new_call_id(),
                            name=fn.get("name") or "unknown",
                            args=dict(fn.get("arguments") or {}),
                        ))

                if chunk.get("done"):
                    stop_reason = "tool_use" if tool_calls else "end_turn"
                    yield StreamEvent(
                        tool_calls=tool_calls if tool_calls else None,
                        stop_reason=stop_reason,
                        usage=Usage(
                            input_tokens=chunk.get("prompt_eval_count") or 0,
                            output_tokens=chunk.get("eval_count") or 0,
                        ),
                    )
        except (ollama.ResponseError, ollama.RequestError, ConnectionError, httpx.HTTPError) as exc:
            raise ProviderError(self.name, f"{exc} (host: {self.host})") from exc
