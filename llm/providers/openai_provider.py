"""
OpenAI-compatible LLM Provider.

Works against OpenAI, OpenRouter and Gemini's OpenAI-compatible endpoint
by switching ``base_url``.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    """A function call requested by the model."""
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    raw_arguments: str = "{}"
    # Set when ``raw_arguments`` is not a JSON object.
    parse_error: Optional[str] = None

    def to_message(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments},
        }


@dataclass
class Completion:
    """One model turn: text and/or tool calls."""
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


def parse_tool_call(call_id: str, name: str, raw_arguments: Optional[str]) -> ToolCall:
    raw = raw_arguments or "{}"
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError as e:
        return ToolCall(id=call_id, name=name, raw_arguments=raw, parse_error=str(e))
    if not isinstance(arguments, dict):
        return ToolCall(id=call_id, name=name, raw_arguments=raw, parse_error="arguments must be an object")
    return ToolCall(id=call_id, name=name, arguments=arguments, raw_arguments=raw)


class OpenAIProvider:
    """
    Chat completions provider with function tools.

    Supports any OpenAI-compatible endpoint.
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        max_tokens: int = 600,
        temperature: float = 0.4,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: Provider API key
            model_id: Model ID
            max_tokens: Maximum tokens
            temperature: Generation temperature
            base_url: Endpoint override (OpenRouter, Gemini)
            timeout: Request timeout in seconds
            client: Preconfigured AsyncOpenAI client
        """
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.model_id = model_id
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info(f"OpenAI-compatible provider initialized: {model_id}")

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion:
        """
        Run one chat completion.

        Args:
            messages: Full transcript including the system message
            tools: Function tool definitions, or None to disable tools

        Returns:
            Completion with text and parsed tool calls
        """
        kwargs: Dict[str, Any] = {
            "model": self.model_id,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.error(f"OpenAI generation failed: {e}")
            raise

        message = response.choices[0].message
        tool_calls = [
            parse_tool_call(call.id, call.function.name, call.function.arguments)
            for call in (message.tool_calls or [])
        ]
        return Completion(text=(message.content or "").strip(), tool_calls=tool_calls)
