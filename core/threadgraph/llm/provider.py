"""LLM Provider abstraction for pluggable LLM backends."""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class Tool:
    """A tool the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_openai_dict(self) -> dict[str, Any]:
        """Function-calling schema in the OpenAI format litellm accepts."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }


@dataclass
class ToolUse:
    """A tool call requested by the LLM."""

    id: str
    name: str
    input: dict[str, Any]


@dataclass
class ToolResult:
    """Result of executing a tool."""

    tool_use_id: str
    content: str
    is_error: bool = False


@dataclass
class LLMResponse:
    """Response from an LLM call."""

    content: str
    model: str
    tool_calls: list[ToolUse] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    raw_response: Any = None


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any LLM backend.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Token counting
    """

    @abstractmethod
    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history in OpenAI format
                ({role: "user"|"assistant"|"tool", content: str, ...})
            system: System prompt
            tools: Available tools for the LLM to use
            max_tokens: Maximum tokens to generate
            response_format: Optional structured output format. Use:
                - {"type": "json_object"} for basic JSON mode
                - {"type": "json_schema", "json_schema": {"name": "...", "schema": {...}}}
                  for strict JSON schema enforcement
            json_mode: If True, request structured JSON output from the LLM

        Returns:
            LLMResponse with content, requested tool calls and metadata
        """
        pass

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Async completion.

        Default implementation runs complete() in a worker thread so the
        event loop keeps serving other sessions. Subclasses with a native
        async client SHOULD override.
        """
        return await asyncio.to_thread(
            self.complete,
            messages,
            system,
            tools,
            max_tokens,
            response_format,
            json_mode,
        )

    async def acomplete_structured(
        self,
        messages: list[dict[str, Any]],
        schema: type[T],
        system: str = "",
        max_tokens: int = 1024,
    ) -> T:
        """
        Ask for JSON matching ``schema`` and validate the answer with pydantic.

        Raises:
            pydantic.ValidationError: the model's output does not fit ``schema``
        """
        response = await self.acomplete(
            messages=messages,
            system=system,
            max_tokens=max_tokens,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "schema": schema.model_json_schema(),
                },
            },
            json_mode=True,
        )
        return schema.model_validate_json(extract_json(response.content))


def extract_json(text: str) -> str:
    """Strip markdown code fences some models wrap around JSON output."""
    text = text.strip()
    match = _FENCE_PATTERN.match(text)
    if match:
        text = match.group(1)
    if not text:
        return json.dumps({})
    return text
