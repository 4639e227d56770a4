"""LiteLLM provider - one interface to OpenAI, Anthropic, Gemini, Ollama and friends.

Model strings follow litellm's ``provider/model`` convention, e.g.
``openai/gpt-4o-mini`` or ``anthropic/claude-3-5-haiku-latest``. API keys are
read by litellm from the usual environment variables unless passed explicitly.
"""

import json
import logging
from typing import Any

import litellm

from threadgraph.llm.provider import LLMProvider, LLMResponse, Tool, ToolUse

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """LLMProvider backed by ``litellm.completion`` / ``litellm.acompletion``."""

    def __init__(
        self,
        model: str = "openai/gpt-4o-mini",
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float | None = None,
        num_retries: int = 2,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.temperature = temperature
        self.num_retries = num_retries

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        params = self._build_params(messages, system, tools, max_tokens, response_format, json_mode)
        response = litellm.completion(**params)
        return self._parse_response(response)

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        params = self._build_params(messages, system, tools, max_tokens, response_format, json_mode)
        response = await litellm.acompletion(**params)
        return self._parse_response(response)

    def _build_params(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[Tool] | None,
        max_tokens: int,
        response_format: dict[str, Any] | None,
        json_mode: bool,
    ) -> dict[str, Any]:
        full_messages = list(messages)
        if system:
            full_messages.insert(0, {"role": "system", "content": system})

        params: dict[str, Any] = {
            "model": self.model,
            "messages": full_messages,
            "max_tokens": max_tokens,
            "num_retries": self.num_retries,
        }
        if self.api_key is not None:
            params["api_key"] = self.api_key
        if self.api_base is not None:
            params["api_base"] = self.api_base
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if tools:
            params["tools"] = [tool.to_openai_dict() for tool in tools]
        if response_format is not None:
            params["response_format"] = response_format
        elif json_mode:
            params["response_format"] = {"type": "json_object"}

        logger.debug(
            f"LLM request to {self.model}: {len(full_messages)} messages, "
            f"{len(tools or [])} tools",
            extra={"model": self.model},
        )
        return params

    def _parse_response(self, response: Any) -> LLMResponse:
        choice = response.choices[0]
        message = choice.message

        tool_calls = []
        for call in getattr(message, "tool_calls", None) or []:
            try:
                args = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(
                    f"Tool call '{call.function.name}' had unparseable arguments; using {{}}"
                )
                args = {}
            tool_calls.append(ToolUse(id=call.id, name=call.function.name, input=args))

        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0
        finish_reason = choice.finish_reason or ""
        if finish_reason == "length":
            logger.warning(f"Response from {self.model} was cut off at the token limit")

        logger.info(
            f"LLM call to {response.model or self.model} finished ({finish_reason})",
            extra={
                "event": "llm_call",
                "model": response.model or self.model,
                "tokens_used": input_tokens + output_tokens,
            },
        )
        return LLMResponse(
            content=message.content or "",
            model=response.model or self.model,
            tool_calls=tool_calls,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            stop_reason=finish_reason,
            raw_response=response,
        )
