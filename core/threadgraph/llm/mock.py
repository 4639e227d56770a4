"""Mock LLM provider for tests and offline (--mock) runs."""

import json
import logging
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel

from threadgraph.llm.provider import LLMProvider, LLMResponse, Tool

logger = logging.getLogger(__name__)

Responder = Callable[[list[dict[str, Any]], str, list[Tool] | None], Any]


class MockLLMProvider(LLMProvider):
    """
    Deterministic LLM stand-in.

    Either replays ``responses`` in order, or asks ``responder`` for each
    answer. A response may be an LLMResponse, a plain string, a pydantic
    model (sent back as its JSON) or a dict (sent back as JSON).

    Every request is recorded in ``calls`` so tests can assert on prompts.

    Example:
        llm = MockLLMProvider(responses=['{"identifier": "7"}', "Hello!"])
    """

    def __init__(
        self,
        responses: Iterable[Any] | None = None,
        responder: Responder | None = None,
        model: str = "mock-model",
    ):
        if responses is None and responder is None:
            raise ValueError("MockLLMProvider needs scripted responses or a responder")
        self._responses = list(responses or [])
        self._responder = responder
        self.model = model
        self.calls: list[dict[str, Any]] = []

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append(
            {
                "messages": list(messages),
                "system": system,
                "tools": [t.name for t in tools or []],
                "response_format": response_format,
                "json_mode": json_mode,
            }
        )
        if self._responder is not None:
            answer = self._responder(messages, system, tools)
        elif self._responses:
            answer = self._responses.pop(0)
        else:
            raise RuntimeError(
                f"MockLLMProvider ran out of scripted responses after {len(self.calls) - 1} calls"
            )
        logger.debug(f"Mock LLM answered call #{len(self.calls)}")
        return self._to_response(answer)

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        return self.complete(messages, system, tools, max_tokens, response_format, json_mode)

    def _to_response(self, answer: Any) -> LLMResponse:
        if isinstance(answer, LLMResponse):
            return answer
        if isinstance(answer, BaseModel):
            content = answer.model_dump_json()
        elif isinstance(answer, dict):
            content = json.dumps(answer)
        else:
            content = str(answer)
        return LLMResponse(content=content, model=self.model, stop_reason="stop")
