"""LLM provider abstraction."""

from threadgraph.llm.mock import MockLLMProvider
from threadgraph.llm.provider import LLMProvider, LLMResponse, Tool, ToolResult, ToolUse

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "Tool",
    "ToolUse",
    "ToolResult",
    "MockLLMProvider",
]

try:
    from threadgraph.llm.litellm import LiteLLMProvider  # noqa: F401

    __all__.append("LiteLLMProvider")
except ImportError:
    pass
