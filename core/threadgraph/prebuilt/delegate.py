"""
Delegate agents: an assistant step and a tool step in a loop.

    assistant --(continue)--> tools --> assistant
        \\--(end)--> END

The assistant calls the model with the conversation and the delegate's tools.
While its answer requests tools, the loop runs them and asks again; the
first answer without tool calls ends the delegate.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any, Literal

from threadgraph.graph.builder import CompiledGraph, GraphBuilder
from threadgraph.graph.edge import END
from threadgraph.graph.messages import AIMessage, ToolCall, last_ai_message
from threadgraph.graph.node import NodeContext
from threadgraph.graph.state import StateSchema, messages_schema
from threadgraph.llm.provider import LLMProvider, Tool
from threadgraph.prebuilt.tool_node import ToolNode
from threadgraph.runner.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

SystemPrompt = str | Callable[[Mapping[str, Any]], str]


class AssistantNode:
    """
    One model call over the conversation, appended as an AIMessage.

    ``system_prompt`` may be a string or a function of the current state,
    for prompts that embed state such as a loaded memory profile.
    """

    def __init__(
        self,
        llm: LLMProvider,
        system_prompt: SystemPrompt,
        tools: list[Tool] | None = None,
        name: str | None = None,
        max_tokens: int = 1024,
        messages_key: str = "messages",
    ):
        self.llm = llm
        self.system_prompt = system_prompt
        self.tools = list(tools or [])
        self.name = name
        self.max_tokens = max_tokens
        self.messages_key = messages_key

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> dict[str, Any]:
        system = self.system_prompt(state) if callable(self.system_prompt) else self.system_prompt
        messages = [m.to_llm_dict() for m in state.get(self.messages_key) or []]

        response = await self.llm.acomplete(
            messages=messages,
            system=system,
            tools=self.tools or None,
            max_tokens=self.max_tokens,
        )
        tool_calls = [ToolCall(id=c.id, name=c.name, args=c.input) for c in response.tool_calls]
        if tool_calls:
            logger.info(f"Assistant requested tools: {[c.name for c in tool_calls]}")
        return {
            self.messages_key: [
                AIMessage(content=response.content, name=self.name, tool_calls=tool_calls)
            ]
        }


def should_continue(state: Mapping[str, Any]) -> Literal["continue", "end"]:
    """Route to the tool step while the last AI message still requests tools."""
    message = last_ai_message(state.get("messages") or [])
    if message is not None and message.tool_calls:
        return "continue"
    return "end"


def create_delegate_agent(
    name: str,
    llm: LLMProvider,
    registry: ToolRegistry,
    system_prompt: SystemPrompt,
    schema: StateSchema | None = None,
) -> CompiledGraph:
    """
    Build a compiled assistant <-> tools loop.

    The result can be run on its own or added as a node of a larger graph,
    where it executes as one step and returns only the messages it added.
    """
    schema = schema or messages_schema()
    tools = list(registry.get_tools().values())

    builder = GraphBuilder(schema, name=name)
    builder.add_node("assistant", AssistantNode(llm, system_prompt, tools, name=name))
    builder.add_node("tools", ToolNode(registry))
    builder.set_entry_point("assistant")
    builder.add_conditional_edges(
        "assistant",
        should_continue,
        {"continue": "tools", "end": END},
    )
    builder.add_edge("tools", "assistant")
    return builder.compile()
