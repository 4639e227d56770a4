"""Prebuilt nodes and graphs: tool execution, delegates, supervisor, memory."""

from threadgraph.prebuilt.delegate import AssistantNode, create_delegate_agent, should_continue
from threadgraph.prebuilt.memory import LoadMemoryNode, UpdateMemoryNode
from threadgraph.prebuilt.prompts import (
    MemoryPromptContext,
    SupervisorPromptContext,
    render_memory_prompt,
    render_supervisor_prompt,
)
from threadgraph.prebuilt.supervisor import (
    RouteDecision,
    SupervisorNode,
    create_supervisor,
    normalize_label,
    route_channel,
    route_supervisor,
)
from threadgraph.prebuilt.tool_node import ToolNode

__all__ = [
    "ToolNode",
    "AssistantNode",
    "should_continue",
    "create_delegate_agent",
    "SupervisorNode",
    "RouteDecision",
    "route_supervisor",
    "route_channel",
    "normalize_label",
    "create_supervisor",
    "LoadMemoryNode",
    "UpdateMemoryNode",
    "SupervisorPromptContext",
    "MemoryPromptContext",
    "render_supervisor_prompt",
    "render_memory_prompt",
]
