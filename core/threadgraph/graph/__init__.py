"""Graph structures: State, Nodes, Edges, and the session Executor."""

from threadgraph.graph.builder import CompiledGraph, GraphBuilder
from threadgraph.graph.edge import END, EdgeCondition, EdgeSpec
from threadgraph.graph.executor import (
    FinalState,
    GraphExecutor,
    StateSnapshot,
    StepEvent,
    generate_session_id,
)
from threadgraph.graph.hitl import InterruptDescriptor, NodeInterrupt, format_for_display
from threadgraph.graph.messages import (
    AIMessage,
    AnyMessage,
    BaseMessage,
    HumanMessage,
    RemoveMessage,
    SystemMessage,
    ToolCall,
    ToolMessage,
    format_conversation,
    last_ai_message,
    merge_messages,
)
from threadgraph.graph.node import FunctionNode, NodeContext, NodeProtocol
from threadgraph.graph.state import (
    Channel,
    StateSchema,
    append,
    messages_channel,
    messages_schema,
    overwrite,
)
from threadgraph.graph.subgraph import SubgraphNode

__all__ = [
    # State
    "Channel",
    "StateSchema",
    "overwrite",
    "append",
    "messages_channel",
    "messages_schema",
    # Messages
    "BaseMessage",
    "HumanMessage",
    "AIMessage",
    "ToolMessage",
    "SystemMessage",
    "RemoveMessage",
    "ToolCall",
    "AnyMessage",
    "merge_messages",
    "last_ai_message",
    "format_conversation",
    # Node
    "NodeContext",
    "NodeProtocol",
    "FunctionNode",
    "SubgraphNode",
    # Edge
    "END",
    "EdgeSpec",
    "EdgeCondition",
    # Compiler
    "GraphBuilder",
    "CompiledGraph",
    # Executor
    "GraphExecutor",
    "FinalState",
    "StateSnapshot",
    "StepEvent",
    "generate_session_id",
    # HITL
    "InterruptDescriptor",
    "NodeInterrupt",
    "format_for_display",
]
