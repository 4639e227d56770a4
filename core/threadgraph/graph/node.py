"""
Node Protocol - The building block of agent graphs.

A node is a unit of computation from current state to a partial state update.
Anything callable works:

    def verify(state):                      # state only
        return {"customer_id": "7"}

    async def human_input(state, ctx):      # state + NodeContext
        answer = ctx.interrupt("need identifier")
        return {"messages": [answer]}

Objects implementing ``NodeProtocol.execute(state, ctx)`` are used as-is,
which is how capability-bearing nodes (LLM, tools, stores) are written: the
capability is passed to the constructor at graph-assembly time.
"""

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from threadgraph.graph.hitl import NodeInterrupt, ResumeSlot
from threadgraph.schemas.checkpoint import PendingInterrupt

NodeUpdate = Mapping[str, Any] | None


@dataclass
class NodeContext:
    """
    Per-step context handed to a node.

    Attributes:
        session_id: Session being executed
        node_id: Name of the running node
        step: Session-wide step number this execution will record
        remaining_steps: Step budget left, including this step
    """

    session_id: str
    node_id: str
    step: int
    remaining_steps: int
    resume: ResumeSlot = field(default_factory=ResumeSlot, repr=False)

    def interrupt(self, reason: str, payload: Any = None) -> Any:
        """
        Suspend the session until the caller resumes it.

        Returns the resume value when the node is re-executed by
        GraphExecutor.resume(); otherwise raises NodeInterrupt.
        """
        if self.resume.available:
            return self.resume.take()
        raise NodeInterrupt(PendingInterrupt(reason=reason, payload=payload, node_id=self.node_id))


@runtime_checkable
class NodeProtocol(Protocol):
    """Interface every executable node satisfies."""

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> NodeUpdate: ...


class FunctionNode:
    """Adapts a plain (sync or async) function to NodeProtocol."""

    def __init__(self, func: Callable[..., Any]):
        self.func = func
        self._wants_ctx = _accepts_context(func)

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> NodeUpdate:
        result = self.func(state, ctx) if self._wants_ctx else self.func(state)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionNode({getattr(self.func, '__name__', self.func)!r})"


def _accepts_context(func: Callable[..., Any]) -> bool:
    try:
        params = list(inspect.signature(func).parameters.values())
    except (TypeError, ValueError):
        return True
    positional = [
        p
        for p in params
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) and p.default is p.empty
    ]
    has_varargs = any(p.kind == p.VAR_POSITIONAL for p in params)
    return has_varargs or len(positional) >= 2


def as_node(node: Any) -> NodeProtocol:
    """Normalize a node declaration to something with ``execute``."""
    if isinstance(node, NodeProtocol):
        return node
    if callable(node):
        return FunctionNode(node)
    raise TypeError(f"Node must be callable or implement execute(), got {type(node).__name__}")
