"""
Step loop shared by the session executor and in-process subgraphs.

One step = invoke the current node, merge its update through the schema's
reducers, spend one unit of budget, and pick the next node. Suspension
(NodeInterrupt) and node failures propagate to the caller untouched; the
budget is checked before every node invocation.
"""

import logging
import time
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from threadgraph.errors import RecursionLimitError
from threadgraph.graph.edge import END
from threadgraph.graph.hitl import NodeInterrupt, ResumeSlot
from threadgraph.graph.node import NodeContext
from threadgraph.observability import set_trace_context

if TYPE_CHECKING:
    from threadgraph.graph.builder import CompiledGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepOutcome:
    """Result of one completed (non-suspending) step."""

    node_id: str
    step: int
    update: Mapping[str, Any] | None
    values: dict[str, Any]
    next_node: str
    remaining_steps: int
    latency_ms: int


async def run_steps(
    graph: "CompiledGraph",
    values: dict[str, Any],
    start_node: str,
    *,
    budget: int,
    session_id: str,
    resume: ResumeSlot | None = None,
    first_step: int = 0,
    clear_resume_after_step: bool = True,
) -> AsyncIterator[StepOutcome]:
    """
    Drive ``graph`` from ``start_node`` until END.

    Yields a StepOutcome after every completed step. Stops when the next
    node is END.

    Raises:
        RecursionLimitError: budget exhausted before reaching END
        NodeInterrupt: the running node requested suspension
        Exception: whatever a node raised, unchanged
    """
    resume = resume or ResumeSlot()
    remaining = budget
    current = start_node
    step = first_step

    while current != END:
        if remaining <= 0:
            logger.warning(
                f"Step budget of {budget} exhausted before '{current}'",
                extra={"event": "recursion_limit", "node_id": current},
            )
            raise RecursionLimitError(budget, session_id=session_id, node_id=current)

        node = graph.get_node(current)
        ctx = NodeContext(
            session_id=session_id,
            node_id=current,
            step=step,
            remaining_steps=remaining,
            resume=resume,
        )
        set_trace_context(node_id=current, step=step)

        start = time.perf_counter()
        try:
            update = await node.execute(MappingProxyType(values), ctx)
        except NodeInterrupt:
            logger.info(f"Node '{current}' requested suspension", extra={"event": "interrupt"})
            raise
        except Exception:
            logger.error(
                f"Node '{current}' failed in graph '{graph.name}'",
                exc_info=True,
                extra={"event": "node_failed", "node_id": current},
            )
            raise
        latency_ms = int((time.perf_counter() - start) * 1000)

        values = graph.schema.apply(values, update)
        remaining -= 1
        next_node = graph.next_node(current, values)
        if clear_resume_after_step:
            resume.clear()

        logger.debug(
            f"Step {step}: '{current}' -> '{next_node}' ({remaining} steps left)",
            extra={"event": "step_completed", "node_id": current, "latency_ms": latency_ms},
        )
        yield StepOutcome(
            node_id=current,
            step=step,
            update=update,
            values=values,
            next_node=next_node,
            remaining_steps=remaining,
            latency_ms=latency_ms,
        )
        current = next_node
        step += 1
