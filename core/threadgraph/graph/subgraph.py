"""Run a compiled graph as a single node of a parent graph."""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from threadgraph.errors import InvalidUpdateError
from threadgraph.graph.messages import RemoveMessage, merge_messages
from threadgraph.graph.node import NodeContext
from threadgraph.graph.scheduler import run_steps
from threadgraph.graph.state import StateSchema, append, overwrite

if TYPE_CHECKING:
    from threadgraph.graph.builder import CompiledGraph

logger = logging.getLogger(__name__)

# Parent reducers a subgraph result can be expressed for
HANDBACK_REDUCERS = (overwrite, append, merge_messages)


def shared_channel_errors(
    node_name: str, graph: "CompiledGraph", parent_schema: StateSchema
) -> list[str]:
    """Channels the subgraph shares with a parent whose reducer cannot take its result."""
    errors = []
    for name in graph.schema.channels:
        if name not in parent_schema:
            continue
        reducer = parent_schema.channels[name].reducer
        if reducer not in HANDBACK_REDUCERS:
            errors.append(
                f"Subgraph node '{node_name}' shares channel '{name}' with a custom "
                f"reducer ({getattr(reducer, '__name__', reducer)!r}); only overwrite, "
                "append and merge_messages channels can be shared"
            )
    return errors


class SubgraphNode:
    """
    Delegates one parent step to a whole subgraph.

    The subgraph starts from the parent's values for the channels both
    graphs declare, runs its own loop to END within the parent's remaining
    step budget, and hands back the channels it changed that the parent also
    holds. The update is shaped for the parent's reducer so the parent ends
    up with the subgraph's final value:
    - overwrite: the final value
    - append: only the items the subgraph added
    - merge_messages: the final list, plus removals for messages it deleted

    A suspension inside the subgraph suspends the parent node; on resume the
    subgraph restarts from its entry node and the resume value goes to the
    first ``interrupt`` call it reaches.
    """

    def __init__(self, graph: "CompiledGraph", parent_schema: StateSchema | None = None):
        self.graph = graph
        self.parent_schema = parent_schema or graph.schema

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> dict[str, Any]:
        values = self.graph.schema.initial()
        values.update(self.graph.schema.project(state))
        start = dict(values)

        async for outcome in run_steps(
            self.graph,
            values,
            self.graph.entry_node,
            budget=ctx.remaining_steps,
            session_id=ctx.session_id,
            resume=ctx.resume,
            first_step=ctx.step,
            clear_resume_after_step=False,
        ):
            values = outcome.values

        logger.debug(f"Subgraph '{self.graph.name}' finished inside '{ctx.node_id}'")
        update: dict[str, Any] = {}
        for name, value in values.items():
            if name not in state or name not in self.parent_schema:
                continue
            if value == start.get(name):
                continue
            update[name] = self._handback(name, start.get(name), value)
        return update

    def _handback(self, name: str, before: Any, after: Any) -> Any:
        reducer = self.parent_schema.channels[name].reducer
        if reducer is append:
            before = list(before or [])
            after = list(after or [])
            if after[: len(before)] != before:
                raise InvalidUpdateError(
                    f"Subgraph '{self.graph.name}' rewrote earlier items of append-only "
                    f"channel '{name}'"
                )
            return after[len(before) :]
        if reducer is merge_messages:
            kept = {m.id for m in after}
            removed = [RemoveMessage(id=m.id) for m in before or [] if m.id not in kept]
            return [*removed, *after]
        return after

    def __repr__(self) -> str:
        return f"SubgraphNode({self.graph.name!r})"
