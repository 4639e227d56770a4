"""
Edge Protocol - How nodes connect in a graph.

Every non-terminal node has exactly one outgoing edge spec:
- always: traverse to a fixed target after the source completes
- conditional: a routing function maps the new state to a label, and the
  path map turns the label into a target

Routing functions must be pure: the same state always yields the same label.
The label set is declared up front (the path map keys); a router that
returns anything else fails the run with UnknownRouteError.
"""

import logging
import typing
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

from threadgraph.errors import UnknownRouteError

logger = logging.getLogger(__name__)

END = "__end__"

Router = Callable[[Mapping[str, Any]], str]


class EdgeCondition(StrEnum):
    """When an edge is traversed."""

    ALWAYS = "always"  # Always after source completes
    CONDITIONAL = "conditional"  # Based on the router's label


class EdgeSpec(BaseModel):
    """
    Specification for the edge leaving a node.

    Examples:
        # Deterministic
        EdgeSpec(source="human_input", target="verify_info")

        # Conditional routing
        EdgeSpec(
            source="verify_info",
            condition=EdgeCondition.CONDITIONAL,
            router=should_interrupt,
            path_map={"continue": "load_memory", "interrupt": "human_input"},
        )
    """

    source: str = Field(description="Source node ID")
    condition: EdgeCondition = EdgeCondition.ALWAYS
    target: str | None = Field(default=None, description="Target for ALWAYS edges")
    router: Router | None = Field(default=None, description="Label function for CONDITIONAL")
    path_map: dict[str, str] = Field(
        default_factory=dict, description="Map router labels to target node IDs"
    )

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def targets(self) -> list[str]:
        if self.condition == EdgeCondition.ALWAYS:
            return [self.target] if self.target else []
        return list(dict.fromkeys(self.path_map.values()))

    def next_node(self, state: Mapping[str, Any]) -> str:
        """
        Determine the target for the given (post-update) state.

        Raises:
            UnknownRouteError: router returned a label missing from the path map
        """
        if self.condition == EdgeCondition.ALWAYS:
            return self.target  # type: ignore[return-value]

        label = self.router(state)  # type: ignore[misc]
        try:
            target = self.path_map[label]
        except (KeyError, TypeError):
            raise UnknownRouteError(self.source, label, sorted(self.path_map)) from None
        logger.debug(f"Routed '{self.source}' -> '{target}' via label '{label}'")
        return target

    def declared_labels(self) -> set[str] | None:
        """
        Labels the router advertises through a ``Literal[...]`` return annotation.

        Returns None when the router carries no such annotation (routers are
        opaque, so coverage can only be checked when they say what they return).
        """
        if self.router is None:
            return None
        try:
            hints = typing.get_type_hints(self.router)
        except (NameError, TypeError, AttributeError):
            return None
        returned = hints.get("return")
        if typing.get_origin(returned) is Literal:
            return {str(arg) for arg in typing.get_args(returned)}
        return None
