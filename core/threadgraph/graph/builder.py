"""
Graph Builder - Declares nodes and edges, then compiles an immutable graph.

    builder = GraphBuilder(schema, name="music_store_support")
    builder.add_node("verify_info", verify_info)
    builder.add_node("human_input", human_input)
    builder.add_node("supervisor", supervisor_graph)      # compiled subgraph
    builder.set_entry_point("verify_info")
    builder.add_conditional_edges(
        "verify_info",
        should_interrupt,
        {"continue": "supervisor", "interrupt": "human_input"},
    )
    builder.add_edge("human_input", "verify_info")
    builder.set_finish_point("supervisor")
    graph = builder.compile()

Validation happens once, in ``compile()``. Cycles are allowed on purpose
(agent <-> tool loops); the executor's step budget bounds them.
"""

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from threadgraph.errors import GraphValidationError
from threadgraph.graph.edge import END, EdgeCondition, EdgeSpec, Router
from threadgraph.graph.node import NodeProtocol, as_node
from threadgraph.graph.state import StateSchema

logger = logging.getLogger(__name__)

RESERVED_NAMES = frozenset({END, "__start__"})


class CompiledGraph:
    """
    Immutable, validated graph.

    Nodes are indexed by name and each node maps to the single edge spec
    leaving it. Compiled graphs are shared across sessions and may be
    added as a node of another graph.
    """

    def __init__(
        self,
        name: str,
        schema: StateSchema,
        entry_node: str,
        nodes: Mapping[str, NodeProtocol],
        edges: Mapping[str, EdgeSpec],
    ):
        self._name = name
        self._schema = schema
        self._entry_node = entry_node
        self._nodes = MappingProxyType(dict(nodes))
        self._edges = MappingProxyType(dict(edges))

    @property
    def name(self) -> str:
        return self._name

    @property
    def schema(self) -> StateSchema:
        return self._schema

    @property
    def entry_node(self) -> str:
        return self._entry_node

    @property
    def nodes(self) -> Mapping[str, NodeProtocol]:
        return self._nodes

    @property
    def edges(self) -> Mapping[str, EdgeSpec]:
        return self._edges

    def get_node(self, node_id: str) -> NodeProtocol:
        return self._nodes[node_id]

    def next_node(self, node_id: str, state: Mapping[str, Any]) -> str:
        """Follow the edge leaving ``node_id`` for the given state."""
        return self._edges[node_id].next_node(state)

    def labels_for(self, node_id: str) -> list[str]:
        """Routing labels declared for a node (empty for deterministic edges)."""
        edge = self._edges[node_id]
        return list(edge.path_map) if edge.condition == EdgeCondition.CONDITIONAL else []

    def transition_table(self) -> dict[str, dict[str, str]]:
        """
        Explicit state-machine view of the graph.

        Deterministic edges appear under the label ``"always"``.
        """
        table: dict[str, dict[str, str]] = {}
        for node_id, edge in self._edges.items():
            if edge.condition == EdgeCondition.ALWAYS:
                table[node_id] = {EdgeCondition.ALWAYS.value: edge.target}  # type: ignore[dict-item]
            else:
                table[node_id] = dict(edge.path_map)
        return table

    def __repr__(self) -> str:
        return f"CompiledGraph(name={self._name!r}, nodes={list(self._nodes)})"


class GraphBuilder:
    """Collects node and edge declarations for one graph."""

    def __init__(self, schema: StateSchema, name: str = "graph"):
        self.schema = schema
        self.name = name
        self._nodes: dict[str, Any] = {}
        self._edges: list[EdgeSpec] = []
        self._entry_node: str | None = None
        self._errors: list[str] = []

    def add_node(self, name: str, node: Any) -> "GraphBuilder":
        """Declare a node. ``node`` may be a callable, a NodeProtocol or a CompiledGraph."""
        if name in RESERVED_NAMES:
            self._errors.append(f"Node name '{name}' is reserved")
        elif name in self._nodes:
            self._errors.append(f"Node '{name}' is declared more than once")
        elif not (
            isinstance(node, CompiledGraph) or isinstance(node, NodeProtocol) or callable(node)
        ):
            self._errors.append(f"Node '{name}' is not callable ({type(node).__name__})")
        else:
            self._nodes[name] = node
        return self

    def add_edge(self, source: str, target: str) -> "GraphBuilder":
        """Declare a deterministic edge ``source -> target``."""
        self._edges.append(EdgeSpec(source=source, target=target))
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Router,
        path_map: Mapping[str, str] | Iterable[str],
    ) -> "GraphBuilder":
        """
        Declare a conditional edge.

        Args:
            source: Node whose completion triggers routing
            router: Pure function ``state -> label``
            path_map: ``{label: target}``, or a list of targets used as their own labels
        """
        if not isinstance(path_map, Mapping):
            path_map = {target: target for target in path_map}
        self._edges.append(
            EdgeSpec(
                source=source,
                condition=EdgeCondition.CONDITIONAL,
                router=router,
                path_map=dict(path_map),
            )
        )
        return self

    def set_entry_point(self, name: str) -> "GraphBuilder":
        self._entry_node = name
        return self

    def set_finish_point(self, name: str) -> "GraphBuilder":
        """Mark ``name`` as terminal (an edge to END)."""
        return self.add_edge(name, END)

    def validate(self) -> list[str]:
        """Validate the declaration. Returns every problem found."""
        errors = list(self._errors)

        if self._entry_node is None:
            errors.append("No entry point set")
        elif self._entry_node not in self._nodes:
            errors.append(f"Entry node '{self._entry_node}' not found")

        outgoing: dict[str, list[EdgeSpec]] = {}
        for edge in self._edges:
            if edge.source == END:
                errors.append("END cannot be the source of an edge")
                continue
            if edge.source not in self._nodes:
                errors.append(f"Edge from '{edge.source}' references missing source")
            outgoing.setdefault(edge.source, []).append(edge)

            if edge.condition == EdgeCondition.CONDITIONAL:
                if not edge.path_map:
                    errors.append(f"Conditional edge from '{edge.source}' has an empty path map")
                declared = edge.declared_labels()
                if declared is not None:
                    uncovered = sorted(declared - set(edge.path_map))
                    if uncovered:
                        errors.append(
                            f"Router of '{edge.source}' can return labels {uncovered} "
                            f"with no target in its path map"
                        )

            for target in edge.targets:
                if target != END and target not in self._nodes:
                    errors.append(f"Edge from '{edge.source}' references missing target '{target}'")

        for source, edges in outgoing.items():
            kinds = {e.condition for e in edges}
            if len(edges) > 1:
                if len(kinds) > 1:
                    errors.append(f"Node '{source}' mixes deterministic and conditional edges")
                elif EdgeCondition.CONDITIONAL in kinds:
                    errors.append(f"Node '{source}' declares more than one conditional edge")
                else:
                    errors.append(
                        f"Node '{source}' declares more than one deterministic edge "
                        f"(targets: {[e.target for e in edges]})"
                    )

        for name in self._nodes:
            if name not in outgoing:
                errors.append(
                    f"Node '{name}' has no outgoing edge; use set_finish_point() for terminal nodes"
                )

        from threadgraph.graph.subgraph import shared_channel_errors

        for name, node in self._nodes.items():
            if isinstance(node, CompiledGraph):
                errors.extend(shared_channel_errors(name, node, self.schema))

        return errors

    def compile(self) -> CompiledGraph:
        """
        Validate and freeze the graph.

        Raises:
            GraphValidationError: with every problem validate() found
        """
        errors = self.validate()
        if errors:
            raise GraphValidationError(errors)

        from threadgraph.graph.subgraph import SubgraphNode

        nodes: dict[str, NodeProtocol] = {}
        for name, node in self._nodes.items():
            if isinstance(node, CompiledGraph):
                nodes[name] = SubgraphNode(node, parent_schema=self.schema)
            else:
                nodes[name] = as_node(node)

        edges = {edge.source: edge for edge in self._edges}
        logger.debug(f"Compiled graph '{self.name}' with {len(nodes)} nodes")
        return CompiledGraph(
            name=self.name,
            schema=self.schema,
            entry_node=self._entry_node,  # type: ignore[arg-type]
            nodes=nodes,
            edges=edges,
        )
