"""Tests for graph declaration and compile-time validation."""

from typing import Literal

import pytest

from threadgraph.errors import GraphValidationError
from threadgraph.graph.builder import GraphBuilder
from threadgraph.graph.edge import END
from threadgraph.graph.state import Channel, StateSchema, messages_schema
from threadgraph.graph.subgraph import SubgraphNode


def noop(state):
    return None


def should_interrupt(state) -> Literal["continue", "interrupt"]:
    return "continue" if state.get("customer_id") else "interrupt"


def schema():
    return messages_schema(Channel("customer_id"))


def build_valid() -> GraphBuilder:
    builder = GraphBuilder(schema(), name="support")
    builder.add_node("verify", noop)
    builder.add_node("await_human", noop)
    builder.add_node("supervisor", noop)
    builder.set_entry_point("verify")
    builder.add_conditional_edges(
        "verify",
        should_interrupt,
        {"continue": "supervisor", "interrupt": "await_human"},
    )
    builder.add_edge("await_human", "verify")
    builder.set_finish_point("supervisor")
    return builder


def test_valid_graph_compiles():
    graph = build_valid().compile()

    assert graph.name == "support"
    assert graph.entry_node == "verify"
    assert set(graph.nodes) == {"verify", "await_human", "supervisor"}
    assert graph.transition_table() == {
        "verify": {"continue": "supervisor", "interrupt": "await_human"},
        "await_human": {"always": "verify"},
        "supervisor": {"always": END},
    }
    assert graph.labels_for("verify") == ["continue", "interrupt"]
    assert graph.labels_for("await_human") == []


def test_compiled_graph_is_read_only():
    graph = build_valid().compile()
    with pytest.raises(TypeError):
        graph.nodes["extra"] = noop  # type: ignore[index]


def test_missing_entry_point():
    builder = GraphBuilder(schema())
    builder.add_node("a", noop)
    builder.set_finish_point("a")
    with pytest.raises(GraphValidationError) as exc:
        builder.compile()
    assert "No entry point set" in exc.value.errors


def test_missing_target_reported():
    builder = GraphBuilder(schema())
    builder.add_node("a", noop)
    builder.set_entry_point("a")
    builder.add_edge("a", "ghost")
    with pytest.raises(GraphValidationError, match="missing target 'ghost'"):
        builder.compile()


def test_uncovered_literal_label_reported():
    builder = GraphBuilder(schema())
    builder.add_node("verify", noop)
    builder.add_node("supervisor", noop)
    builder.set_entry_point("verify")
    builder.add_conditional_edges("verify", should_interrupt, {"continue": "supervisor"})
    builder.set_finish_point("supervisor")
    with pytest.raises(GraphValidationError, match="interrupt"):
        builder.compile()


def test_node_without_outgoing_edge_reported():
    builder = GraphBuilder(schema())
    builder.add_node("a", noop)
    builder.add_node("b", noop)
    builder.set_entry_point("a")
    builder.add_edge("a", "b")
    with pytest.raises(GraphValidationError, match="'b' has no outgoing edge"):
        builder.compile()


def test_duplicate_and_reserved_names_reported():
    builder = GraphBuilder(schema())
    builder.add_node("a", noop)
    builder.add_node("a", noop)
    builder.add_node(END, noop)
    builder.set_entry_point("a")
    builder.set_finish_point("a")
    with pytest.raises(GraphValidationError) as exc:
        builder.compile()
    assert any("more than once" in e for e in exc.value.errors)
    assert any("reserved" in e for e in exc.value.errors)


def test_two_edges_from_one_node_reported():
    builder = GraphBuilder(schema())
    builder.add_node("a", noop)
    builder.add_node("b", noop)
    builder.set_entry_point("a")
    builder.add_edge("a", "b")
    builder.add_conditional_edges("a", lambda s: "x", {"x": "b"})
    builder.set_finish_point("b")
    with pytest.raises(GraphValidationError, match="mixes deterministic and conditional"):
        builder.compile()


def test_non_callable_node_reported():
    builder = GraphBuilder(schema())
    builder.add_node("a", 42)
    with pytest.raises(GraphValidationError, match="not callable"):
        builder.compile()


def test_all_errors_collected_in_one_pass():
    builder = GraphBuilder(schema())
    builder.add_node("a", noop)
    builder.add_edge("a", "ghost")
    builder.add_edge("phantom", "a")
    with pytest.raises(GraphValidationError) as exc:
        builder.compile()
    assert len(exc.value.errors) >= 3


def test_list_path_map_uses_targets_as_labels():
    builder = GraphBuilder(schema())
    builder.add_node("a", noop)
    builder.add_node("b", noop)
    builder.set_entry_point("a")
    builder.add_conditional_edges("a", lambda s: "b", ["b", END])
    builder.set_finish_point("b")
    graph = builder.compile()
    assert graph.transition_table()["a"] == {"b": "b", END: END}


def test_compiled_graph_as_node_becomes_subgraph():
    inner = GraphBuilder(messages_schema(), name="inner")
    inner.add_node("only", noop)
    inner.set_entry_point("only")
    inner.set_finish_point("only")

    outer = GraphBuilder(schema(), name="outer")
    outer.add_node("delegate", inner.compile())
    outer.set_entry_point("delegate")
    outer.set_finish_point("delegate")

    graph = outer.compile()
    assert isinstance(graph.get_node("delegate"), SubgraphNode)


def add_totals(current, incoming):
    return (current or 0) + incoming


def test_subgraph_sharing_custom_reducer_channel_reported():
    inner = GraphBuilder(StateSchema([Channel("total", add_totals, int, int)]), name="inner")
    inner.add_node("only", noop)
    inner.set_entry_point("only")
    inner.set_finish_point("only")

    outer = GraphBuilder(
        StateSchema([Channel("total", add_totals, int, int), Channel("customer_id")]),
        name="outer",
    )
    outer.add_node("delegate", inner.compile())
    outer.set_entry_point("delegate")
    outer.set_finish_point("delegate")

    with pytest.raises(GraphValidationError, match="shares channel 'total'"):
        outer.compile()


def test_subgraph_keeps_parent_schema():
    inner = GraphBuilder(messages_schema(), name="inner")
    inner.add_node("only", noop)
    inner.set_entry_point("only")
    inner.set_finish_point("only")

    outer = GraphBuilder(schema(), name="outer")
    outer.add_node("delegate", inner.compile())
    outer.set_entry_point("delegate")
    outer.set_finish_point("delegate")

    graph = outer.compile()
    assert graph.get_node("delegate").parent_schema is graph.schema
