"""Tests for state channels, reducers and checkpoint (de)serialization."""

import pytest

from threadgraph.errors import InvalidUpdateError
from threadgraph.graph.messages import AIMessage, HumanMessage, ToolCall, ToolMessage
from threadgraph.graph.state import (
    Channel,
    StateSchema,
    append,
    messages_schema,
    overwrite,
)


def make_schema() -> StateSchema:
    return messages_schema(
        Channel("customer_id", overwrite, type_=str | None),
        Channel("visited", append, list, list[str]),
    )


class TestReducers:
    def test_overwrite_takes_incoming(self):
        assert overwrite("old", "new") == "new"
        assert overwrite("old", None) is None

    def test_append_preserves_order(self):
        assert append(["a"], ["b", "c"]) == ["a", "b", "c"]

    def test_append_scalar_is_one_item(self):
        assert append(["a"], "b") == ["a", "b"]

    def test_append_does_not_mutate_current(self):
        current = ["a"]
        append(current, ["b"])
        assert current == ["a"]


class TestStateSchema:
    def test_initial_values(self):
        schema = make_schema()
        assert schema.initial() == {"messages": [], "customer_id": None, "visited": []}

    def test_duplicate_channel_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            StateSchema([Channel("a"), Channel("a")])

    def test_apply_runs_each_reducer(self):
        schema = make_schema()
        values = schema.apply(schema.initial(), {"customer_id": "7", "visited": ["verify"]})
        values = schema.apply(values, {"visited": ["supervisor"]})

        assert values["customer_id"] == "7"
        assert values["visited"] == ["verify", "supervisor"]

    def test_apply_leaves_untouched_channels(self):
        schema = make_schema()
        start = schema.apply(schema.initial(), {"customer_id": "7"})
        after = schema.apply(start, {"visited": "x"})
        assert after["customer_id"] == "7"

    def test_apply_returns_new_mapping(self):
        schema = make_schema()
        start = schema.initial()
        schema.apply(start, {"customer_id": "7"})
        assert start["customer_id"] is None

    def test_apply_none_update_is_noop(self):
        schema = make_schema()
        start = schema.apply(schema.initial(), {"customer_id": "7"})
        assert schema.apply(start, None) == start

    def test_unknown_channel_rejected(self):
        schema = make_schema()
        with pytest.raises(InvalidUpdateError, match="undeclared"):
            schema.apply(schema.initial(), {"nope": 1})

    def test_non_mapping_update_rejected(self):
        schema = make_schema()
        with pytest.raises(InvalidUpdateError):
            schema.apply(schema.initial(), ["not", "a", "mapping"])

    def test_messages_channel_coerces_strings(self):
        schema = make_schema()
        values = schema.apply(schema.initial(), {"messages": ["hello"]})
        [message] = values["messages"]
        assert isinstance(message, HumanMessage)
        assert message.content == "hello"
        assert message.id

    def test_project_keeps_declared_channels(self):
        schema = messages_schema()
        assert schema.project({"messages": [], "customer_id": "7"}) == {"messages": []}


class TestCheckpointSerialization:
    def test_dump_then_load_restores_message_types(self):
        schema = make_schema()
        values = schema.apply(
            schema.initial(),
            {
                "messages": [
                    HumanMessage(content="albums by AC/DC?"),
                    AIMessage(
                        content="",
                        tool_calls=[
                            ToolCall(id="c1", name="get_albums_by_artist", args={"artist": "AC/DC"})
                        ],
                    ),
                    ToolMessage(content="[]", tool_call_id="c1"),
                ],
                "customer_id": "1",
            },
        )

        raw = schema.dump(values)
        restored = schema.load(raw)

        assert restored == values
        assert [type(m) for m in restored["messages"]] == [HumanMessage, AIMessage, ToolMessage]
        assert restored["messages"][1].tool_calls[0].args == {"artist": "AC/DC"}

    def test_load_fills_missing_channels_with_defaults(self):
        schema = make_schema()
        restored = schema.load({"customer_id": "3"})
        assert restored == {"messages": [], "customer_id": "3", "visited": []}
