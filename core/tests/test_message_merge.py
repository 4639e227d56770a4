"""Tests for identity-based message merging."""

import pytest

from threadgraph.errors import InvalidUpdateError
from threadgraph.graph.messages import (
    AIMessage,
    HumanMessage,
    RemoveMessage,
    ToolMessage,
    coerce_message,
    format_conversation,
    last_ai_message,
    merge_messages,
)


def test_merge_with_revision_replaces_in_place():
    left = [HumanMessage(id="1", content="a")]
    right = [HumanMessage(id="1", content="b"), HumanMessage(id="2", content="c")]

    merged = merge_messages(left, right)

    assert [(m.id, m.content) for m in merged] == [("1", "b"), ("2", "c")]


def test_merge_without_ids_assigns_unique_ids_and_appends():
    left = [HumanMessage(content="l1"), HumanMessage(content="l2")]
    right = [AIMessage(content="r1"), AIMessage(content="r2")]

    merged = merge_messages(left, right)

    assert [m.content for m in merged] == ["l1", "l2", "r1", "r2"]
    ids = [m.id for m in merged]
    assert all(ids)
    assert len(set(ids)) == 4


def test_revision_keeps_position():
    left = [
        HumanMessage(id="1", content="a"),
        AIMessage(id="2", content="b"),
        HumanMessage(id="3", content="c"),
    ]
    merged = merge_messages(left, [AIMessage(id="2", content="B")])
    assert [m.content for m in merged] == ["a", "B", "c"]


def test_replaying_the_same_batch_converges():
    left = [HumanMessage(id="1", content="a"), AIMessage(id="2", content="b")]
    right = [AIMessage(id="2", content="B"), HumanMessage(id="3", content="c")]

    once = merge_messages(left, right)
    twice = merge_messages(once, right)

    assert twice == once
    assert [(m.id, m.content) for m in twice] == [("1", "a"), ("2", "B"), ("3", "c")]


def test_repeated_id_within_one_batch_keeps_last_revision():
    left = [HumanMessage(id="1", content="a")]
    right = [
        AIMessage(id="2", content="partial"),
        HumanMessage(id="1", content="A"),
        AIMessage(id="2", content="final"),
    ]

    merged = merge_messages(left, right)

    assert [(m.id, m.content) for m in merged] == [("1", "A"), ("2", "final")]


def test_inputs_are_not_mutated():
    left = [HumanMessage(id="1", content="a")]
    right = [HumanMessage(id="1", content="b")]
    merge_messages(left, right)
    assert left[0].content == "a"
    assert len(left) == 1


def test_single_message_and_string_are_accepted():
    merged = merge_messages([], "hello")
    assert len(merged) == 1
    assert isinstance(merged[0], HumanMessage)

    merged = merge_messages(merged, AIMessage(content="hi"))
    assert [m.role for m in merged] == ["human", "ai"]


def test_remove_message_deletes_by_id():
    left = [HumanMessage(id="1", content="a"), AIMessage(id="2", content="b")]
    merged = merge_messages(left, [RemoveMessage(id="1")])
    assert [m.id for m in merged] == ["2"]


def test_remove_unknown_id_raises():
    with pytest.raises(InvalidUpdateError):
        merge_messages([HumanMessage(id="1", content="a")], [RemoveMessage(id="nope")])


def test_coerce_role_aliases():
    assert isinstance(coerce_message({"role": "user", "content": "x"}), HumanMessage)
    assert isinstance(coerce_message(("assistant", "y")), AIMessage)
    with pytest.raises(InvalidUpdateError):
        coerce_message({"role": "narrator", "content": "z"})


def test_tool_message_error_prefix_for_llm():
    message = ToolMessage(content="boom", tool_call_id="c1", is_error=True)
    assert message.to_llm_dict() == {"role": "tool", "tool_call_id": "c1", "content": "ERROR: boom"}


def test_last_ai_message_and_transcript():
    messages = [HumanMessage(content="hi"), AIMessage(content="hello"), HumanMessage(content="?")]
    assert last_ai_message(messages).content == "hello"
    assert last_ai_message(messages[:1]) is None
    assert format_conversation(messages) == "Human: hi\nAI: hello\nHuman: ?"
