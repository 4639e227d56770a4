"""
Tests for GraphExecutor: the step loop, checkpoints and the step budget.
"""

import asyncio
from typing import Literal

import pytest

from threadgraph.errors import InvalidUpdateError, RecursionLimitError, UnknownRouteError
from threadgraph.graph.builder import GraphBuilder
from threadgraph.graph.edge import END
from threadgraph.graph.executor import FinalState, GraphExecutor, StepEvent
from threadgraph.graph.messages import AIMessage
from threadgraph.graph.state import Channel, StateSchema, append, messages_schema
from threadgraph.observability import clear_trace_context, get_trace_context, set_trace_context
from threadgraph.schemas.checkpoint import SessionStatus
from threadgraph.storage.checkpoint_store import InMemoryCheckpointStore
from threadgraph.utils.locks import KeyedLock


# ---- Helpers ----
def counter_schema() -> StateSchema:
    return StateSchema([Channel("ticks", append, list, list[int])])


def build_self_loop(calls: list[int]):
    """A node that routes back to itself forever."""

    def tick(state):
        calls.append(len(state["ticks"]))
        return {"ticks": [len(state["ticks"])]}

    builder = GraphBuilder(counter_schema(), name="self_loop")
    builder.add_node("tick", tick)
    builder.set_entry_point("tick")
    builder.add_edge("tick", "tick")
    return builder.compile()


def build_counter(limit: int):
    """Ticks until ``limit`` ticks are recorded, then ends."""

    def tick(state):
        return {"ticks": [len(state["ticks"])]}

    def route(state) -> Literal["again", "stop"]:
        return "stop" if len(state["ticks"]) >= limit else "again"

    builder = GraphBuilder(counter_schema(), name="counter")
    builder.add_node("tick", tick)
    builder.set_entry_point("tick")
    builder.add_conditional_edges("tick", route, {"again": "tick", "stop": END})
    return builder.compile()


def build_chat():
    def greet(state):
        return {"messages": [AIMessage(content=f"You said: {state['messages'][-1].content}")]}

    builder = GraphBuilder(messages_schema(), name="chat")
    builder.add_node("greet", greet)
    builder.set_entry_point("greet")
    builder.set_finish_point("greet")
    return builder.compile()


# ---- Termination ----
@pytest.mark.asyncio
async def test_invoke_reaches_end():
    executor = GraphExecutor(build_counter(3), recursion_limit=10)

    result = await executor.invoke({"ticks": []}, session_id="s1")

    assert isinstance(result, FinalState)
    assert result.session_id == "s1"
    assert result.values["ticks"] == [0, 1, 2]
    assert result.steps == 3


@pytest.mark.asyncio
async def test_checkpoint_written_per_step():
    store = InMemoryCheckpointStore()
    executor = GraphExecutor(build_counter(2), checkpoint_store=store, recursion_limit=10)

    await executor.invoke({}, session_id="s1")

    history = await store.history("s1")
    assert [cp.step for cp in history] == [0, 1, 2]
    assert [cp.source for cp in history] == ["input", "loop", "loop"]
    assert history[0].next_node == "tick"
    assert history[-1].next_node == END
    assert history[-1].status == SessionStatus.TERMINATED
    assert history[1].completed_node == "tick"


@pytest.mark.asyncio
async def test_generated_session_id_format():
    executor = GraphExecutor(build_counter(1), recursion_limit=5)
    result = await executor.invoke({})
    assert result.session_id.startswith("session_")
    assert len(result.session_id.split("_")) == 4


@pytest.mark.asyncio
async def test_string_input_becomes_human_message():
    executor = GraphExecutor(build_chat(), recursion_limit=5)

    result = await executor.invoke("hello")

    messages = result.values["messages"]
    assert [m.role for m in messages] == ["human", "ai"]
    assert messages[-1].content == "You said: hello"


@pytest.mark.asyncio
async def test_string_input_without_messages_channel_rejected():
    executor = GraphExecutor(build_counter(1), recursion_limit=5)
    with pytest.raises(InvalidUpdateError):
        await executor.invoke("hello")


@pytest.mark.asyncio
async def test_astream_yields_steps_then_result():
    executor = GraphExecutor(build_counter(2), recursion_limit=10)

    events = [event async for event in executor.astream({}, session_id="s1")]

    assert [type(e) for e in events] == [StepEvent, StepEvent, FinalState]
    assert [(e.node, e.step) for e in events[:2]] == [("tick", 1), ("tick", 2)]
    assert events[0].update == {"ticks": [0]}


# ---- Step budget ----
@pytest.mark.asyncio
async def test_self_loop_stops_at_exact_budget():
    calls: list[int] = []
    store = InMemoryCheckpointStore()
    executor = GraphExecutor(build_self_loop(calls), checkpoint_store=store, recursion_limit=3)

    with pytest.raises(RecursionLimitError) as exc:
        await executor.invoke({}, session_id="loop")

    assert len(calls) == 3
    assert exc.value.limit == 3
    assert exc.value.node_id == "tick"

    latest = await store.latest("loop")
    assert latest.step == 3
    assert latest.status == SessionStatus.RUNNING
    assert latest.next_node == "tick"
    assert latest.values["ticks"] == [0, 1, 2]


@pytest.mark.asyncio
async def test_per_call_budget_overrides_default():
    calls: list[int] = []
    executor = GraphExecutor(build_self_loop(calls), recursion_limit=50)

    with pytest.raises(RecursionLimitError):
        await executor.invoke({}, recursion_limit=2)

    assert len(calls) == 2


def test_budget_must_be_positive():
    with pytest.raises(ValueError):
        GraphExecutor(build_counter(1), recursion_limit=0)


@pytest.mark.asyncio
async def test_continue_after_budget_with_none_input():
    executor = GraphExecutor(build_counter(5), recursion_limit=3)

    with pytest.raises(RecursionLimitError):
        await executor.invoke({}, session_id="s1")

    result = await executor.invoke(None, session_id="s1")

    assert isinstance(result, FinalState)
    assert result.steps == 2
    assert result.values["ticks"] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_none_input_on_terminated_session_returns_final_state():
    executor = GraphExecutor(build_counter(1), recursion_limit=5)
    first = await executor.invoke({}, session_id="s1")

    again = await executor.invoke(None, session_id="s1")

    assert isinstance(again, FinalState)
    assert again.steps == 0
    assert again.values == first.values


@pytest.mark.asyncio
async def test_new_input_restarts_from_entry():
    executor = GraphExecutor(build_chat(), recursion_limit=5)
    await executor.invoke("one", session_id="chat")

    result = await executor.invoke("two", session_id="chat")

    assert [m.content for m in result.values["messages"]] == [
        "one",
        "You said: one",
        "two",
        "You said: two",
    ]
    snapshot = await executor.get_state("chat")
    assert snapshot.step == 3


# ---- Routing ----
@pytest.mark.asyncio
async def test_router_called_once_per_step():
    seen: list[int] = []

    def tick(state):
        return {"ticks": [len(state["ticks"])]}

    def route(state) -> Literal["again", "stop"]:
        seen.append(len(state["ticks"]))
        return "stop" if len(state["ticks"]) >= 3 else "again"

    builder = GraphBuilder(counter_schema())
    builder.add_node("tick", tick)
    builder.set_entry_point("tick")
    builder.add_conditional_edges("tick", route, {"again": "tick", "stop": END})
    executor = GraphExecutor(builder.compile(), recursion_limit=10)

    await executor.invoke({})

    # Router sees the state after the step's update was merged
    assert seen == [1, 2, 3]


@pytest.mark.asyncio
async def test_unknown_route_fails_without_checkpoint():
    def tick(state):
        return {"ticks": [1]}

    builder = GraphBuilder(counter_schema())
    builder.add_node("tick", tick)
    builder.set_entry_point("tick")
    builder.add_conditional_edges("tick", lambda state: "bogus", {"stop": END})
    store = InMemoryCheckpointStore()
    executor = GraphExecutor(builder.compile(), checkpoint_store=store, recursion_limit=5)

    with pytest.raises(UnknownRouteError) as exc:
        await executor.invoke({}, session_id="s1")

    assert exc.value.label == "bogus"
    assert exc.value.node_id == "tick"
    latest = await store.latest("s1")
    assert latest.step == 0
    assert latest.source == "input"


@pytest.mark.asyncio
async def test_node_exception_propagates_unchanged():
    def broken(state):
        raise KeyError("missing")

    builder = GraphBuilder(counter_schema())
    builder.add_node("broken", broken)
    builder.set_entry_point("broken")
    builder.set_finish_point("broken")
    executor = GraphExecutor(builder.compile(), recursion_limit=5)

    with pytest.raises(KeyError):
        await executor.invoke({})


@pytest.mark.asyncio
async def test_node_writing_undeclared_channel_fails():
    def sneaky(state):
        return {"secret": 1}

    builder = GraphBuilder(counter_schema())
    builder.add_node("sneaky", sneaky)
    builder.set_entry_point("sneaky")
    builder.set_finish_point("sneaky")
    executor = GraphExecutor(builder.compile(), recursion_limit=5)

    with pytest.raises(InvalidUpdateError):
        await executor.invoke({})


@pytest.mark.asyncio
async def test_async_node_with_context():
    seen = {}

    async def inspect_ctx(state, ctx):
        seen["session_id"] = ctx.session_id
        seen["remaining"] = ctx.remaining_steps
        seen["step"] = ctx.step
        return None

    builder = GraphBuilder(counter_schema())
    builder.add_node("inspect", inspect_ctx)
    builder.set_entry_point("inspect")
    builder.set_finish_point("inspect")
    executor = GraphExecutor(builder.compile(), recursion_limit=4)

    await executor.invoke({}, session_id="ctx")

    assert seen == {"session_id": "ctx", "remaining": 4, "step": 1}


# ---- Observability ----
@pytest.mark.asyncio
async def test_trace_context_restored_after_invoke():
    set_trace_context(request_id="r1")
    try:
        executor = GraphExecutor(build_counter(2), recursion_limit=5)
        await executor.invoke({})
        assert get_trace_context() == {"request_id": "r1"}
    finally:
        clear_trace_context()


@pytest.mark.asyncio
async def test_trace_context_visible_inside_nodes():
    seen = {}

    def capture(state):
        seen.update(get_trace_context())
        return None

    builder = GraphBuilder(counter_schema(), name="traced")
    builder.add_node("capture", capture)
    builder.set_entry_point("capture")
    builder.set_finish_point("capture")
    executor = GraphExecutor(builder.compile(), recursion_limit=5)

    await executor.invoke({}, session_id="s-trace")

    assert seen["session_id"] == "s-trace"
    assert seen["graph_id"] == "traced"
    assert seen["node_id"] == "capture"


# ---- Session locks ----
@pytest.mark.asyncio
async def test_session_locks_released_after_each_call():
    store = InMemoryCheckpointStore()
    executor = GraphExecutor(build_counter(2), checkpoint_store=store, recursion_limit=5)

    for _ in range(3):
        await executor.invoke({})

    assert len(executor._session_locks) == 0
    assert len(store._locks) == 0
    assert len(await store.sessions()) == 3


@pytest.mark.asyncio
async def test_keyed_lock_serializes_then_forgets_key():
    lock = KeyedLock()
    order: list[str] = []

    async def hold(name: str):
        async with lock.hold("s1"):
            order.append(f"{name} in")
            await asyncio.sleep(0)
            order.append(f"{name} out")

    await asyncio.gather(hold("a"), hold("b"))

    assert order == ["a in", "a out", "b in", "b out"]
    assert "s1" not in lock
