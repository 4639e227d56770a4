"""
Graph Executor - Runs compiled graphs as durable, resumable sessions.

The executor is responsible for:
1. Turning caller input into state via the schema's reducers
2. Driving the step loop from the right node with a fresh step budget
3. Writing a checkpoint after every completed step
4. Parking a session when a node suspends, and resuming it later
5. Serializing invocations of the same session

Each session's timeline lives in the CheckpointStore, so a new executor (or
a new process) pointed at the same store picks up where the last one left off.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from threadgraph.config import get_recursion_limit
from threadgraph.errors import (
    InvalidUpdateError,
    ResumeWithoutSuspensionError,
    UnknownSessionError,
)
from threadgraph.graph.builder import CompiledGraph
from threadgraph.graph.edge import END
from threadgraph.graph.hitl import InterruptDescriptor, NodeInterrupt, ResumeSlot
from threadgraph.graph.scheduler import run_steps
from threadgraph.observability import (
    get_trace_context,
    restore_trace_context,
    set_trace_context,
)
from threadgraph.schemas.checkpoint import (
    Checkpoint,
    CheckpointSource,
    PendingInterrupt,
    SessionStatus,
)
from threadgraph.storage.checkpoint_store import CheckpointStore, InMemoryCheckpointStore
from threadgraph.utils.locks import KeyedLock


@dataclass(frozen=True)
class FinalState:
    """Returned when a session reaches END."""

    session_id: str
    values: dict[str, Any]
    steps: int  # Steps completed by this invocation


@dataclass(frozen=True)
class StepEvent:
    """Progress event emitted by ``astream`` after every completed step."""

    session_id: str
    node: str
    step: int
    update: Mapping[str, Any] | None


@dataclass(frozen=True)
class StateSnapshot:
    """Read-only view of a session as of one checkpoint."""

    session_id: str
    values: dict[str, Any]
    next_node: str
    status: SessionStatus
    step: int
    pending_interrupt: InterruptDescriptor | None
    created_at: str
    checkpoint_id: str


ExecutionResult = FinalState | InterruptDescriptor


def generate_session_id() -> str:
    """Session ID in format: session_YYYYMMDD_HHMMSS_{uuid}."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"session_{timestamp}_{uuid.uuid4().hex[:8]}"


class GraphExecutor:
    """
    Executes a CompiledGraph over checkpointed sessions.

    Usage:
        executor = GraphExecutor(graph, checkpoint_store=FileCheckpointStore(path))
        result = await executor.invoke({"messages": ["hi"]})
        if isinstance(result, InterruptDescriptor):
            result = await executor.resume(result.session_id, "my id is 7")
    """

    def __init__(
        self,
        graph: CompiledGraph,
        checkpoint_store: CheckpointStore | None = None,
        recursion_limit: int | None = None,
    ):
        self.graph = graph
        self.checkpoint_store = checkpoint_store or InMemoryCheckpointStore()
        self.recursion_limit = (
            recursion_limit if recursion_limit is not None else get_recursion_limit()
        )
        if self.recursion_limit < 1:
            raise ValueError(f"recursion_limit must be >= 1, got {self.recursion_limit}")
        self._session_locks = KeyedLock()
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def invoke(
        self,
        input: Any = None,
        session_id: str | None = None,
        *,
        recursion_limit: int | None = None,
    ) -> ExecutionResult:
        """
        Run a session until it terminates or suspends.

        Args:
            input: Channel updates (mapping) or a user utterance (str), merged
                through the reducers. None continues an existing session from
                its latest checkpoint.
            session_id: Existing session to continue; a new id is generated
                when omitted.
            recursion_limit: Step budget for this call only.

        Returns:
            FinalState on END, InterruptDescriptor on suspension.

        Raises:
            RecursionLimitError: budget exhausted; the last checkpoint stays valid
            UnknownRouteError: a router returned an unmapped label
            Exception: anything a node raised, unchanged
        """
        return await _last_result(self.astream(input, session_id, recursion_limit=recursion_limit))

    async def resume(
        self,
        session_id: str,
        resume_value: Any = None,
        *,
        recursion_limit: int | None = None,
    ) -> ExecutionResult:
        """
        Re-run the suspended node with ``resume_value`` and continue the loop.

        The suspended node executes again from its beginning; its
        ``ctx.interrupt`` call returns ``resume_value`` this time.

        Raises:
            UnknownSessionError: no checkpoint exists for ``session_id``
            ResumeWithoutSuspensionError: the session is not suspended
        """
        return await _last_result(
            self.astream_resume(session_id, resume_value, recursion_limit=recursion_limit)
        )

    async def astream(
        self,
        input: Any = None,
        session_id: str | None = None,
        *,
        recursion_limit: int | None = None,
    ) -> AsyncIterator[StepEvent | FinalState | InterruptDescriptor]:
        """Like ``invoke`` but yields a StepEvent per step before the result."""
        session_id = session_id or generate_session_id()
        previous_context = get_trace_context()
        set_trace_context(session_id=session_id, graph_id=self.graph.name)
        try:
            async with self._session_locks.hold(session_id):
                async for event in self._stream_input(session_id, input, recursion_limit):
                    yield event
        finally:
            restore_trace_context(previous_context)

    async def astream_resume(
        self,
        session_id: str,
        resume_value: Any = None,
        *,
        recursion_limit: int | None = None,
    ) -> AsyncIterator[StepEvent | FinalState | InterruptDescriptor]:
        """Like ``resume`` but yields a StepEvent per step before the result."""
        previous_context = get_trace_context()
        set_trace_context(session_id=session_id, graph_id=self.graph.name)
        try:
            async with self._session_locks.hold(session_id):
                latest = await self.checkpoint_store.latest(session_id)
                if latest is None:
                    raise UnknownSessionError(session_id)
                if latest.pending_interrupt is None:
                    raise ResumeWithoutSuspensionError(session_id, latest.status)

                self.logger.info(
                    f"🔄 Resuming session at '{latest.next_node}'",
                    extra={"event": "resume", "node_id": latest.next_node},
                )
                async for event in self._run(
                    session_id,
                    self.graph.schema.load(latest.values),
                    latest.next_node,
                    first_step=latest.step + 1,
                    recursion_limit=recursion_limit,
                    resume=ResumeSlot(resume_value),
                ):
                    yield event
        finally:
            restore_trace_context(previous_context)

    async def get_state(self, session_id: str) -> StateSnapshot:
        """
        Latest snapshot of a session.

        Raises:
            UnknownSessionError: no checkpoint exists for ``session_id``
        """
        latest = await self.checkpoint_store.latest(session_id)
        if latest is None:
            raise UnknownSessionError(session_id)
        return self._snapshot(latest)

    async def get_state_history(self, session_id: str) -> list[StateSnapshot]:
        """Every snapshot of a session, oldest first."""
        history = await self.checkpoint_store.history(session_id)
        if not history:
            raise UnknownSessionError(session_id)
        return [self._snapshot(cp) for cp in history]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _stream_input(
        self, session_id: str, input: Any, recursion_limit: int | None
    ) -> AsyncIterator[StepEvent | FinalState | InterruptDescriptor]:
        schema = self.graph.schema
        latest = await self.checkpoint_store.latest(session_id)

        if latest is not None and input is None:
            if latest.status == SessionStatus.TERMINATED:
                self.logger.info("Session already terminated; returning final state")
                yield FinalState(session_id, schema.load(latest.values), steps=0)
                return
            if latest.pending_interrupt is not None:
                self.logger.info("Session is suspended; resume() it to continue")
                yield InterruptDescriptor.from_pending(session_id, latest.pending_interrupt)
                return
            self.logger.info(
                f"🔄 Continuing session from '{latest.next_node}'",
                extra={"event": "continue", "node_id": latest.next_node},
            )
            async for event in self._run(
                session_id,
                schema.load(latest.values),
                latest.next_node,
                first_step=latest.step + 1,
                recursion_limit=recursion_limit,
            ):
                yield event
            return

        if latest is None:
            values = schema.initial()
            step = 0
            self.logger.info(
                f"🚀 Starting session on graph '{self.graph.name}'",
                extra={"event": "session_started"},
            )
        else:
            values = schema.load(latest.values)
            step = latest.step + 1
            if latest.pending_interrupt is not None:
                self.logger.warning(
                    f"New input supersedes pending interrupt "
                    f"'{latest.pending_interrupt.reason}' at '{latest.next_node}'",
                    extra={"event": "interrupt_superseded"},
                )

        values = schema.apply(values, self._coerce_input(input))
        await self._checkpoint(
            session_id,
            step,
            "input",
            values,
            next_node=self.graph.entry_node,
            status=SessionStatus.RUNNING,
        )
        async for event in self._run(
            session_id,
            values,
            self.graph.entry_node,
            first_step=step + 1,
            recursion_limit=recursion_limit,
        ):
            yield event

    async def _run(
        self,
        session_id: str,
        values: dict[str, Any],
        start_node: str,
        *,
        first_step: int,
        recursion_limit: int | None,
        resume: ResumeSlot | None = None,
    ) -> AsyncIterator[StepEvent | FinalState | InterruptDescriptor]:
        budget = recursion_limit if recursion_limit is not None else self.recursion_limit
        current = start_node
        step = first_step
        completed = 0

        try:
            async for outcome in run_steps(
                self.graph,
                values,
                start_node,
                budget=budget,
                session_id=session_id,
                resume=resume,
                first_step=first_step,
            ):
                values = outcome.values
                status = (
                    SessionStatus.TERMINATED if outcome.next_node == END else SessionStatus.RUNNING
                )
                await self._checkpoint(
                    session_id,
                    outcome.step,
                    "loop",
                    values,
                    next_node=outcome.next_node,
                    status=status,
                    completed_node=outcome.node_id,
                )
                completed += 1
                current = outcome.next_node
                step = outcome.step + 1
                yield StepEvent(session_id, outcome.node_id, outcome.step, outcome.update)
        except NodeInterrupt as e:
            # A subgraph reports its own inner node; the session parks on the
            # top-level node so resume re-enters through the subgraph.
            pending = PendingInterrupt(
                reason=e.interrupt.reason,
                payload=e.interrupt.payload,
                node_id=current,
            )
            await self._checkpoint(
                session_id,
                step,
                "interrupt",
                values,
                next_node=current,
                status=SessionStatus.SUSPENDED,
                pending_interrupt=pending,
            )
            self.logger.info(
                f"⏸ Session suspended at '{current}': {pending.reason}",
                extra={"event": "session_suspended", "node_id": current},
            )
            yield InterruptDescriptor.from_pending(session_id, pending)
            return

        self.logger.info(
            f"✓ Session reached END after {completed} steps",
            extra={"event": "session_terminated"},
        )
        yield FinalState(session_id, values, steps=completed)

    async def _checkpoint(
        self,
        session_id: str,
        step: int,
        source: CheckpointSource,
        values: Mapping[str, Any],
        *,
        next_node: str,
        status: SessionStatus,
        completed_node: str | None = None,
        pending_interrupt: PendingInterrupt | None = None,
    ) -> None:
        checkpoint = Checkpoint.create(
            session_id=session_id,
            step=step,
            source=source,
            values=self.graph.schema.dump(values),
            next_node=next_node,
            status=status,
            completed_node=completed_node,
            pending_interrupt=pending_interrupt,
        )
        await self.checkpoint_store.append(checkpoint)

    def _coerce_input(self, input: Any) -> Mapping[str, Any] | None:
        if input is None or isinstance(input, Mapping):
            return input
        if isinstance(input, str) and "messages" in self.graph.schema:
            return {"messages": [input]}
        raise InvalidUpdateError(
            f"Input must be a mapping of channel updates, got {type(input).__name__}"
        )

    def _snapshot(self, checkpoint: Checkpoint) -> StateSnapshot:
        pending = None
        if checkpoint.pending_interrupt is not None:
            pending = InterruptDescriptor.from_pending(
                checkpoint.session_id, checkpoint.pending_interrupt
            )
        return StateSnapshot(
            session_id=checkpoint.session_id,
            values=self.graph.schema.load(checkpoint.values),
            next_node=checkpoint.next_node,
            status=checkpoint.status,
            step=checkpoint.step,
            pending_interrupt=pending,
            created_at=checkpoint.created_at,
            checkpoint_id=checkpoint.checkpoint_id,
        )


async def _last_result(
    events: AsyncIterator[StepEvent | FinalState | InterruptDescriptor],
) -> ExecutionResult:
    result: ExecutionResult | None = None
    async for event in events:
        if not isinstance(event, StepEvent):
            result = event
    assert result is not None
    return result
