"""
Checkpoint Schema - Execution state snapshots for resumability.

A checkpoint is written at the end of every completed step (and when a
session suspends or receives input). Checkpoints are immutable and ordered by
``step`` within a session; the store only ever appends.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


class SessionStatus(StrEnum):
    """Lifecycle state of a session as of a checkpoint."""

    RUNNING = "running"  # Steps remain; next_node is a real node
    SUSPENDED = "suspended"  # Waiting on resume(); pending_interrupt is set
    TERMINATED = "terminated"  # next_node is the END marker


class PendingInterrupt(BaseModel):
    """Suspension request raised by a node and awaiting a resume value."""

    reason: str
    payload: Any = None
    node_id: str | None = None

    model_config = {"frozen": True}


CheckpointSource = Literal["input", "loop", "interrupt"]


class Checkpoint(BaseModel):
    """
    Single checkpoint in a session timeline.

    ``values`` holds the JSON-safe dump of every channel (see
    StateSchema.dump); ``next_node`` is where execution continues, or END.
    """

    # Identity
    checkpoint_id: str  # Format: cp_{source}_{step:06d}
    session_id: str
    step: int
    source: CheckpointSource

    # Timestamps
    created_at: str  # ISO 8601 format

    # Execution state
    completed_node: str | None = None  # Node whose step produced this snapshot
    next_node: str
    status: SessionStatus

    # State snapshot
    values: dict[str, Any] = Field(default_factory=dict)
    pending_interrupt: PendingInterrupt | None = None

    model_config = {"frozen": True}

    @classmethod
    def create(
        cls,
        session_id: str,
        step: int,
        source: CheckpointSource,
        values: dict[str, Any],
        next_node: str,
        status: SessionStatus,
        completed_node: str | None = None,
        pending_interrupt: PendingInterrupt | None = None,
    ) -> "Checkpoint":
        """Create a new checkpoint with generated ID and timestamp."""
        return cls(
            checkpoint_id=f"cp_{source}_{step:06d}",
            session_id=session_id,
            step=step,
            source=source,
            created_at=datetime.now(UTC).isoformat(),
            completed_node=completed_node,
            next_node=next_node,
            status=status,
            values=values,
            pending_interrupt=pending_interrupt,
        )


class CheckpointSummary(BaseModel):
    """Lightweight checkpoint metadata for listings."""

    checkpoint_id: str
    step: int
    source: CheckpointSource
    created_at: str
    completed_node: str | None = None
    next_node: str
    status: SessionStatus

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> "CheckpointSummary":
        """Create summary from full checkpoint."""
        return cls(
            checkpoint_id=checkpoint.checkpoint_id,
            step=checkpoint.step,
            source=checkpoint.source,
            created_at=checkpoint.created_at,
            completed_node=checkpoint.completed_node,
            next_node=checkpoint.next_node,
            status=checkpoint.status,
        )
