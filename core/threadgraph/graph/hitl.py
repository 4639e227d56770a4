"""
Human-In-The-Loop suspension protocol.

A node suspends by calling ``ctx.interrupt(reason, payload)``. On the first
pass the call raises NodeInterrupt, which the executor turns into a
checkpoint with a pending interrupt and an InterruptDescriptor for the caller.
When the caller resumes the session, the same node is re-executed from its
beginning and the same ``interrupt`` call returns the resume value instead.

Work a node does before calling ``interrupt`` runs again on every resume, so
the call belongs at the very start of the node (or after idempotent work).
"""

from dataclasses import dataclass
from typing import Any

from threadgraph.schemas.checkpoint import PendingInterrupt

_MISSING = object()


class NodeInterrupt(Exception):
    """Raised inside a node to request suspension."""

    def __init__(self, interrupt: PendingInterrupt):
        super().__init__(interrupt.reason)
        self.interrupt = interrupt


class ResumeSlot:
    """Holds the resume value for the first ``interrupt`` call of a resumed node."""

    def __init__(self, value: Any = _MISSING):
        self._value = value

    @property
    def available(self) -> bool:
        return self._value is not _MISSING

    def take(self) -> Any:
        value, self._value = self._value, _MISSING
        return value

    def clear(self) -> None:
        self._value = _MISSING


@dataclass(frozen=True)
class InterruptDescriptor:
    """Returned to the caller when a session suspends."""

    session_id: str
    node_id: str
    reason: str
    payload: Any = None

    @classmethod
    def from_pending(cls, session_id: str, pending: PendingInterrupt) -> "InterruptDescriptor":
        return cls(
            session_id=session_id,
            node_id=pending.node_id or "",
            reason=pending.reason,
            payload=pending.payload,
        )


def format_for_display(descriptor: InterruptDescriptor) -> str:
    """Format a suspension for user-facing display."""
    parts = [f"Waiting on input ({descriptor.reason})"]
    if isinstance(descriptor.payload, str):
        parts.append(descriptor.payload)
    elif isinstance(descriptor.payload, dict):
        for key, value in descriptor.payload.items():
            parts.append(f"  • {key}: {value}")
    elif descriptor.payload is not None:
        parts.append(str(descriptor.payload))
    return "\n".join(parts)
