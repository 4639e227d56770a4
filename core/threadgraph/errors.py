"""Exception hierarchy for threadgraph.

Every error raised by the engine derives from ThreadGraphError so callers can
catch engine failures separately from failures raised inside node code (which
the executor always re-raises unchanged).
"""

from typing import Any


class ThreadGraphError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/display."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class GraphValidationError(ThreadGraphError):
    """Raised by GraphBuilder.compile() when the declaration is malformed.

    All problems found are collected in ``errors`` so a graph author can fix
    them in one pass.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            f"Invalid graph: {'; '.join(self.errors)}",
            details={"errors": self.errors},
        )


class UnknownRouteError(ThreadGraphError):
    """A routing function returned a label with no configured target."""

    def __init__(self, node_id: str, label: Any, known_labels: list[str]):
        self.node_id = node_id
        self.label = label
        self.known_labels = known_labels
        super().__init__(
            f"Router of node '{node_id}' returned unknown label {label!r}. "
            f"Known labels: {known_labels}",
            details={"node_id": node_id, "label": label, "known_labels": known_labels},
        )


class RecursionLimitError(ThreadGraphError):
    """The step budget ran out before reaching a terminal or a suspension."""

    def __init__(self, limit: int, session_id: str | None = None, node_id: str | None = None):
        self.limit = limit
        self.session_id = session_id
        self.node_id = node_id
        super().__init__(
            f"Recursion limit of {limit} steps reached without hitting a terminal node"
            + (f" (next node: '{node_id}')" if node_id else ""),
            details={"limit": limit, "session_id": session_id, "node_id": node_id},
        )


class UnknownSessionError(ThreadGraphError):
    """No checkpoint exists for the requested session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"No checkpoint found for session '{session_id}'",
            details={"session_id": session_id},
        )


class ResumeWithoutSuspensionError(ThreadGraphError):
    """resume() was called on a session that is not suspended."""

    def __init__(self, session_id: str, status: str):
        self.session_id = session_id
        self.status = status
        super().__init__(
            f"Session '{session_id}' is not suspended (status: {status}); nothing to resume",
            details={"session_id": session_id, "status": status},
        )


class CheckpointConflictError(ThreadGraphError):
    """An append would overwrite or precede an existing checkpoint."""

    def __init__(self, session_id: str, step: int, latest_step: int | None):
        self.session_id = session_id
        self.step = step
        self.latest_step = latest_step
        super().__init__(
            f"Checkpoint step {step} for session '{session_id}' does not follow "
            f"latest step {latest_step}",
            details={"session_id": session_id, "step": step, "latest_step": latest_step},
        )


class InvalidUpdateError(ThreadGraphError):
    """A node produced an update the state schema cannot apply."""
