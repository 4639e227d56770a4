"""
Checkpoint Store - Append-only, per-session checkpoint timelines.

A store persists every checkpoint of a session, in step order. Each append
is atomic: after a crash a reader sees either the new checkpoint complete or
not at all, so the latest checkpoint is always a consistent snapshot. Appends
never overwrite, so two stores sharing a backend cannot both claim a step.

Two backends:
- InMemoryCheckpointStore: serialized JSON in a dict (tests, short-lived apps)
- FileCheckpointStore: one JSON file per checkpoint under a base directory
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from threadgraph.errors import CheckpointConflictError
from threadgraph.schemas.checkpoint import Checkpoint, CheckpointSummary
from threadgraph.utils.io import exclusive_write, safe_path_component
from threadgraph.utils.locks import KeyedLock

logger = logging.getLogger(__name__)


class CheckpointStore(ABC):
    """Interface every checkpoint backend implements."""

    @abstractmethod
    async def append(self, checkpoint: Checkpoint) -> None:
        """
        Persist ``checkpoint`` as the newest entry of its session.

        Raises:
            CheckpointConflictError: step is not greater than the latest step
        """

    @abstractmethod
    async def latest(self, session_id: str) -> Checkpoint | None:
        """Most recent checkpoint of a session, or None if it has none."""

    @abstractmethod
    async def get(self, session_id: str, step: int) -> Checkpoint | None:
        """Checkpoint recorded at ``step``, or None."""

    @abstractmethod
    async def list_checkpoints(self, session_id: str) -> list[CheckpointSummary]:
        """Summaries of every checkpoint of a session, oldest first."""

    @abstractmethod
    async def history(self, session_id: str) -> list[Checkpoint]:
        """Every checkpoint of a session, oldest first."""

    @abstractmethod
    async def sessions(self) -> list[str]:
        """Ids of all sessions with at least one checkpoint."""


class InMemoryCheckpointStore(CheckpointStore):
    """
    Checkpoints kept as serialized JSON strings in a dict.

    Values go through the same serialization as the file store, so nothing a
    node holds on to can alias persisted state. Pass the same ``storage``
    dict to a new instance to simulate a process restart in tests.
    """

    def __init__(self, storage: dict[str, list[str]] | None = None):
        self._storage = storage if storage is not None else {}
        self._locks = KeyedLock()

    async def append(self, checkpoint: Checkpoint) -> None:
        async with self._locks.hold(checkpoint.session_id):
            timeline = self._storage.get(checkpoint.session_id, [])
            if timeline:
                latest_step = Checkpoint.model_validate_json(timeline[-1]).step
                if checkpoint.step <= latest_step:
                    raise CheckpointConflictError(
                        checkpoint.session_id, checkpoint.step, latest_step
                    )
            # Swap in a new list so concurrent readers never see a half-built one
            self._storage[checkpoint.session_id] = [*timeline, checkpoint.model_dump_json()]
        logger.debug(f"Stored checkpoint {checkpoint.checkpoint_id} in memory")

    async def latest(self, session_id: str) -> Checkpoint | None:
        timeline = self._storage.get(session_id)
        if not timeline:
            return None
        return Checkpoint.model_validate_json(timeline[-1])

    async def get(self, session_id: str, step: int) -> Checkpoint | None:
        for checkpoint in await self.history(session_id):
            if checkpoint.step == step:
                return checkpoint
        return None

    async def list_checkpoints(self, session_id: str) -> list[CheckpointSummary]:
        return [CheckpointSummary.from_checkpoint(cp) for cp in await self.history(session_id)]

    async def history(self, session_id: str) -> list[Checkpoint]:
        return [Checkpoint.model_validate_json(raw) for raw in self._storage.get(session_id, [])]

    async def sessions(self) -> list[str]:
        return sorted(sid for sid, timeline in self._storage.items() if timeline)


class FileCheckpointStore(CheckpointStore):
    """
    One JSON file per checkpoint, written atomically and never replaced.

    Directory structure:
        {base_path}/
            sessions/
                {session_id}/
                    checkpoints/
                        000000.json
                        000001.json

    The newest checkpoint is found from the file names alone, so there is no
    separate index that could disagree with the checkpoint files after a crash.
    """

    def __init__(self, base_path: Path | str):
        self.base_path = Path(base_path)
        self.sessions_dir = self.base_path / "sessions"
        self._locks = KeyedLock()

    def _checkpoints_dir(self, session_id: str) -> Path:
        return self.sessions_dir / safe_path_component(session_id) / "checkpoints"

    def _steps(self, session_id: str) -> list[int]:
        checkpoints_dir = self._checkpoints_dir(session_id)
        if not checkpoints_dir.exists():
            return []
        return sorted(int(p.stem) for p in checkpoints_dir.glob("*.json") if p.stem.isdigit())

    def _read(self, session_id: str, step: int) -> Checkpoint | None:
        path = self._checkpoints_dir(session_id) / f"{step:06d}.json"
        if not path.exists():
            return None
        return Checkpoint.model_validate_json(path.read_text(encoding="utf-8"))

    async def append(self, checkpoint: Checkpoint) -> None:
        def _write() -> None:
            steps = self._steps(checkpoint.session_id)
            if steps and checkpoint.step <= steps[-1]:
                raise CheckpointConflictError(checkpoint.session_id, checkpoint.step, steps[-1])
            path = self._checkpoints_dir(checkpoint.session_id) / f"{checkpoint.step:06d}.json"
            try:
                with exclusive_write(path) as f:
                    f.write(checkpoint.model_dump_json(indent=2))
            except FileExistsError as e:
                # Another store on the same directory claimed this step first
                latest_step = self._steps(checkpoint.session_id)[-1]
                raise CheckpointConflictError(
                    checkpoint.session_id, checkpoint.step, latest_step
                ) from e

        async with self._locks.hold(checkpoint.session_id):
            await asyncio.to_thread(_write)
        logger.debug(f"Saved checkpoint {checkpoint.checkpoint_id} for {checkpoint.session_id}")

    async def latest(self, session_id: str) -> Checkpoint | None:
        def _latest() -> Checkpoint | None:
            steps = self._steps(session_id)
            return self._read(session_id, steps[-1]) if steps else None

        return await asyncio.to_thread(_latest)

    async def get(self, session_id: str, step: int) -> Checkpoint | None:
        return await asyncio.to_thread(self._read, session_id, step)

    async def list_checkpoints(self, session_id: str) -> list[CheckpointSummary]:
        return [CheckpointSummary.from_checkpoint(cp) for cp in await self.history(session_id)]

    async def history(self, session_id: str) -> list[Checkpoint]:
        def _history() -> list[Checkpoint]:
            checkpoints = []
            for step in self._steps(session_id):
                checkpoint = self._read(session_id, step)
                if checkpoint is not None:
                    checkpoints.append(checkpoint)
            return checkpoints

        return await asyncio.to_thread(_history)

    async def sessions(self) -> list[str]:
        def _sessions() -> list[str]:
            if not self.sessions_dir.exists():
                return []
            return sorted(
                d.name
                for d in self.sessions_dir.iterdir()
                if d.is_dir() and any((d / "checkpoints").glob("*.json"))
            )

        return await asyncio.to_thread(_sessions)
