"""Tests for the in-memory and file checkpoint stores."""

import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from threadgraph.errors import CheckpointConflictError
from threadgraph.graph.edge import END
from threadgraph.schemas.checkpoint import Checkpoint, PendingInterrupt, SessionStatus
from threadgraph.storage.checkpoint_store import FileCheckpointStore, InMemoryCheckpointStore


def make_checkpoint(session_id: str, step: int, **overrides) -> Checkpoint:
    fields = {
        "session_id": session_id,
        "step": step,
        "source": "loop" if step else "input",
        "values": {"messages": [], "customer_id": str(step)},
        "next_node": "supervisor",
        "status": SessionStatus.RUNNING,
    }
    fields.update(overrides)
    return Checkpoint.create(**fields)


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryCheckpointStore()
    return FileCheckpointStore(tmp_path)


class TestCheckpointStore:
    @pytest.mark.asyncio
    async def test_latest_of_unknown_session_is_none(self, store):
        assert await store.latest("nope") is None
        assert await store.history("nope") == []
        assert await store.list_checkpoints("nope") == []

    @pytest.mark.asyncio
    async def test_append_and_read_back(self, store):
        for step in range(3):
            await store.append(make_checkpoint("s1", step))

        latest = await store.latest("s1")
        assert latest.step == 2
        assert latest.values["customer_id"] == "2"

        second = await store.get("s1", 1)
        assert second.checkpoint_id == "cp_loop_000001"
        assert await store.get("s1", 7) is None

        history = await store.history("s1")
        assert [cp.step for cp in history] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_append_rejects_stale_step(self, store):
        await store.append(make_checkpoint("s1", 0))
        await store.append(make_checkpoint("s1", 1))

        with pytest.raises(CheckpointConflictError) as exc:
            await store.append(make_checkpoint("s1", 1))

        assert exc.value.latest_step == 1
        assert (await store.latest("s1")).step == 1

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, store):
        await store.append(make_checkpoint("a", 0))
        await store.append(make_checkpoint("b", 0))
        await store.append(make_checkpoint("b", 1))

        assert await store.sessions() == ["a", "b"]
        assert (await store.latest("a")).step == 0
        assert (await store.latest("b")).step == 1

    @pytest.mark.asyncio
    async def test_list_checkpoints_returns_summaries(self, store):
        await store.append(make_checkpoint("s1", 0))
        await store.append(
            make_checkpoint("s1", 1, next_node=END, status=SessionStatus.TERMINATED)
        )

        summaries = await store.list_checkpoints("s1")

        assert [s.step for s in summaries] == [0, 1]
        assert summaries[-1].status == SessionStatus.TERMINATED
        assert summaries[-1].next_node == END

    @pytest.mark.asyncio
    async def test_pending_interrupt_round_trips(self, store):
        pending = PendingInterrupt(reason="need identifier", payload={"hint": "id"}, node_id="ask")
        await store.append(
            make_checkpoint(
                "s1",
                0,
                source="interrupt",
                status=SessionStatus.SUSPENDED,
                pending_interrupt=pending,
            )
        )

        latest = await store.latest("s1")
        assert latest.pending_interrupt == pending
        assert latest.status == SessionStatus.SUSPENDED

    @pytest.mark.asyncio
    async def test_created_at_is_utc(self, store):
        await store.append(make_checkpoint("s1", 0))

        latest = await store.latest("s1")

        assert datetime.fromisoformat(latest.created_at).utcoffset() == timedelta(0)


class TestInMemoryCheckpointStore:
    @pytest.mark.asyncio
    async def test_shared_storage_simulates_restart(self):
        storage: dict[str, list[str]] = {}
        await InMemoryCheckpointStore(storage).append(make_checkpoint("s1", 0))

        restarted = InMemoryCheckpointStore(storage)

        assert (await restarted.latest("s1")).step == 0

    @pytest.mark.asyncio
    async def test_returned_checkpoints_do_not_alias_storage(self):
        store = InMemoryCheckpointStore()
        await store.append(make_checkpoint("s1", 0))

        first = await store.latest("s1")
        first.values["customer_id"] = "tampered"

        assert (await store.latest("s1")).values["customer_id"] == "0"


class TestFileCheckpointStore:
    @pytest.mark.asyncio
    async def test_one_file_per_step(self, tmp_path: Path):
        store = FileCheckpointStore(tmp_path)
        await store.append(make_checkpoint("s1", 0))
        await store.append(make_checkpoint("s1", 1))

        checkpoints_dir = tmp_path / "sessions" / "s1" / "checkpoints"
        assert sorted(p.name for p in checkpoints_dir.iterdir()) == ["000000.json", "000001.json"]

        data = json.loads((checkpoints_dir / "000001.json").read_text())
        assert data["checkpoint_id"] == "cp_loop_000001"
        assert data["status"] == "running"

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, tmp_path: Path):
        store = FileCheckpointStore(tmp_path)
        await store.append(make_checkpoint("s1", 0))

        leftovers = list((tmp_path / "sessions" / "s1" / "checkpoints").glob("*.tmp"))
        assert leftovers == []

    @pytest.mark.asyncio
    async def test_new_instance_reads_existing_files(self, tmp_path: Path):
        await FileCheckpointStore(tmp_path).append(make_checkpoint("s1", 0))

        reopened = FileCheckpointStore(str(tmp_path))

        assert (await reopened.latest("s1")).step == 0
        assert await reopened.sessions() == ["s1"]

    @pytest.mark.asyncio
    async def test_two_stores_cannot_claim_the_same_step(self, tmp_path: Path, monkeypatch):
        first = FileCheckpointStore(tmp_path)
        second = FileCheckpointStore(tmp_path)
        await first.append(make_checkpoint("s1", 0))

        # second read the directory before first wrote step 1
        real_steps = second._steps
        stale = iter([[0]])
        monkeypatch.setattr(second, "_steps", lambda sid: next(stale, None) or real_steps(sid))

        await first.append(make_checkpoint("s1", 1))
        with pytest.raises(CheckpointConflictError) as exc_info:
            await second.append(make_checkpoint("s1", 1, values={"customer_id": "theirs"}))

        assert exc_info.value.latest_step == 1
        checkpoints_dir = tmp_path / "sessions" / "s1" / "checkpoints"
        assert list(checkpoints_dir.glob("*.tmp")) == []
        assert (await second.get("s1", 1)).values["customer_id"] == "1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id", ["", "..", "a/b", "a\\b"])
    async def test_unsafe_session_id_rejected(self, tmp_path: Path, session_id: str):
        store = FileCheckpointStore(tmp_path)
        with pytest.raises(ValueError):
            await store.latest(session_id)
