"""
Memory Store - Namespaced key-value storage that outlives sessions.

Long-term memory (user profiles, preferences) is keyed by a namespace tuple
such as ``("customer-7", "memory_profile")`` and a key inside it. ``put`` is
an idempotent overwrite; ``get`` returns None for an absent key.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from threadgraph.utils.io import atomic_write, safe_path_component
from threadgraph.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

Namespace = tuple[str, ...]


class MemoryItem(BaseModel):
    """A stored value with its address and timestamps."""

    namespace: Namespace
    key: str
    value: Any
    created_at: str
    updated_at: str

    model_config = {"frozen": True}


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def _validate_namespace(namespace: Namespace) -> Namespace:
    namespace = tuple(namespace)
    if not namespace:
        raise ValueError("Namespace must have at least one component")
    for part in namespace:
        safe_path_component(part)
    return namespace


class MemoryStore(ABC):
    """Interface every long-term memory backend implements."""

    def __init__(self) -> None:
        self._locks = KeyedLock()

    @abstractmethod
    async def get(self, namespace: Namespace, key: str) -> MemoryItem | None:
        """Stored item, or None when absent."""

    @abstractmethod
    async def put(self, namespace: Namespace, key: str, value: Any) -> MemoryItem:
        """Create or overwrite the value at (namespace, key)."""

    @abstractmethod
    async def delete(self, namespace: Namespace, key: str) -> bool:
        """Remove an item. Returns False when there was nothing to remove."""

    @abstractmethod
    async def search(self, namespace_prefix: Namespace) -> list[MemoryItem]:
        """Every item whose namespace starts with ``namespace_prefix``."""


class InMemoryStore(MemoryStore):
    """Dict-backed store; values are serialized on write like the file store."""

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[Namespace, dict[str, str]] = {}

    async def get(self, namespace: Namespace, key: str) -> MemoryItem | None:
        raw = self._data.get(_validate_namespace(namespace), {}).get(key)
        return MemoryItem.model_validate_json(raw) if raw is not None else None

    async def put(self, namespace: Namespace, key: str, value: Any) -> MemoryItem:
        namespace = _validate_namespace(namespace)
        async with self._locks.hold(namespace):
            existing = await self.get(namespace, key)
            now = datetime.now(UTC).isoformat()
            item = MemoryItem(
                namespace=namespace,
                key=key,
                value=_jsonable(value),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._data.setdefault(namespace, {})[key] = item.model_dump_json()
        logger.debug(f"Stored memory {'/'.join(namespace)}:{key}")
        return item

    async def delete(self, namespace: Namespace, key: str) -> bool:
        namespace = _validate_namespace(namespace)
        async with self._locks.hold(namespace):
            return self._data.get(namespace, {}).pop(key, None) is not None

    async def search(self, namespace_prefix: Namespace) -> list[MemoryItem]:
        prefix = tuple(namespace_prefix)
        items = []
        for namespace in sorted(self._data):
            if namespace[: len(prefix)] != prefix:
                continue
            for key in sorted(self._data[namespace]):
                items.append(MemoryItem.model_validate_json(self._data[namespace][key]))
        return items


class FileMemoryStore(MemoryStore):
    """
    One JSON file per key.

    Directory structure:
        {base_path}/
            memory/
                {namespace[0]}/{namespace[1]}/.../{key}.json
    """

    def __init__(self, base_path: Path | str):
        super().__init__()
        self.base_path = Path(base_path)
        self.memory_dir = self.base_path / "memory"

    def _item_path(self, namespace: Namespace, key: str) -> Path:
        return self.memory_dir.joinpath(*namespace) / f"{safe_path_component(key)}.json"

    def _read(self, path: Path) -> MemoryItem | None:
        if not path.exists():
            return None
        return MemoryItem.model_validate_json(path.read_text(encoding="utf-8"))

    async def get(self, namespace: Namespace, key: str) -> MemoryItem | None:
        path = self._item_path(_validate_namespace(namespace), key)
        return await asyncio.to_thread(self._read, path)

    async def put(self, namespace: Namespace, key: str, value: Any) -> MemoryItem:
        namespace = _validate_namespace(namespace)
        path = self._item_path(namespace, key)

        def _write() -> MemoryItem:
            existing = self._read(path)
            now = datetime.now(UTC).isoformat()
            item = MemoryItem(
                namespace=namespace,
                key=key,
                value=_jsonable(value),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            with atomic_write(path) as f:
                f.write(item.model_dump_json(indent=2))
            return item

        async with self._locks.hold(namespace):
            item = await asyncio.to_thread(_write)
        logger.debug(f"Saved memory {'/'.join(namespace)}:{key} to {path}")
        return item

    async def delete(self, namespace: Namespace, key: str) -> bool:
        namespace = _validate_namespace(namespace)
        path = self._item_path(namespace, key)

        def _delete() -> bool:
            if not path.exists():
                return False
            path.unlink()
            return True

        async with self._locks.hold(namespace):
            return await asyncio.to_thread(_delete)

    async def search(self, namespace_prefix: Namespace) -> list[MemoryItem]:
        root = self.memory_dir.joinpath(*(safe_path_component(p) for p in namespace_prefix))

        def _scan() -> list[MemoryItem]:
            if not root.exists():
                return []
            items = []
            for path in sorted(root.rglob("*.json")):
                item = self._read(path)
                if item is not None:
                    items.append(item)
            return items

        return await asyncio.to_thread(_scan)


def dump_value(value: Any) -> str:
    """Render a stored value for prompts."""
    if isinstance(value, str):
        return value
    return json.dumps(_jsonable(value), indent=2, sort_keys=True)
