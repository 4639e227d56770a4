"""
State Channels - Typed, reducer-merged slots of execution state.

A StateSchema declares the channels of a graph. Nodes never write state
directly: they return a partial update and the executor applies it through
``StateSchema.apply``, which runs each touched channel's reducer exactly once.

Reducers must be pure functions of ``(current, incoming)``:
- overwrite: merged = incoming
- append: merged = current + incoming (arrival order preserved)
- merge_messages: identity-based reconciliation (see graph.messages)
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import TypeAdapter

from threadgraph.errors import InvalidUpdateError
from threadgraph.graph.messages import AnyMessage, merge_messages

Reducer = Callable[[Any, Any], Any]


def overwrite(current: Any, incoming: Any) -> Any:
    """Last write wins."""
    return incoming


def append(current: Any, incoming: Any) -> list[Any]:
    """Concatenate, preserving arrival order. A scalar incoming is appended as one item."""
    if incoming is None:
        return list(current or [])
    if not isinstance(incoming, list | tuple):
        incoming = [incoming]
    return [*(current or []), *incoming]


@dataclass(frozen=True)
class Channel:
    """
    Named slot in execution state.

    Attributes:
        name: Key in the state mapping
        reducer: ``(current, incoming) -> merged``
        default_factory: Builds the value of a fresh session
        type_: Value type, used to (de)serialize the channel for checkpoints
    """

    name: str
    reducer: Reducer = overwrite
    default_factory: Callable[[], Any] = lambda: None
    type_: Any = Any
    _adapter: TypeAdapter = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_adapter", TypeAdapter(self.type_))

    def default(self) -> Any:
        return self.default_factory()

    def dump(self, value: Any) -> Any:
        """Convert a value to JSON-safe data."""
        return self._adapter.dump_python(value, mode="json")

    def load(self, raw: Any) -> Any:
        """Rebuild a value from JSON-safe data."""
        return self._adapter.validate_python(raw)


class StateSchema:
    """
    Ordered collection of channels.

    Example:
        schema = StateSchema([
            Channel("messages", merge_messages, list, list[AnyMessage]),
            Channel("customer_id", overwrite, lambda: None, str | None),
        ])
        values = schema.apply(schema.initial(), {"customer_id": "7"})
    """

    def __init__(self, channels: list[Channel]):
        names = [c.name for c in channels]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate channel names: {duplicates}")
        self._channels: Mapping[str, Channel] = MappingProxyType({c.name: c for c in channels})

    @property
    def channels(self) -> Mapping[str, Channel]:
        return self._channels

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def initial(self) -> dict[str, Any]:
        """Default values for a fresh session."""
        return {name: channel.default() for name, channel in self._channels.items()}

    def apply(self, values: Mapping[str, Any], update: Mapping[str, Any] | None) -> dict[str, Any]:
        """
        Merge a partial update into state.

        Returns a new mapping; ``values`` is not mutated. Channels absent from
        ``update`` keep their current value.

        Raises:
            InvalidUpdateError: update is not a mapping or names an unknown channel
        """
        if update is None:
            return dict(values)
        if not isinstance(update, Mapping):
            raise InvalidUpdateError(
                f"Expected a mapping of channel updates, got {type(update).__name__}"
            )
        unknown = sorted(set(update) - set(self._channels))
        if unknown:
            raise InvalidUpdateError(
                f"Update writes undeclared channels {unknown}. "
                f"Declared: {sorted(self._channels)}"
            )

        merged = dict(values)
        for name, incoming in update.items():
            channel = self._channels[name]
            current = merged.get(name, channel.default())
            merged[name] = channel.reducer(current, incoming)
        return merged

    def dump(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Serialize state for a checkpoint."""
        return {
            name: channel.dump(values.get(name, channel.default()))
            for name, channel in self._channels.items()
        }

    def load(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Rebuild state from a checkpoint. Missing channels get their default."""
        values = self.initial()
        for name, data in raw.items():
            if name in self._channels:
                values[name] = self._channels[name].load(data)
        return values

    def project(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Keep only the channels this schema declares."""
        return {name: values[name] for name in self._channels if name in values}


def messages_channel(name: str = "messages") -> Channel:
    return Channel(name, merge_messages, list, list[AnyMessage])


def messages_schema(*extra: Channel) -> StateSchema:
    """Schema with an identity-merged ``messages`` channel plus ``extra`` channels."""
    return StateSchema([messages_channel(), *extra])
