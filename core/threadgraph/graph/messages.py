"""Conversation messages and the identity-based message merge.

Messages are a tagged variant discriminated on ``role``. Every message carries
a stable ``id`` once assigned; ``merge_messages`` uses it to reconcile revised
messages (same id, new content) with the existing history instead of
appending duplicates.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from threadgraph.errors import InvalidUpdateError


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class BaseMessage(BaseModel):
    """Fields shared by every message variant.

    Attributes:
        id: Stable identity used for reconciliation. ``None`` until assigned.
        content: Message text.
        name: Optional author name (e.g. the delegate that produced it).
    """

    role: str
    id: str | None = None
    content: str = ""
    name: str | None = None

    model_config = {"frozen": True}

    def with_id(self) -> BaseMessage:
        """Return this message, or a copy carrying a freshly generated id."""
        if self.id:
            return self
        return self.model_copy(update={"id": new_message_id()})

    def to_llm_dict(self) -> dict[str, Any]:
        raise NotImplementedError


class HumanMessage(BaseMessage):
    role: Literal["human"] = "human"

    def to_llm_dict(self) -> dict[str, Any]:
        return {"role": "user", "content": self.content}


class AIMessage(BaseMessage):
    role: Literal["ai"] = "ai"
    tool_calls: list[ToolCall] = Field(default_factory=list)

    def to_llm_dict(self) -> dict[str, Any]:
        """Convert to OpenAI-format message dict."""
        d: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            d["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": _dump_args(call.args)},
                }
                for call in self.tool_calls
            ]
        return d


class ToolMessage(BaseMessage):
    role: Literal["tool"] = "tool"
    tool_call_id: str
    is_error: bool = False

    def to_llm_dict(self) -> dict[str, Any]:
        content = f"ERROR: {self.content}" if self.is_error else self.content
        return {"role": "tool", "tool_call_id": self.tool_call_id, "content": content}


class SystemMessage(BaseMessage):
    role: Literal["system"] = "system"

    def to_llm_dict(self) -> dict[str, Any]:
        return {"role": "system", "content": self.content}


class RemoveMessage(BaseModel):
    """Incoming marker that deletes the message with ``id`` during a merge."""

    id: str

    model_config = {"frozen": True}


AnyMessage = Annotated[
    HumanMessage | AIMessage | ToolMessage | SystemMessage,
    Field(discriminator="role"),
]

_message_adapter: TypeAdapter[Any] = TypeAdapter(AnyMessage)

_ROLE_ALIASES = {
    "human": "human",
    "user": "human",
    "ai": "ai",
    "assistant": "ai",
    "tool": "tool",
    "system": "system",
}


def new_message_id() -> str:
    """Generate a globally unique message identity."""
    return uuid.uuid4().hex


def _dump_args(args: dict[str, Any]) -> str:
    return json.dumps(args, default=str)


def coerce_message(value: Any) -> BaseMessage | RemoveMessage:
    """Turn a str, ``(role, content)`` tuple or role dict into a message."""
    if isinstance(value, BaseMessage | RemoveMessage):
        return value
    if isinstance(value, str):
        return HumanMessage(content=value)
    if isinstance(value, tuple) and len(value) == 2:
        role, content = value
        return coerce_message({"role": role, "content": content})
    if isinstance(value, dict):
        data = dict(value)
        role = _ROLE_ALIASES.get(str(data.get("role", "")).lower())
        if role is None:
            raise InvalidUpdateError(f"Cannot build a message from role {data.get('role')!r}")
        data["role"] = role
        return _message_adapter.validate_python(data)
    raise InvalidUpdateError(f"Cannot build a message from {type(value).__name__}")


def _coerce_list(value: Any) -> list[BaseMessage | RemoveMessage]:
    if value is None:
        return []
    if isinstance(value, BaseMessage | RemoveMessage | str | dict | tuple):
        value = [value]
    return [coerce_message(item) for item in value]


def merge_messages(left: Any, right: Any) -> list[BaseMessage]:
    """Merge ``right`` into ``left`` by message identity.

    Messages without an id get a fresh one. An incoming message whose id is
    already present replaces the existing element in place; any other
    incoming message is appended in arrival order. ``RemoveMessage`` markers
    delete the referenced message. Neither argument is mutated.
    """
    existing = [m.with_id() for m in _coerce_list(left) if isinstance(m, BaseMessage)]
    incoming = [m if isinstance(m, RemoveMessage) else m.with_id() for m in _coerce_list(right)]

    merged: list[BaseMessage] = list(existing)
    index = {m.id: i for i, m in enumerate(merged)}
    removed: set[str] = set()

    for message in incoming:
        if isinstance(message, RemoveMessage):
            if message.id not in index:
                raise InvalidUpdateError(
                    f"Attempting to delete a message with an id that doesn't exist ({message.id})"
                )
            removed.add(message.id)
            continue
        position = index.get(message.id)
        if position is not None:
            merged[position] = message
            removed.discard(message.id)
        else:
            index[message.id] = len(merged)
            merged.append(message)

    return [m for m in merged if m.id not in removed]


def last_ai_message(messages: Iterable[BaseMessage]) -> AIMessage | None:
    for message in reversed(list(messages)):
        if isinstance(message, AIMessage):
            return message
    return None


def format_conversation(messages: Iterable[BaseMessage]) -> str:
    """Render messages as a plain transcript for prompts."""
    labels = {"human": "Human", "ai": "AI", "tool": "Tool", "system": "System"}
    return "\n".join(f"{labels[m.role]}: {m.content}" for m in messages)
