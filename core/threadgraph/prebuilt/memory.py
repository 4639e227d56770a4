"""
Long-term memory nodes.

LoadMemoryNode reads a profile at the start of a turn; UpdateMemoryNode asks
the model to fold the conversation into the profile at the end of it. Both
address the profile as ``(actor_id, "memory_profile")`` / ``"user_memory"``
by default, and both treat a missing profile as an empty one.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel

from threadgraph.graph.messages import format_conversation
from threadgraph.graph.node import NodeContext
from threadgraph.llm.provider import LLMProvider
from threadgraph.prebuilt.prompts import MemoryPromptContext, render_memory_prompt
from threadgraph.storage.memory_store import MemoryStore, dump_value

logger = logging.getLogger(__name__)

PROFILE_NAMESPACE = "memory_profile"
PROFILE_KEY = "user_memory"

ProfileFormatter = Callable[[Any], str]


def default_formatter(profile: Any) -> str:
    if profile is None:
        return ""
    return dump_value(profile)


class LoadMemoryNode:
    """Loads the actor's profile into ``output_key`` as prompt-ready text."""

    def __init__(
        self,
        store: MemoryStore,
        actor_key: str = "customer_id",
        output_key: str = "loaded_memory",
        formatter: ProfileFormatter = default_formatter,
        namespace: str = PROFILE_NAMESPACE,
        key: str = PROFILE_KEY,
    ):
        self.store = store
        self.actor_key = actor_key
        self.output_key = output_key
        self.formatter = formatter
        self.namespace = namespace
        self.key = key

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> dict[str, Any]:
        actor_id = state.get(self.actor_key)
        if not actor_id:
            return {self.output_key: ""}

        item = await self.store.get((str(actor_id), self.namespace), self.key)
        if item is None:
            logger.info(f"No stored profile for '{actor_id}'; starting empty")
            return {self.output_key: self.formatter(None)}
        return {self.output_key: self.formatter(item.value)}


class UpdateMemoryNode:
    """
    Rewrites the actor's profile from the conversation.

    The model gets the transcript and the current profile and must answer
    with a complete ``profile_model``; the result overwrites the stored
    profile and is also written to ``output_key``.
    """

    def __init__(
        self,
        store: MemoryStore,
        llm: LLMProvider,
        profile_model: type[BaseModel],
        domain: str = "our store",
        actor_key: str = "customer_id",
        output_key: str = "loaded_memory",
        formatter: ProfileFormatter = default_formatter,
        namespace: str = PROFILE_NAMESPACE,
        key: str = PROFILE_KEY,
    ):
        self.store = store
        self.llm = llm
        self.profile_model = profile_model
        self.domain = domain
        self.actor_key = actor_key
        self.output_key = output_key
        self.formatter = formatter
        self.namespace = namespace
        self.key = key

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> dict[str, Any]:
        actor_id = state.get(self.actor_key)
        if not actor_id:
            logger.debug("No actor id in state; skipping memory update")
            return {}

        namespace = (str(actor_id), self.namespace)
        item = await self.store.get(namespace, self.key)
        existing = self.profile_model.model_validate(item.value) if item is not None else None

        prompt = render_memory_prompt(
            MemoryPromptContext(
                domain=self.domain,
                conversation=format_conversation(state.get("messages") or []),
                memory_profile=self.formatter(existing),
                fields={
                    name: info.description or name
                    for name, info in self.profile_model.model_fields.items()
                },
            )
        )
        updated = await self.llm.acomplete_structured(
            [{"role": "user", "content": "Produce the updated memory profile."}],
            self.profile_model,
            system=prompt,
        )
        await self.store.put(namespace, self.key, updated)
        logger.info(f"Updated memory profile for '{actor_id}'", extra={"event": "memory_updated"})
        return {self.output_key: self.formatter(updated)}
