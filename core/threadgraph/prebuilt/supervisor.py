"""
Supervisor routing.

The supervisor asks the model which delegate should act next, parses the
answer as a RouteDecision and maps it onto one of a fixed set of labels
(the delegate names plus ``done``). The label is written to the
``next_agent`` channel, and ``route_supervisor`` hands it to a
conditional edge.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from threadgraph.graph.builder import CompiledGraph, GraphBuilder
from threadgraph.graph.edge import END
from threadgraph.graph.messages import AIMessage
from threadgraph.graph.node import NodeContext
from threadgraph.graph.state import Channel, StateSchema
from threadgraph.llm.provider import LLMProvider
from threadgraph.prebuilt.prompts import SupervisorPromptContext, render_supervisor_prompt

logger = logging.getLogger(__name__)

ROUTE_KEY = "next_agent"
DONE = "done"

_DONE_ALIASES = frozenset({"done", "finish", "finished", "end", "none", "__end__"})


class RouteDecision(BaseModel):
    """Structured answer the supervisor asks the model for."""

    next: str
    response: str = ""


def route_channel() -> Channel:
    """The channel the supervisor writes its routing label to."""
    return Channel(ROUTE_KEY, type_=str | None)


def normalize_label(choice: str, labels: list[str], done_label: str = DONE) -> str:
    """
    Map a free-form model choice onto a known label.

    Matching ignores case, surrounding whitespace, and the difference between
    spaces, dashes and underscores. Anything unrecognized maps to
    ``done_label``.
    """

    def _key(value: str) -> str:
        return "_".join(value.strip().lower().replace("-", " ").split())

    wanted = _key(choice)
    for label in labels:
        if _key(label) == wanted:
            return label
    if wanted in _DONE_ALIASES or wanted == _key(done_label):
        return done_label
    logger.warning(f"Supervisor chose unknown delegate {choice!r}; treating as '{done_label}'")
    return done_label


class SupervisorNode:
    """Picks the next delegate (or ``done``) from the conversation."""

    def __init__(
        self,
        llm: LLMProvider,
        delegates: Mapping[str, str],
        prompt: str | Callable[[Mapping[str, Any]], str] | None = None,
        domain: str = "our store",
        done_label: str = DONE,
        max_tokens: int = 512,
    ):
        if not delegates:
            raise ValueError("SupervisorNode needs at least one delegate")
        self.llm = llm
        self.delegates = dict(delegates)
        self.done_label = done_label
        self.max_tokens = max_tokens
        self.prompt = prompt or render_supervisor_prompt(
            SupervisorPromptContext(domain=domain, delegates=self.delegates, done_label=done_label)
        )

    @property
    def labels(self) -> list[str]:
        return [*self.delegates, self.done_label]

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> dict[str, Any]:
        system = self.prompt(state) if callable(self.prompt) else self.prompt
        messages = [m.to_llm_dict() for m in state.get("messages") or []]

        try:
            decision = await self.llm.acomplete_structured(
                messages, RouteDecision, system=system, max_tokens=self.max_tokens
            )
        except ValidationError as e:
            logger.warning(f"Supervisor answer did not parse as a route: {e}")
            decision = RouteDecision(next=self.done_label)

        label = normalize_label(decision.next, list(self.delegates), self.done_label)
        logger.info(f"Supervisor routed to '{label}'", extra={"event": "supervisor_route"})

        update: dict[str, Any] = {ROUTE_KEY: label}
        if label == self.done_label and decision.response:
            update["messages"] = [AIMessage(content=decision.response, name="supervisor")]
        return update


def route_supervisor(state: Mapping[str, Any]) -> str:
    """Routing function for the edge leaving the supervisor."""
    return state.get(ROUTE_KEY) or DONE


def create_supervisor(
    llm: LLMProvider,
    delegates: Mapping[str, CompiledGraph],
    schema: StateSchema,
    descriptions: Mapping[str, str] | None = None,
    prompt: str | None = None,
    name: str = "supervisor",
    domain: str = "our store",
) -> CompiledGraph:
    """
    Build supervisor -> delegate -> supervisor, with ``done`` leading to END.

    ``schema`` must declare the ``next_agent`` channel (see route_channel).
    """
    if ROUTE_KEY not in schema:
        raise ValueError(f"Supervisor schema must declare the '{ROUTE_KEY}' channel")
    descriptions = descriptions or {}

    builder = GraphBuilder(schema, name=name)
    builder.add_node(
        "supervisor",
        SupervisorNode(
            llm,
            {label: descriptions.get(label, label) for label in delegates},
            prompt=prompt,
            domain=domain,
        ),
    )
    for label, graph in delegates.items():
        builder.add_node(label, graph)
        builder.add_edge(label, "supervisor")
    builder.set_entry_point("supervisor")
    builder.add_conditional_edges(
        "supervisor",
        route_supervisor,
        {**{label: label for label in delegates}, DONE: END},
    )
    return builder.compile()
