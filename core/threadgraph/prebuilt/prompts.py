"""
Typed prompt templates for the prebuilt nodes.

Each prompt has a frozen context dataclass naming exactly the values it
needs, and a render function. Rendering with a missing value is a
TypeError at construction time rather than a silently blank section in
the prompt.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SupervisorPromptContext:
    """Values for the supervisor routing prompt."""

    domain: str
    delegates: Mapping[str, str]  # label -> what that delegate can do
    done_label: str = "done"
    extra_instructions: str = ""


def render_supervisor_prompt(ctx: SupervisorPromptContext) -> str:
    team = "\n".join(
        f"{i}. {name}: {description}" for i, (name, description) in enumerate(ctx.delegates.items(), 1)
    )
    prompt = f"""\
You are an expert customer support assistant for {ctx.domain}.
You supervise a team of specialist assistants and decide who handles the next part of the
customer's request. Your team:
{team}

Look at the conversation so far. If part of the request is still unanswered, choose the
one specialist who should act next. When every part of the request has been answered,
choose "{ctx.done_label}" and put a short closing reply to the customer in "response".

Respond with JSON: {{"next": "<one of: {", ".join([*ctx.delegates, ctx.done_label])}>", "response": "<optional>"}}
"""
    if ctx.extra_instructions:
        prompt = f"{prompt}\n{ctx.extra_instructions}\n"
    return prompt


@dataclass(frozen=True)
class MemoryPromptContext:
    """Values for the memory-profile update prompt."""

    domain: str
    conversation: str
    memory_profile: str
    fields: Mapping[str, str] = field(default_factory=dict)  # field name -> meaning


def render_memory_prompt(ctx: MemoryPromptContext) -> str:
    fields = "\n".join(f"- {name}: {meaning}" for name, meaning in ctx.fields.items())
    profile = ctx.memory_profile or "(empty, create a new profile)"
    return f"""\
You are an analyst observing a conversation between a customer and the support assistant
of {ctx.domain}. Update the customer's memory profile with anything the customer shared
about themselves. The profile may be empty; if so, create it.

The profile has these fields:
{fields}

If the conversation contains no new information for a field, keep its current value.

Conversation:
{ctx.conversation}

Existing memory profile:
{profile}

Respond with the complete updated profile as a JSON object.
"""
