"""Node definitions for Music Store Support Agent."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

from threadgraph.graph import AIMessage, HumanMessage, NodeContext, SystemMessage
from threadgraph.llm import LLMProvider

logger = logging.getLogger(__name__)

NEED_IDENTIFIER = "need identifier"


class CustomerDirectory(Protocol):
    """Resolves a customer-supplied identifier to a customer id."""

    def resolve(self, identifier: str) -> str | None: ...


class UserInput(BaseModel):
    identifier: str = Field(
        default="",
        description="Identifier, which can be a customer ID, email, or phone number.",
    )


class UserProfile(BaseModel):
    customer_id: str = Field(description="the customer ID of the customer")
    music_preferences: list[str] = Field(
        default_factory=list, description="the music preferences of the customer"
    )


EXTRACT_IDENTIFIER_PROMPT = (
    "You are a customer service representative responsible for extracting customer "
    "identifier. Only extract the customer's account information from the message "
    "history. If they haven't provided the information yet, return an empty string for "
    "the identifier."
)

VERIFY_PROMPT = """\
You are a music store agent, where you are trying to verify the customer identity
as the first step of the customer support process.
Only after their account is verified, you would be able to support them on resolving the issue.
In order to verify their identity, one of their customer ID, email, or phone number needs to be provided.
If the customer has not provided their identifier, please ask them for it.
If they have provided the identifier but cannot be found, please ask them to revise it.
"""


@dataclass(frozen=True)
class MusicPromptContext:
    """Values for the music catalog assistant prompt."""

    loaded_memory: str = ""


def render_music_prompt(ctx: MusicPromptContext) -> str:
    return f"""\
You are a member of the assistant team, your role specifically is to focused on helping
customers discover and learn about music in our digital catalog.
If you are unable to find playlists, songs, or albums associated with an artist, it is okay.
Just inform the customer that the catalog does not have any playlists, songs, or albums
associated with that artist.
You also have context on any saved user preferences, helping you to tailor your response.

CORE RESPONSIBILITIES:
- Search and provide accurate information about songs, albums, artists, and playlists
- Offer relevant recommendations based on customer interests
- Handle music-related queries with attention to detail
- Help customers discover new music they might enjoy
- You are routed only when there are questions related to music catalog; ignore other questions.

Prior saved user preferences: {ctx.loaded_memory or "None"}
"""

@dataclass(frozen=True)
class InvoicePromptContext:
    """Values for the invoice assistant prompt."""

    customer_id: str


def render_invoice_prompt(ctx: InvoicePromptContext) -> str:
    return f"""\
You are a subagent among a team of assistants. You are specialized for retrieving and
processing invoice information. You are routed for invoice-related portion of the
questions, so only respond to them.

If you are unable to retrieve the invoice information, inform the customer you are unable
to retrieve the information, and ask if they would like to search for something else.

CORE RESPONSIBILITIES:
- Retrieve and process invoice information from the database
- Provide detailed information about invoices, including customer details, invoice dates,
  total amounts, employees associated with the invoice, etc. when the customer asks for it.

The verified customer ID is {ctx.customer_id}.
"""


DELEGATE_DESCRIPTIONS = {
    "music": (
        "has access to the customer's saved music preferences and can retrieve information "
        "about the store's music catalog (albums, tracks, songs, etc.) from the database."
    ),
    "invoice": (
        "can retrieve information about a customer's past purchases or invoices from the "
        "database."
    ),
}


def music_prompt(state: Mapping[str, Any]) -> str:
    return render_music_prompt(MusicPromptContext(loaded_memory=state.get("loaded_memory") or ""))


def invoice_prompt(state: Mapping[str, Any]) -> str:
    return render_invoice_prompt(
        InvoicePromptContext(customer_id=str(state.get("customer_id") or "unknown"))
    )


def format_user_memory(profile: Any) -> str:
    if profile is None:
        return ""
    profile = UserProfile.model_validate(profile)
    if profile.music_preferences:
        return f"Music Preferences: {', '.join(profile.music_preferences)}"
    return ""


class VerifyInfoNode:
    """
    Verifies the customer before any support work happens.

    Extracts an identifier from the latest human message, resolves it through
    the CustomerDirectory, and either records ``customer_id`` or asks the
    customer (via the model) for a usable identifier.
    """

    def __init__(self, llm: LLMProvider, directory: CustomerDirectory):
        self.llm = llm
        self.directory = directory

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> dict[str, Any]:
        if state.get("customer_id"):
            return {}

        messages = state.get("messages") or []
        last_human = next((m for m in reversed(messages) if isinstance(m, HumanMessage)), None)

        customer_id = None
        if last_human is not None:
            parsed = await self.llm.acomplete_structured(
                [last_human.to_llm_dict()], UserInput, system=EXTRACT_IDENTIFIER_PROMPT
            )
            if parsed.identifier:
                customer_id = self.directory.resolve(parsed.identifier)
                if customer_id is None:
                    logger.info(f"Identifier {parsed.identifier!r} did not match a customer")

        if customer_id:
            logger.info(f"Verified customer {customer_id}", extra={"event": "customer_verified"})
            return {
                "customer_id": customer_id,
                "messages": [
                    SystemMessage(
                        content=(
                            "Thank you for providing your information! I was able to verify "
                            f"your account with customer id {customer_id}."
                        )
                    )
                ],
            }

        response = await self.llm.acomplete(
            messages=[m.to_llm_dict() for m in messages], system=VERIFY_PROMPT
        )
        return {"messages": [AIMessage(content=response.content, name="verify")]}


def await_human(state: Mapping[str, Any], ctx: NodeContext) -> dict[str, Any]:
    """Suspend until the customer supplies an identifier."""
    answer = ctx.interrupt(
        NEED_IDENTIFIER,
        "Please provide your customer information (ID, email, or phone number).",
    )
    return {"messages": [HumanMessage(content=str(answer))]}


def should_interrupt(state: Mapping[str, Any]) -> Literal["continue", "interrupt"]:
    if state.get("customer_id"):
        return "continue"
    return "interrupt"
