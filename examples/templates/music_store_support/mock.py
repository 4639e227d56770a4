"""Scripted model behavior for --mock runs (no API key, no network)."""

from __future__ import annotations

import json
import re
import uuid
from typing import Any

from threadgraph.llm import LLMResponse, MockLLMProvider, Tool, ToolUse

from .nodes import EXTRACT_IDENTIFIER_PROMPT, VERIFY_PROMPT

_IDENTIFIER = re.compile(r"(\+[\d ()-]{6,}\d|[\w.+-]+@[\w-]+\.[\w.]+|\b\d+\b)")
_INVOICE_WORDS = ("invoice", "purchase", "bought", "receipt", "spent")


def _last(messages: list[dict[str, Any]], role: str) -> dict[str, Any] | None:
    return next((m for m in reversed(messages) if m.get("role") == role), None)


def _call(name: str, args: dict[str, Any]) -> LLMResponse:
    return LLMResponse(
        content="",
        model="mock-model",
        tool_calls=[ToolUse(id=f"call_{uuid.uuid4().hex[:8]}", name=name, input=args)],
        stop_reason="tool_calls",
    )


def respond(messages: list[dict[str, Any]], system: str, tools: list[Tool] | None) -> Any:
    """Answer like a cooperative model, keyed on which prompt is asking."""
    conversation = [m for m in messages if m.get("role") != "system"]
    last = conversation[-1] if conversation else {"role": "user", "content": ""}
    human = _last(messages, "user") or {"content": ""}

    if system == EXTRACT_IDENTIFIER_PROMPT:
        match = _IDENTIFIER.search(last.get("content") or "")
        return {"identifier": match.group(1).strip() if match else ""}

    if system == VERIFY_PROMPT:
        return "To get started, please share your customer ID, email, or phone number."

    if "supervise a team" in system:
        if last.get("role") == "user":
            text = human["content"].lower()
            return {"next": "invoice" if any(w in text for w in _INVOICE_WORDS) else "music"}
        return {"next": "done", "response": "Is there anything else I can help you with?"}

    if "memory profile" in system:
        customer = re.search(r"customer id (\d+)", system)
        genres = sorted({g for g in ("rock", "jazz") if g in system.lower()})
        return {"customer_id": customer.group(1) if customer else "", "music_preferences": genres}

    tool_names = {t.name for t in tools or []}
    if last.get("role") == "tool":
        return f"Here is what I found: {last.get('content')}"
    if "get_invoices_by_customer_sorted_by_date" in tool_names:
        customer = re.search(r"customer ID is (\d+)", system)
        return _call(
            "get_invoices_by_customer_sorted_by_date",
            {"customer_id": int(customer.group(1)) if customer else 0},
        )
    if "get_albums_by_artist" in tool_names:
        artist = re.search(r"\bby ([\w/ ]+?)(?:[?.!]|$)", human["content"], re.IGNORECASE)
        if artist:
            return _call("get_albums_by_artist", {"artist": artist.group(1).strip()})
        return _call("get_songs_by_genre", {"genre": "Rock"})
    return json.dumps({"note": "mock model has no script for this prompt"})


def mock_llm() -> MockLLMProvider:
    return MockLLMProvider(responder=respond)
