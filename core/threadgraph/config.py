"""Shared threadgraph configuration utilities.

Centralises reading of ~/.threadgraph/configuration.json so that the
executor, the CLIs and every agent template share one implementation instead
of copy-pasting helper functions.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MAX_TOKENS = 8192
DEFAULT_RECURSION_LIMIT = 25

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

THREADGRAPH_HOME = Path.home() / ".threadgraph"
THREADGRAPH_CONFIG_FILE = THREADGRAPH_HOME / "configuration.json"


def get_threadgraph_config() -> dict[str, Any]:
    """Load configuration from ~/.threadgraph/configuration.json."""
    if not THREADGRAPH_CONFIG_FILE.exists():
        return {}
    try:
        with open(THREADGRAPH_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the user's preferred LLM model string (e.g. 'openai/gpt-4o-mini')."""
    llm = get_threadgraph_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return "openai/gpt-4o-mini"


def get_max_tokens() -> int:
    """Return the configured max_tokens, falling back to DEFAULT_MAX_TOKENS."""
    return get_threadgraph_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable specified in configuration."""
    llm = get_threadgraph_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_recursion_limit() -> int:
    """Step budget per invocation. THREADGRAPH_RECURSION_LIMIT wins over the file."""
    override = os.environ.get("THREADGRAPH_RECURSION_LIMIT")
    if override:
        return int(override)
    return int(
        get_threadgraph_config().get("execution", {}).get("recursion_limit", DEFAULT_RECURSION_LIMIT)
    )


def get_storage_path() -> Path:
    """Base directory for file-backed stores. THREADGRAPH_STORAGE_PATH wins over the file."""
    override = os.environ.get("THREADGRAPH_STORAGE_PATH")
    if override:
        return Path(override).expanduser()
    configured = get_threadgraph_config().get("storage", {}).get("path")
    if configured:
        return Path(configured).expanduser()
    return THREADGRAPH_HOME / "storage"


# ---------------------------------------------------------------------------
# RuntimeConfig – shared across agent templates
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Agent runtime configuration loaded from ~/.threadgraph/configuration.json."""

    model: str = field(default_factory=get_preferred_model)
    temperature: float = 0.7
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = None
    recursion_limit: int = field(default_factory=get_recursion_limit)
    storage_path: Path = field(default_factory=get_storage_path)
