"""
Music Store Support Agent - Verified, memory-aware customer support.

Verifies the customer (suspending to ask for an identifier when needed), then
a supervisor delegates to a music catalog specialist and an invoice
specialist, and the customer's music preferences are saved for next time.
"""

from .agent import MusicStoreSupportAgent, build_graph, default_agent, state_schema
from .config import AgentMetadata, RuntimeConfig, default_config, metadata

__version__ = "1.0.0"

__all__ = [
    "MusicStoreSupportAgent",
    "default_agent",
    "build_graph",
    "state_schema",
    "RuntimeConfig",
    "AgentMetadata",
    "default_config",
    "metadata",
]
