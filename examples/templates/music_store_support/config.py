"""Runtime configuration."""

from dataclasses import dataclass

from threadgraph.config import RuntimeConfig

default_config = RuntimeConfig()


@dataclass
class AgentMetadata:
    name: str = "Music Store Support Agent"
    version: str = "1.0.0"
    description: str = (
        "Customer support for a digital music store. Verifies the customer, "
        "routes questions to a music catalog specialist or an invoice specialist, "
        "and remembers the customer's music preferences across conversations."
    )
    intro_message: str = (
        "Hi! I can help with our music catalog and your past purchases. "
        "What can I do for you today?"
    )
    domain: str = "a digital music store"


metadata = AgentMetadata()
