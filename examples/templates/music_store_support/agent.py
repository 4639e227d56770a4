"""Agent graph construction for Music Store Support Agent."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from threadgraph.config import RuntimeConfig
from threadgraph.errors import GraphValidationError
from threadgraph.graph import (
    END,
    Channel,
    CompiledGraph,
    GraphBuilder,
    GraphExecutor,
    StateSchema,
    messages_channel,
    messages_schema,
)
from threadgraph.graph.executor import ExecutionResult, StateSnapshot
from threadgraph.llm import LLMProvider
from threadgraph.prebuilt import (
    LoadMemoryNode,
    SupervisorNode,
    UpdateMemoryNode,
    create_delegate_agent,
    route_channel,
    route_supervisor,
)
from threadgraph.storage import (
    CheckpointStore,
    FileCheckpointStore,
    FileMemoryStore,
    InMemoryCheckpointStore,
    InMemoryStore,
    MemoryStore,
)

from .config import default_config, metadata
from .nodes import (
    DELEGATE_DESCRIPTIONS,
    CustomerDirectory,
    UserProfile,
    VerifyInfoNode,
    await_human,
    format_user_memory,
    invoice_prompt,
    music_prompt,
    should_interrupt,
)
from .tools import (
    SqliteCustomerDirectory,
    create_demo_database,
    invoice_registry,
    music_registry,
)

GRAPH_NAME = "music_store_support"


def customer_channel() -> Channel:
    return Channel("customer_id", type_=str | None)


def memory_channel() -> Channel:
    return Channel("loaded_memory", default_factory=str, type_=str)


state_schema = StateSchema(
    [messages_channel(), customer_channel(), memory_channel(), route_channel()]
)


def build_graph(
    llm: LLMProvider,
    conn: sqlite3.Connection,
    memory_store: MemoryStore,
    directory: CustomerDirectory | None = None,
) -> CompiledGraph:
    """
    Assemble the support workflow.

    verify --continue--> load_memory --> supervisor --music--> delegate_music --> supervisor
       |  \\--interrupt--> await_human --> verify    |--invoice--> delegate_invoice --> supervisor
       |                                             \\--done--> create_memory --> END
    """
    directory = directory or SqliteCustomerDirectory(conn)

    music_agent = create_delegate_agent(
        "music",
        llm,
        music_registry(conn),
        music_prompt,
        schema=messages_schema(memory_channel()),
    )
    invoice_agent = create_delegate_agent(
        "invoice",
        llm,
        invoice_registry(conn),
        invoice_prompt,
        schema=messages_schema(customer_channel()),
    )

    builder = GraphBuilder(state_schema, name=GRAPH_NAME)
    builder.add_node("verify", VerifyInfoNode(llm, directory))
    builder.add_node("await_human", await_human)
    builder.add_node(
        "load_memory",
        LoadMemoryNode(memory_store, formatter=format_user_memory),
    )
    builder.add_node(
        "supervisor",
        SupervisorNode(llm, DELEGATE_DESCRIPTIONS, domain=metadata.domain),
    )
    builder.add_node("delegate_music", music_agent)
    builder.add_node("delegate_invoice", invoice_agent)
    builder.add_node(
        "create_memory",
        UpdateMemoryNode(
            memory_store,
            llm,
            UserProfile,
            domain=metadata.domain,
            formatter=format_user_memory,
        ),
    )

    builder.set_entry_point("verify")
    builder.add_conditional_edges(
        "verify",
        should_interrupt,
        {"continue": "load_memory", "interrupt": "await_human"},
    )
    builder.add_edge("await_human", "verify")
    builder.add_edge("load_memory", "supervisor")
    builder.add_conditional_edges(
        "supervisor",
        route_supervisor,
        {"music": "delegate_music", "invoice": "delegate_invoice", "done": "create_memory"},
    )
    builder.add_edge("delegate_music", "supervisor")
    builder.add_edge("delegate_invoice", "supervisor")
    builder.add_edge("create_memory", END)
    return builder.compile()


class MusicStoreSupportAgent:
    """
    Music Store Support Agent - verified, memory-aware multi-agent support.

    Flow: verify -> [await_human] -> load_memory -> supervisor <-> delegates
          -> create_memory -> END
    """

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        llm: LLMProvider | None = None,
        conn: sqlite3.Connection | None = None,
        checkpoint_store: CheckpointStore | None = None,
        memory_store: MemoryStore | None = None,
    ):
        self.config = config or default_config
        self._llm = llm
        self._conn = conn
        self._checkpoint_store = checkpoint_store
        self._memory_store = memory_store
        self._graph: CompiledGraph | None = None
        self._executor: GraphExecutor | None = None

    @classmethod
    def with_storage(
        cls,
        storage_path: Path,
        llm: LLMProvider | None = None,
        conn: sqlite3.Connection | None = None,
        config: RuntimeConfig | None = None,
    ) -> MusicStoreSupportAgent:
        """Agent whose sessions and memories live under ``storage_path``."""
        base = Path(storage_path) / GRAPH_NAME
        return cls(
            config=config,
            llm=llm,
            conn=conn,
            checkpoint_store=FileCheckpointStore(base),
            memory_store=FileMemoryStore(base),
        )

    def _setup(self) -> GraphExecutor:
        """Set up the executor with all components."""
        if self._llm is None:
            from threadgraph.llm.litellm import LiteLLMProvider

            self._llm = LiteLLMProvider(
                model=self.config.model,
                api_key=self.config.api_key,
                api_base=self.config.api_base,
                temperature=self.config.temperature,
            )
        if self._conn is None:
            self._conn = create_demo_database()
        self._checkpoint_store = self._checkpoint_store or InMemoryCheckpointStore()
        self._memory_store = self._memory_store or InMemoryStore()

        self._graph = build_graph(self._llm, self._conn, self._memory_store)
        self._executor = GraphExecutor(
            self._graph,
            checkpoint_store=self._checkpoint_store,
            recursion_limit=self.config.recursion_limit,
        )
        return self._executor

    @property
    def executor(self) -> GraphExecutor:
        if self._executor is None:
            self._setup()
        return self._executor

    @property
    def memory_store(self) -> MemoryStore:
        if self._executor is None:
            self._setup()
        return self._memory_store

    async def run(self, message: str, session_id: str | None = None) -> ExecutionResult:
        """Send a customer message, starting a new session unless one is given."""
        return await self.executor.invoke({"messages": [message]}, session_id=session_id)

    async def resume(self, session_id: str, answer: str) -> ExecutionResult:
        """Answer the question a suspended session is waiting on."""
        return await self.executor.resume(session_id, answer)

    async def get_state(self, session_id: str) -> StateSnapshot:
        return await self.executor.get_state(session_id)

    def info(self) -> dict:
        """Get agent information."""
        graph = self.executor.graph
        return {
            "name": metadata.name,
            "version": metadata.version,
            "description": metadata.description,
            "nodes": list(graph.nodes),
            "entry_node": graph.entry_node,
            "transitions": graph.transition_table(),
        }

    def validate(self) -> dict:
        """Validate agent structure."""
        errors = []
        try:
            self._setup()
        except GraphValidationError as e:
            errors = e.errors
        return {"valid": not errors, "errors": errors, "warnings": []}


# Create default instance
default_agent = MusicStoreSupportAgent()
