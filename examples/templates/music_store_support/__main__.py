"""
CLI entry point for Music Store Support Agent.

Sessions are checkpointed under --storage, so a conversation suspended by
`run` can be continued later with `resume`, even from a new process.
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from threadgraph.config import get_storage_path
from threadgraph.errors import ThreadGraphError
from threadgraph.graph import FinalState, InterruptDescriptor, StepEvent, format_for_display
from threadgraph.observability import configure_logging

from .agent import MusicStoreSupportAgent, default_agent
from .config import metadata


def setup_logging(verbose=False, debug=False):
    """Configure logging for execution visibility."""
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = "WARNING"
    configure_logging(level=level, format="auto")


def _build_agent(mock, storage, db) -> MusicStoreSupportAgent:
    llm = None
    if mock:
        from .mock import mock_llm

        llm = mock_llm()
    conn = None
    if db:
        from .tools import connect

        conn = connect(db)
    return MusicStoreSupportAgent.with_storage(Path(storage), llm=llm, conn=conn)


def _echo_result(result, quiet=False):
    if isinstance(result, InterruptDescriptor):
        click.echo(format_for_display(result))
        click.echo(f"\nContinue with: resume {result.session_id} \"<your answer>\"")
        return
    if quiet:
        click.echo(json.dumps({"session_id": result.session_id, "steps": result.steps}))
        return
    messages = result.values.get("messages") or []
    reply = next((m for m in reversed(messages) if m.role == "ai" and m.content), None)
    if reply is not None:
        click.echo(reply.content)
    click.echo(f"\n[session {result.session_id} finished in {result.steps} steps]")


async def _stream(events, show_steps):
    result = None
    async for event in events:
        if isinstance(event, StepEvent):
            if show_steps:
                click.echo(f"  step {event.step}: {event.node}", err=True)
        else:
            result = event
    return result


_common_options = [
    click.option("--mock", is_flag=True, help="Use a scripted model (no API key needed)"),
    click.option(
        "--storage",
        type=click.Path(file_okay=False),
        default=lambda: str(get_storage_path()),
        show_default="~/.threadgraph/storage",
        help="Directory for checkpoints and long-term memory",
    ),
    click.option("--db", type=click.Path(dir_okay=False), help="Chinook SQLite database"),
    click.option("--verbose", "-v", is_flag=True, help="Show execution details"),
    click.option("--debug", is_flag=True, help="Show debug logging"),
]


def common_options(func):
    for option in reversed(_common_options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=metadata.version)
def cli():
    """Music Store Support Agent - catalog and invoice help for verified customers."""
    pass


@cli.command()
@click.argument("message")
@click.option("--session", "session_id", help="Continue an existing session")
@click.option("--quiet", "-q", is_flag=True, help="Only output result JSON")
@common_options
def run(message, session_id, quiet, mock, storage, db, verbose, debug):
    """Send MESSAGE to the agent."""
    setup_logging(verbose=verbose, debug=debug)
    agent = _build_agent(mock, storage, db)
    try:
        result = asyncio.run(
            _stream(
                agent.executor.astream({"messages": [message]}, session_id=session_id),
                show_steps=verbose,
            )
        )
    except ThreadGraphError as e:
        click.echo(json.dumps(e.to_dict(), indent=2, default=str), err=True)
        sys.exit(1)
    _echo_result(result, quiet=quiet)


@cli.command()
@click.argument("session_id")
@click.argument("answer")
@common_options
def resume(session_id, answer, mock, storage, db, verbose, debug):
    """Answer the question SESSION_ID is waiting on."""
    setup_logging(verbose=verbose, debug=debug)
    agent = _build_agent(mock, storage, db)
    try:
        result = asyncio.run(
            _stream(agent.executor.astream_resume(session_id, answer), show_steps=verbose)
        )
    except ThreadGraphError as e:
        click.echo(json.dumps(e.to_dict(), indent=2, default=str), err=True)
        sys.exit(1)
    _echo_result(result)


@cli.command()
@click.argument("session_id")
@click.option("--history", is_flag=True, help="Show every checkpoint, oldest first")
@common_options
def state(session_id, history, mock, storage, db, verbose, debug):
    """Show the checkpointed state of SESSION_ID."""
    setup_logging(verbose=verbose, debug=debug)
    agent = _build_agent(mock, storage, db)
    try:
        if history:
            snapshots = asyncio.run(agent.executor.get_state_history(session_id))
        else:
            snapshots = [asyncio.run(agent.get_state(session_id))]
    except ThreadGraphError as e:
        click.echo(json.dumps(e.to_dict(), indent=2, default=str), err=True)
        sys.exit(1)

    for snapshot in snapshots:
        click.echo(
            json.dumps(
                {
                    "checkpoint_id": snapshot.checkpoint_id,
                    "step": snapshot.step,
                    "status": snapshot.status,
                    "next_node": snapshot.next_node,
                    "customer_id": snapshot.values.get("customer_id"),
                    "messages": len(snapshot.values.get("messages") or []),
                    "waiting_on": (
                        snapshot.pending_interrupt.reason if snapshot.pending_interrupt else None
                    ),
                    "created_at": snapshot.created_at,
                },
                indent=2,
            )
        )


@cli.command()
@click.option("--json", "output_json", is_flag=True)
def info(output_json):
    """Show agent information."""
    info_data = default_agent.info()
    if output_json:
        click.echo(json.dumps(info_data, indent=2))
    else:
        click.echo(f"Agent: {info_data['name']}")
        click.echo(f"Version: {info_data['version']}")
        click.echo(f"Description: {info_data['description']}")
        click.echo(f"\nNodes: {', '.join(info_data['nodes'])}")
        click.echo(f"Entry: {info_data['entry_node']}")
        click.echo("Transitions:")
        for source, targets in info_data["transitions"].items():
            for label, target in targets.items():
                click.echo(f"  {source} --{label}--> {target}")


@cli.command()
def validate():
    """Validate agent structure."""
    validation = default_agent.validate()
    if validation["valid"]:
        click.echo("Agent is valid")
    else:
        click.echo("Agent has errors:")
        for error in validation["errors"]:
            click.echo(f"  ERROR: {error}")
    sys.exit(0 if validation["valid"] else 1)


if __name__ == "__main__":
    cli()
