"""Node that runs the tool calls requested by the last AI message."""

import logging
from collections.abc import Mapping
from typing import Any

from threadgraph.graph.messages import ToolMessage, last_ai_message
from threadgraph.graph.node import NodeContext
from threadgraph.llm.provider import ToolUse
from threadgraph.runner.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolNode:
    """
    Executes every tool call of the latest AI message, in order.

    Each call produces one ToolMessage answering its ``tool_call_id``. A
    failing or unknown tool yields an error ToolMessage instead of failing
    the step, so the assistant can read the error and recover.
    """

    def __init__(self, registry: ToolRegistry, messages_key: str = "messages"):
        self.registry = registry
        self.messages_key = messages_key

    async def execute(self, state: Mapping[str, Any], ctx: NodeContext) -> dict[str, Any]:
        message = last_ai_message(state.get(self.messages_key) or [])
        if message is None or not message.tool_calls:
            logger.debug("No pending tool calls")
            return {}

        results = []
        for call in message.tool_calls:
            result = await self.registry.aexecute(
                ToolUse(id=call.id, name=call.name, input=dict(call.args))
            )
            if result.is_error:
                logger.warning(f"Tool '{call.name}' returned an error: {result.content}")
            results.append(
                ToolMessage(
                    tool_call_id=call.id,
                    name=call.name,
                    content=result.content,
                    is_error=result.is_error,
                )
            )
        logger.info(f"Executed {len(results)} tool call(s)", extra={"event": "tools_executed"})
        return {self.messages_key: results}
