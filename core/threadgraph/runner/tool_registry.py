"""Tool registration and dispatch for tool-calling nodes."""

import inspect
import json
import logging
import types
import typing
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from threadgraph.llm.provider import Tool, ToolResult, ToolUse

logger = logging.getLogger(__name__)

_JSON_TYPES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


@dataclass
class RegisteredTool:
    """A tool with its executor function."""

    tool: Tool
    executor: Callable[[dict], Any]


class ToolRegistry:
    """
    Manages tool registration and execution.

    Tools are registered explicitly, either as a (Tool, executor) pair or
    from a plain function whose signature becomes the JSON schema. Methods
    marked with ``@tool`` on an object can be registered in one call with
    ``register_tools_from``, which is how tools bound to a resource (a
    database connection, an API client) are exposed.
    """

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        tool: Tool,
        executor: Callable[[dict], Any],
    ) -> None:
        """
        Register a single tool with its executor.

        Args:
            name: Tool name (must match tool.name)
            tool: Tool definition
            executor: Function that takes tool input dict and returns result
        """
        if name != tool.name:
            raise ValueError(f"Tool name mismatch: registered as '{name}', defined as '{tool.name}'")
        if name in self._tools:
            logger.warning(f"Tool '{name}' registered twice; keeping the latest")
        self._tools[name] = RegisteredTool(tool=tool, executor=executor)

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """
        Register a function as a tool, auto-generating the Tool definition.

        Args:
            func: Function (or bound method) to register
            name: Tool name (defaults to function name)
            description: Tool description (defaults to docstring)
        """
        tool_name = name or func.__name__
        tool_desc = description or inspect.getdoc(func) or f"Execute {tool_name}"

        sig = inspect.signature(func)
        try:
            hints = typing.get_type_hints(func)
        except (NameError, TypeError):
            hints = {}

        properties = {}
        required = []
        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls") or param.kind in (
                param.VAR_POSITIONAL,
                param.VAR_KEYWORD,
            ):
                continue
            properties[param_name] = {"type": _json_type(hints.get(param_name, param.annotation))}
            if param.default is inspect.Parameter.empty:
                required.append(param_name)

        tool = Tool(
            name=tool_name,
            description=tool_desc,
            parameters={
                "type": "object",
                "properties": properties,
                "required": required,
            },
        )

        def executor(inputs: dict) -> Any:
            return func(**inputs)

        self.register(tool_name, tool, executor)

    def register_tools_from(self, obj: Any) -> int:
        """
        Register every ``@tool``-decorated method of ``obj``.

        Returns:
            Number of tools registered
        """
        count = 0
        for _, member in inspect.getmembers(obj, callable):
            metadata = getattr(member, "_tool_metadata", None)
            if metadata is None:
                continue
            self.register_function(
                member, name=metadata["name"], description=metadata["description"]
            )
            count += 1
        logger.info(f"Registered {count} tools from {type(obj).__name__}")
        return count

    def get_tools(self) -> dict[str, Tool]:
        """Get all registered Tool objects."""
        return {name: rt.tool for name, rt in self._tools.items()}

    def get_registered_names(self) -> list[str]:
        """Get list of registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def execute(self, tool_use: ToolUse) -> ToolResult:
        """
        Run a synchronous tool.

        Unknown tools and tools that raise come back as an error ToolResult
        so the model can see what went wrong and try something else.
        """
        if tool_use.name not in self._tools:
            logger.warning(f"Model requested unknown tool '{tool_use.name}'")
            return _error_result(tool_use, f"Unknown tool: {tool_use.name}")

        registered = self._tools[tool_use.name]
        try:
            result = registered.executor(tool_use.input)
        except Exception as e:
            logger.error(f"Tool '{tool_use.name}' failed: {e}", exc_info=True)
            return _error_result(tool_use, str(e))
        return _to_result(tool_use, result)

    async def aexecute(self, tool_use: ToolUse) -> ToolResult:
        """Like ``execute`` but awaits coroutine tools."""
        if tool_use.name not in self._tools:
            logger.warning(f"Model requested unknown tool '{tool_use.name}'")
            return _error_result(tool_use, f"Unknown tool: {tool_use.name}")

        registered = self._tools[tool_use.name]
        try:
            result = registered.executor(tool_use.input)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Tool '{tool_use.name}' failed: {e}", exc_info=True)
            return _error_result(tool_use, str(e))
        return _to_result(tool_use, result)


def _json_type(annotation: Any) -> str:
    if annotation is inspect.Parameter.empty:
        return "string"
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        return _json_type(args[0]) if len(args) == 1 else "string"
    return _JSON_TYPES.get(origin or annotation, "string")


def _error_result(tool_use: ToolUse, message: str) -> ToolResult:
    return ToolResult(
        tool_use_id=tool_use.id,
        content=json.dumps({"error": message}),
        is_error=True,
    )


def _to_result(tool_use: ToolUse, result: Any) -> ToolResult:
    if isinstance(result, ToolResult):
        return result
    return ToolResult(
        tool_use_id=tool_use.id,
        content=result if isinstance(result, str) else json.dumps(result, default=str),
        is_error=False,
    )


def tool(
    description: str | None = None,
    name: str | None = None,
) -> Callable:
    """
    Decorator to mark a function as a tool.

    Usage:
        @tool(description="Look up albums by artist name")
        def get_albums_by_artist(self, artist: str) -> list[dict]:
            ...
    """

    def decorator(func: Callable) -> Callable:
        func._tool_metadata = {
            "name": name or func.__name__,
            "description": description or inspect.getdoc(func),
        }
        return func

    return decorator
