"""Dispatches tool calls to the run's :class:`~notewright.tools.ToolRegistry` and wraps errors."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from notewright.core.errors import RunCancelledError
from notewright.core.schema import (
    ToolCallPart,
    ToolOutput,
    ToolResultPart,
)
from notewright.tools import ToolRegistry

if TYPE_CHECKING:
    from notewright.agent.context import RunContext

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Error executing function {name}: {reason}")
        self.name = name
        self.reason = reason


async def execute_tool(registry: ToolRegistry, call: ToolCallPart, ctx: "RunContext") -> ToolOutput:
    """
    Look up ``call.name`` in *registry* and invoke it with ``call.arguments``.

    Parameters
    ----------
    registry:
        The tools offered to the model in this run.
    call:
        The tool call requested by the model.
    ctx:
        The run context handed to the tool.

    Returns
    -------
    ToolOutput
        Whatever the tool returns.

    Raises
    ------
    ToolExecutionError
        If the tool is missing, its arguments do not validate, or its invocation raises.
    RunCancelledError
        If the run is cancelled while the tool runs; never wrapped.
    """

    tool = registry.get(call.name)
    if tool is None:
        raise ToolExecutionError(call.name, f"tool '{call.name}' is not available")

    try:
        logger.debug("Executing tool '%s' with args=%s", call.name, call.arguments)
        return await tool.run(call.arguments, ctx)
    except RunCancelledError:
        raise
    except ValidationError as exc:
        # Argument mismatch: give the model a readable list of what was wrong.
        logger.warning("Invalid arguments for tool '%s': %s", call.name, exc)
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'arguments'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ToolExecutionError(call.name, f"invalid arguments ({problems})") from exc
    except Exception as exc:  # noqa: BLE001  pylint: disable=broad-except
        logger.warning("Tool '%s' raised an error: %s", call.name, exc)
        raise ToolExecutionError(call.name, str(exc) or type(exc).__name__) from exc


async def dispatch_tool_call(
    registry: ToolRegistry, call: ToolCallPart, ctx: "RunContext"
) -> ToolResultPart:
    """Run *call* and always return a result part; tool failures become error-shaped output."""
    try:
        result = await execute_tool(registry, call, ctx)
    except ToolExecutionError as exc:
        return ToolResultPart(id=call.id, name=call.name, output=str(exc), is_error=True)
    return ToolResultPart(
        id=call.id, name=call.name, output=result.output, metadata=result.metadata
    )
