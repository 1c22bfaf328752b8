"""Main orchestration loop for Notewright."""

from __future__ import annotations

import asyncio
import logging
from typing import (
    TYPE_CHECKING,
    Awaitable,
    Callable,
    List,
    Sequence,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from notewright.agent.session import ChatSession
from notewright.agent.tool_executor import dispatch_tool_call
from notewright.config import settings
from notewright.core.errors import (
    ModelCallError,
    RunCancelledError,
)
from notewright.core.progress import (
    StepHandle,
    StepStatus,
)
from notewright.core.schema import (
    Part,
    ToolResultPart,
    TurnResponse,
)
from notewright.tools import (
    ToolDeclaration,
    ToolRegistry,
)
from notewright.tools.session_tools import END_SESSION_TOOL

if TYPE_CHECKING:
    from notewright.agent.context import RunContext

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class LoopConfig(BaseModel):
    """Turn budget, retry budget and the tools offered to the model."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_turns: int = Field(..., gt=0)
    max_retries: int = Field(..., ge=0)
    tools: ToolRegistry

    @classmethod
    def from_settings(cls, tools: ToolRegistry | None = None) -> "LoopConfig":
        return cls(
            max_turns=settings.MAX_TURNS,
            max_retries=settings.MAX_RETRIES,
            tools=tools if tools is not None else ToolRegistry(),
        )


# ---------------------------------------------------------------------------
# Model call with retries
# ---------------------------------------------------------------------------
async def _call_model(
    session: ChatSession,
    parts: Sequence[Part],
    declarations: Sequence[ToolDeclaration],
    max_retries: int,
    ctx: "RunContext",
    step: StepHandle,
    sleep: SleepFn,
) -> TurnResponse:
    """
    Send *parts* and return the response, retrying failed calls with exponential backoff.

    At most ``max(max_retries, 1)`` attempts are made; attempt ``a`` (from 0) is followed by a
    ``2**a`` second pause before the next one.  Cancellation is never retried.
    """
    attempts = max(max_retries, 1)
    last_error: Exception | None = None
    for attempt in range(attempts):
        ctx.checkpoint("before model call")
        try:
            return await session.send(parts, declarations)
        except RunCancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-except
            last_error = e
            if attempt + 1 >= attempts:
                break
            delay = float(2**attempt)
            logger.warning(
                "Model call failed (attempt %d/%d), retrying in %.0fs: %s",
                attempt + 1,
                attempts,
                delay,
                e,
            )
            step.update_caption(f"Retrying in {delay:.0f}s ({attempt + 1}/{attempts})")
            await sleep(delay)
            ctx.checkpoint("after backoff")

    message = f"Model call failed after {attempts} attempts: {last_error}"
    raise ModelCallError(message) from last_error


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
async def run(
    session: ChatSession,
    initial_message: Sequence[Part],
    config: LoopConfig,
    ctx: "RunContext",
    *,
    sleep: SleepFn = asyncio.sleep,
) -> List[ToolResultPart]:
    """
    Drive the model until it stops asking for tools.

    Each turn sends the pending message (first *initial_message*, then the previous turn's
    tool results) with the tool declarations, and dispatches the requested calls one by one
    in the order the model emitted them.  The loop ends when a turn requests no tools, when a
    turn called ``end_session``, or after ``config.max_turns`` model calls.

    Returns
    -------
    List[ToolResultPart]
        The tool results of the last turn that requested tools (empty if none did).

    Raises
    ------
    ModelCallError
        If a model call still fails after every retry.
    RunCancelledError
        If the run's token is flipped; effects of finished tools are kept.
    """
    declarations = config.tools.declarations()
    pending: List[Part] = list(initial_message)
    results: List[ToolResultPart] = []

    for turn in range(1, config.max_turns + 1):
        ctx.checkpoint(f"before turn {turn}")
        logger.info("Turn %d/%d", turn, config.max_turns)
        step = ctx.tracker.append_step("Thinking", f"Turn {turn}", "bot")
        try:
            response = await _call_model(
                session, pending, declarations, config.max_retries, ctx, step, sleep
            )
        except RunCancelledError as e:
            step.update_state(StepStatus.ERROR, str(e))
            raise
        except ModelCallError as e:
            logger.error("Run failed on turn %d: %s", turn, e)
            step.update_state(StepStatus.ERROR, str(e))
            raise

        if response.text:
            ctx.tracker.write_message(response.text)
        step.update_state(
            StepStatus.COMPLETE, f"Turn {turn}: {len(response.tool_calls)} tool call(s)"
        )
        ctx.checkpoint("after model call")

        if not response.tool_calls:
            logger.info("No tool calls on turn %d, stopping", turn)
            return results

        results = []
        ended = False
        for call in response.tool_calls:
            ctx.checkpoint(f"before tool {call.name}")
            result = await dispatch_tool_call(config.tools, call, ctx)
            if result.is_error:
                logger.warning("Tool '%s' failed: %s", call.name, result.output)
            results.append(result)
            ended = ended or (call.name == END_SESSION_TOOL and not result.is_error)

        if ended:
            logger.info("Session ended by the model on turn %d", turn)
            return results
        pending = list(results)

    logger.info("Turn budget of %d exhausted", config.max_turns)
    return results
