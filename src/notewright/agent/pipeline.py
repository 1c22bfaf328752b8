"""End-to-end import: preprocessing, a fresh session and the turn loop."""

import asyncio
import logging
from typing import (
    List,
    Sequence,
)

from notewright.agent import (
    agent_loop,
    preprocess,
)
from notewright.agent.agent_loop import (
    LoopConfig,
    SleepFn,
)
from notewright.agent.context import RunContext
from notewright.agent.prompts import SYSTEM_INSTRUCTION
from notewright.agent.session import ChatSession
from notewright.core.progress import StepStatus
from notewright.core.schema import (
    Attachment,
    ToolResultPart,
)

logger = logging.getLogger(__name__)


async def run_import(
    attachments: Sequence[Attachment],
    instruction: str,
    ctx: RunContext,
    config: LoopConfig | None = None,
    *,
    system_instruction: str = SYSTEM_INSTRUCTION,
    sleep: SleepFn = asyncio.sleep,
) -> List[ToolResultPart]:
    """
    Import *attachments* into the vault following *instruction*.

    Errors are reported on the progress log before they propagate; ``ModelCallError`` and
    ``RunCancelledError`` are the expected ones.
    """
    config = config or LoopConfig.from_settings()
    try:
        initial = await preprocess.build(attachments, instruction, ctx)
        session = ChatSession(ctx.provider, system_instruction)
        results = await agent_loop.run(session, initial, config, ctx, sleep=sleep)
    except Exception as e:
        logger.error("Import failed: %s", e)
        ctx.tracker.append_step("Failed", str(e), "x").update_state(StepStatus.ERROR)
        raise

    ctx.tracker.append_step("Done", "Import finished", "check").update_state(StepStatus.COMPLETE)
    return results
