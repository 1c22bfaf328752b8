"""Terminal runner for Notewright imports."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import (
    Dict,
    Sequence,
    Tuple,
)

from notewright.agent.context import (
    PlanDecision,
    RunContext,
)
from notewright.agent.pipeline import run_import
from notewright.agent.provider_interface import (
    BaseProvider,
    load_provider,
)
from notewright.common import (
    AnsiColors,
    colored_print,
)
from notewright.config import settings
from notewright.core.errors import (
    DocumentStoreError,
    ModelCallError,
    NotewrightError,
    RunCancelledError,
)
from notewright.core.progress import (
    StepEntry,
    StepStatus,
)
from notewright.core.schema import Attachment
from notewright.store.vault import FileSystemVault

logger = logging.getLogger(__name__)

STATUS_COLORS: Dict[StepStatus, AnsiColors] = {
    StepStatus.PENDING: AnsiColors.GREY,
    StepStatus.IN_PROGRESS: AnsiColors.BLUE,
    StepStatus.COMPLETE: AnsiColors.GREEN,
    StepStatus.ERROR: AnsiColors.RED,
}


# ---------------------------------------------------------------------------
# Terminal helpers
# ---------------------------------------------------------------------------
def get_user_message(prompt: str = "") -> Tuple[str, bool]:
    """
    Get a line from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    if prompt:
        colored_print(prompt, AnsiColors.BLUE, end="")
    try:
        return input().strip(), True
    except (EOFError, KeyboardInterrupt):
        return "", False


def print_step(entry: StepEntry) -> None:
    """Progress listener: one coloured line per step update."""
    color = STATUS_COLORS.get(entry.status, AnsiColors.GREY)
    colored_print(f"[{entry.index:>2}] {entry.label}: {entry.caption}", color)


async def review_plan(plan: str) -> PlanDecision:
    """Ask the user at the terminal to accept or reject a proposed plan."""
    colored_print(f"\nProposed plan:\n{plan}\n", AnsiColors.YELLOW)
    answer, ok = await asyncio.to_thread(get_user_message, "Accept plan? [Y/n] ")
    if not ok or answer.lower() in {"", "y", "yes"}:
        return PlanDecision(accepted=True)
    feedback, _ = await asyncio.to_thread(get_user_message, "Feedback: ")
    return PlanDecision(accepted=False, feedback=feedback)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------
async def run_files(
    files: Sequence[Path | str],
    instruction: str,
    vault_dir: Path | str | None = None,
    provider: BaseProvider | None = None,
) -> int:
    """Import *files* into the vault and return a process exit code."""
    try:
        store = FileSystemVault(vault_dir or settings.VAULT_DIR)
    except DocumentStoreError as exc:
        colored_print(f"Cannot open the vault: {exc}", AnsiColors.RED)
        return 2
    ctx = RunContext.from_settings(
        store,
        provider or load_provider(),
        plan_reviewer=review_plan if settings.ASK_PLAN else None,
    )
    ctx.tracker.add_listener(print_step)

    # Ctrl+C flips the token; the run stops at its next checkpoint
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, ctx.token.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unsupported here; Ctrl+C will abort immediately")

    try:
        attachments = [Attachment.from_path(path) for path in files]
        results = await run_import(attachments, instruction, ctx)
    except OSError as exc:
        colored_print(f"Could not read input file: {exc}", AnsiColors.RED)
        return 2
    except RunCancelledError as exc:
        colored_print(f"Cancelled: {exc}", AnsiColors.YELLOW)
        return 130
    except ModelCallError as exc:
        colored_print(f"The model could not be reached: {exc}", AnsiColors.RED)
        return 1
    except NotewrightError as exc:
        colored_print(f"Import failed: {exc}", AnsiColors.RED)
        return 1
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            logger.debug("No SIGINT handler to remove")

    for message in ctx.tracker.messages[-1:]:
        colored_print(message, AnsiColors.YELLOW)
    errors = sum(1 for result in results if result.is_error)
    colored_print(f"Finished: {len(results)} tool result(s), {errors} error(s).", AnsiColors.GREEN)
    return 0


def run_cli(
    files: Sequence[Path | str] = (),
    instruction: str | None = None,
    vault_dir: Path | str | None = None,
) -> int:
    """Run one import from the terminal, asking for the instruction if none was given."""
    colored_print("Notewright - Ctrl+C cancels the run.", AnsiColors.GREEN)
    if instruction is None:
        instruction, ok = get_user_message("Instruction: ")
        if not ok:
            return 130
    if not instruction and not files:
        colored_print("Nothing to do: give an instruction or files.", AnsiColors.RED)
        return 2
    return asyncio.run(run_files(files, instruction, vault_dir))


if __name__ == "__main__":
    raise SystemExit(run_cli())
