"""
Notewright entry point.

This file handles startup concerns (arg-parsing, logging) and launches the appropriate
interface (terminal runner or HTTP API).
"""

import argparse
import logging
import sys

from notewright.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Per-request lines from httpx drown out the run log
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Turn raw material into linked vault notes")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="cli",
        help="Run one import in the terminal, or serve the runs API (default: cli)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--vault",
        default=settings.VAULT_DIR,
        help="Vault folder (default from env: %(default)s)",
    )
    parser.add_argument(
        "--instruction",
        default=None,
        help="What to do with the files; asked interactively when omitted",
    )
    parser.add_argument("files", nargs="*", help="Local files to import (audio, PDF, text...)")
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the Notewright application.

    Sets up logging from the command line and starts either the terminal runner or the API.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    args = parser.parse_args(argv)

    # Override settings with command-line arguments
    settings.LOG_LEVEL = args.log_level
    settings.VAULT_DIR = args.vault

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting Notewright [%s mode]", args.mode)
    logger.debug("Settings: %s", settings.model_dump(exclude={"GOOGLE_API_KEY", "OPENAI_API_KEY"}))

    if args.mode == "api":
        # Lazy import to keep the web stack out of terminal runs
        from notewright.api.app import run_api  # pylint: disable=import-outside-toplevel

        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    from notewright.client.cli import run_cli  # pylint: disable=import-outside-toplevel

    sys.exit(run_cli(args.files, args.instruction, args.vault))


if __name__ == "__main__":
    main()
