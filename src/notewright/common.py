"""Common utility functions for the project."""

from enum import Enum
from typing import Any


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


def normalize_vault_path(path: str) -> str:
    """
    Normalise a vault-relative path to ``a/b/c.md`` form.

    Leading ``./`` and slashes, duplicate separators and a trailing slash are removed.  The
    vault root is the empty string.
    """
    parts = [part for part in path.strip().replace("\\", "/").split("/") if part not in ("", ".")]
    return "/".join(parts)


def parent_of(path: str) -> str:
    """Return the folder part of a vault path (empty string for the root)."""
    normalized = normalize_vault_path(path)
    return normalized.rsplit("/", 1)[0] if "/" in normalized else ""
