"""
Read YAML frontmatter from markdown text.

Frontmatter is enclosed in ``---`` delimiters alone on their own lines, Jekyll style, at the
very top of the document.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Tuple,
)

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)

_DELIMITER = "---"


def split_frontmatter(text: str) -> Tuple[Optional[str], str]:
    """Return ``(raw_frontmatter, body)``; the frontmatter is None when absent or unterminated."""
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != _DELIMITER:
        return None, text
    for i in range(1, len(lines)):
        if lines[i].strip() == _DELIMITER:
            return "".join(lines[1:i]), "".join(lines[i + 1 :])
    return None, text


def read_frontmatter(text: str) -> Optional[Dict[str, Any]]:
    """Parse the frontmatter of *text*; malformed YAML is logged and treated as absent."""
    raw, _ = split_frontmatter(text)
    if not raw:
        return None
    try:
        data = YAML(typ="safe").load(raw)
    except YAMLError as e:
        logger.debug("Ignoring malformed frontmatter: %s", e)
        return None
    return data if isinstance(data, dict) else None


def keypoints_of(text: str) -> List[str]:
    """The ``keypoints`` list of a note, as strings."""
    metadata = read_frontmatter(text) or {}
    keypoints = metadata.get("keypoints")
    if isinstance(keypoints, list):
        return [str(point) for point in keypoints if str(point).strip()]
    if isinstance(keypoints, (str, int, float)) and str(keypoints).strip():
        return [str(keypoints)]
    return []
