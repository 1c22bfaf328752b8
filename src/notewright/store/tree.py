"""Render a folder of the document store as a ``tree``-style listing."""

import logging
from typing import (
    Iterable,
    List,
    Sequence,
)

from notewright.common import normalize_vault_path
from notewright.core.errors import DocumentStoreError
from notewright.store.frontmatter import keypoints_of
from notewright.store.vault import (
    DocumentStore,
    Node,
)

logger = logging.getLogger(__name__)

BRANCH = "├── "
LAST_BRANCH = "└── "
PIPE = "│   "
SPACE = "    "


def sort_nodes(nodes: Iterable[Node]) -> List[Node]:
    """Folders before files, then by name."""
    return sorted(nodes, key=lambda node: (not node.is_folder, node.name.lower(), node.name))


async def render_tree(
    store: DocumentStore,
    root_path: str,
    depth: int,
    include_files: bool,
    *,
    show_details: bool = False,
    max_content_lines: int = 23,
    protected_markers: Sequence[str] = (".lim",),
) -> str:
    """
    Walk *root_path* down to *depth* levels and return the formatted tree.

    With *show_details*, markdown notes list their frontmatter keypoints and instruction
    files (names containing a protected marker) show their first *max_content_lines* lines.

    Raises
    ------
    DocumentStoreError
        If the root does not exist or is not a folder.
    """
    if depth < 1:
        raise ValueError("depth must be at least 1")

    normalized = normalize_vault_path(root_path)
    display_root = normalized or "/"
    root = await store.get_node(normalized)
    if root is None:
        raise DocumentStoreError(f"Root path not found: {display_root}")
    if not root.is_folder:
        raise DocumentStoreError(f"Root path is not a folder: {display_root}")

    lines: List[str] = ["." if not normalized else root.name]

    async def walk(folder: Node, level: int, prefix: str) -> None:
        if level > depth:
            return
        children = sort_nodes(await store.list_children(folder.path))
        if not include_files:
            children = [child for child in children if child.is_folder]

        for i, child in enumerate(children):
            is_last = i == len(children) - 1
            child_prefix = prefix + (SPACE if is_last else PIPE)
            lines.append(f"{prefix}{LAST_BRANCH if is_last else BRANCH}{child.name}")

            if child.is_folder:
                await walk(child, level + 1, child_prefix)
            elif show_details:
                details = await _file_details(
                    store, child, child_prefix, max_content_lines, protected_markers
                )
                lines.extend(details)

    await walk(root, 1, "")

    inclusion = "including" if include_files else "excluding"
    title = f"Directory structure for '{display_root}' (depth {depth}, {inclusion} files):"
    return title + "\n" + "\n".join(lines)


async def _file_details(
    store: DocumentStore,
    node: Node,
    prefix: str,
    max_content_lines: int,
    protected_markers: Sequence[str],
) -> List[str]:
    if any(marker in node.name.lower() for marker in protected_markers):
        try:
            content_lines = (await store.read(node.path)).split("\n")
        except DocumentStoreError as e:
            logger.warning("Could not read instruction file %s: %s", node.path, e)
            return [f"{prefix}  [Error reading instruction file]"]
        out = [f"{prefix}  {line}" for line in content_lines[:max_content_lines]]
        if len(content_lines) > max_content_lines:
            out.append(f"{prefix}  [...]")
        return out

    if node.extension != "md":
        return []
    try:
        keypoints = keypoints_of(await store.read(node.path))
    except DocumentStoreError as e:
        logger.warning("Could not read note %s: %s", node.path, e)
        keypoints = []
    if not keypoints:
        return [f"{prefix}  [NO KEYPOINTS FOUND]"]
    return [f"{prefix}  Keypoints:"] + [f"{prefix}    - {point}" for point in keypoints]
