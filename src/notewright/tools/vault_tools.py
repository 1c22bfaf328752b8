"""Document-mutation and inspection tools: write, read, move, list, getGhostReferences."""

from __future__ import annotations

import logging
import re
from typing import (
    TYPE_CHECKING,
    Iterable,
    List,
    Pattern,
    Set,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from notewright.common import (
    normalize_vault_path,
    parent_of,
)
from notewright.core.errors import DocumentStoreError
from notewright.core.progress import StepStatus
from notewright.core.schema import ToolOutput
from notewright.store.tree import render_tree
from notewright.store.vault import (
    DocumentStore,
    resolve_link_path,
)
from notewright.tools import register_tool

if TYPE_CHECKING:
    from notewright.agent.context import RunContext

logger = logging.getLogger(__name__)


class _Args(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# write
# ---------------------------------------------------------------------------
class WriteArgs(_Args):
    path: str = Field(..., min_length=1)
    content: str


def describe_changes(before: Iterable[str], after: Iterable[str]) -> str:
    """Human-readable list of paths added or removed between two snapshots."""
    before_set: Set[str] = set(before)
    after_set: Set[str] = set(after)
    lines = [f"- {path} (file added)" for path in sorted(after_set - before_set)]
    lines += [f"- {path} (file removed)" for path in sorted(before_set - after_set)]
    if not lines:
        return "No files were added or removed."
    return "Changes in the vault:\n" + "\n".join(lines)


@register_tool("write", WriteArgs)
async def write_note(args: WriteArgs, ctx: RunContext) -> ToolOutput:
    """Create or overwrite a note and report which documents appeared or disappeared."""
    step = ctx.tracker.append_step("Write file", args.path, "file-edit")
    path = normalize_vault_path(args.path)
    try:
        if not path:
            raise DocumentStoreError("empty path")
        content = args.content.replace("\\n", "\n")
        before = await ctx.store.all_document_paths()

        folder = parent_of(path)
        if folder and not await ctx.store.exists(folder):
            await ctx.store.create_folder(folder)
        await ctx.store.write(path, content)

        after = await ctx.store.all_document_paths()
    except DocumentStoreError as e:
        step.update_state(StepStatus.ERROR, str(e))
        raise DocumentStoreError(f"Error writing file '{args.path}': {e}") from e

    step.update_state(StepStatus.COMPLETE)
    added = sorted(set(after) - set(before))
    removed = sorted(set(before) - set(after))
    return ToolOutput(
        output=f"File '{path}' written successfully.\n{describe_changes(before, after)}",
        metadata={"path": path, "added": added, "removed": removed},
    )


# ---------------------------------------------------------------------------
# read
# ---------------------------------------------------------------------------
class ReadArgs(_Args):
    paths: List[str] = Field(..., min_length=1)


def compile_path_pattern(pattern: str) -> Pattern[str]:
    """Turn a path with ``*`` wildcards into an anchored regex; everything else is literal."""
    normalized = normalize_vault_path(pattern)
    return re.compile("^" + ".*".join(re.escape(chunk) for chunk in normalized.split("*")) + "$")


def match_paths(document_paths: Iterable[str], patterns: Iterable[str]) -> List[str]:
    """Documents matching any of *patterns*, in store order."""
    compiled = [compile_path_pattern(pattern) for pattern in patterns]
    return [path for path in document_paths if any(regex.match(path) for regex in compiled)]


async def _read_block(store: DocumentStore, path: str, ctx: RunContext) -> str:
    step = ctx.tracker.append_step(f"File read: {path}", "Reading", "file-search")
    try:
        stat = await store.stat(path)
        content = await store.read(path)
    except DocumentStoreError as e:
        step.update_state(StepStatus.ERROR, str(e))
        return f"File: {path}\nError: Failed to read file: {e}\n"
    step.update_state(StepStatus.COMPLETE, f"Size: {stat.size} bytes")
    return (
        f"File: {path}\nSize: {stat.size} bytes\n"
        f"Last Modified: {stat.modified.isoformat()}\nContent:\n{content}\n"
    )


@register_tool("read", ReadArgs)
async def read_notes(args: ReadArgs, ctx: RunContext) -> ToolOutput:
    """Read every document matching the given paths or ``*`` patterns."""
    step = ctx.tracker.append_step("Read files", "Matching file names", "file-search")
    matched = match_paths(await ctx.store.all_document_paths(), args.paths)
    if not matched:
        step.update_state(StepStatus.PENDING, "No files matched the specified paths.")
        return ToolOutput(output="No files matched the specified paths.", metadata={"matched": []})

    blocks = []
    for path in matched:
        ctx.checkpoint("read")
        blocks.append(await _read_block(ctx.store, path, ctx))

    step.update_state(StepStatus.COMPLETE, f"Read {len(matched)} files")
    return ToolOutput(
        output=f"Successfully read {len(matched)} file(s):\n\n" + "\n---\n".join(blocks),
        metadata={"matched": matched},
    )


# ---------------------------------------------------------------------------
# move
# ---------------------------------------------------------------------------
class MoveArgs(_Args):
    source_path: str = Field(..., alias="sourcePath", min_length=1)
    target_path: str = Field(..., alias="targetPath", min_length=1)


@register_tool("move", MoveArgs)
async def move_note(args: MoveArgs, ctx: RunContext) -> ToolOutput:
    """Move or rename a document, creating the target folder if needed."""
    source = normalize_vault_path(args.source_path)
    target = normalize_vault_path(args.target_path)
    step = ctx.tracker.append_step("Move file", f"{source} -> {target}", "scissors")
    try:
        if ctx.is_protected(source) or ctx.is_protected(target):
            raise DocumentStoreError(f"Cannot move a protected file: {source}")
        if await ctx.store.get_node(source) is None:
            raise DocumentStoreError(f"File not found: {source}")

        target_dir = parent_of(target)
        if target_dir and not await ctx.store.exists(target_dir):
            await ctx.store.create_folder(target_dir)
        await ctx.store.rename(source, target)
    except DocumentStoreError as e:
        step.update_state(StepStatus.ERROR, str(e))
        raise

    step.update_state(StepStatus.COMPLETE)
    return ToolOutput(
        output=f"File moved successfully from {source} to {target}",
        metadata={"source": source, "target": target},
    )


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------
class ListArgs(_Args):
    root_path: str = Field("/", alias="rootPath")
    depth: int = Field(..., ge=1)
    include_files: bool = Field(..., alias="includeFiles")
    show_details: bool = Field(False, alias="showDetails")


@register_tool("list", ListArgs)
async def list_tree(args: ListArgs, ctx: RunContext) -> ToolOutput:
    """Render the folder tree below ``rootPath``."""
    step = ctx.tracker.append_step(
        "List directory", f"Path: {args.root_path}, Depth: {args.depth}", "folder-tree"
    )
    try:
        tree = await render_tree(
            ctx.store,
            args.root_path,
            args.depth,
            args.include_files,
            show_details=args.show_details,
            max_content_lines=ctx.tree_detail_lines,
            protected_markers=ctx.protected_markers,
        )
    except DocumentStoreError as e:
        step.update_state(StepStatus.ERROR, str(e))
        raise
    step.update_state(StepStatus.COMPLETE, f"Listed structure for {args.root_path}")
    ctx.tracker.write_message(tree)
    return ToolOutput(output=tree)


# ---------------------------------------------------------------------------
# getGhostReferences
# ---------------------------------------------------------------------------
class GhostReferencesArgs(_Args):
    pass  # pylint: disable=unnecessary-pass


class GhostReference(BaseModel):
    """A link from *source_file* that resolves to no document."""

    model_config = ConfigDict(populate_by_name=True)

    source_file: str = Field(..., alias="sourceFile")
    unresolved_link: str = Field(..., alias="unresolvedLink")


async def find_ghost_references(store: DocumentStore) -> List[GhostReference]:
    """Every unresolved outbound link in the store, grouped by source document."""
    ghosts: List[GhostReference] = []
    # One listing serves every lookup
    document_paths = await store.all_document_paths()
    for path in document_paths:
        try:
            links = await store.links_of(path)
        except DocumentStoreError as e:
            logger.warning("Skipping unreadable document %s: %s", path, e)
            continue
        for link in links:
            if resolve_link_path(link.link, path, document_paths) is None:
                ghosts.append(GhostReference(source_file=path, unresolved_link=link.link))
    return ghosts


@register_tool("getGhostReferences", GhostReferencesArgs)
async def get_ghost_references(args: GhostReferencesArgs, ctx: RunContext) -> ToolOutput:
    """List links that point at documents which do not exist."""
    step = ctx.tracker.append_step("Search ghosts", "Unresolved links check", "ghost")
    ghosts = await find_ghost_references(ctx.store)
    metadata = {"ghosts": [ghost.model_dump(by_alias=True) for ghost in ghosts]}
    if not ghosts:
        step.update_state(StepStatus.COMPLETE)
        return ToolOutput(
            output="No unresolved links (ghost references) were found.", metadata=metadata
        )

    step.update_state(StepStatus.PENDING, f"Found {len(ghosts)} unresolved links")
    listing = "\n---\n".join(
        f"File: {ghost.source_file}\nUnresolved link: {ghost.unresolved_link}" for ghost in ghosts
    )
    return ToolOutput(output=f"Unresolved links found:\n\n{listing}", metadata=metadata)
