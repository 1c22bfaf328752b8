"""Preprocessing: turn attachments and an instruction into the first message of a run."""

import logging
from typing import (
    List,
    Sequence,
)

from notewright.agent.context import RunContext
from notewright.agent.uploader import ContentUploader
from notewright.common import normalize_vault_path
from notewright.core.progress import StepStatus
from notewright.core.schema import (
    Attachment,
    AttachmentRefPart,
    Part,
    TextPart,
)
from notewright.store.tree import render_tree
from notewright.store.vault import DocumentStore

logger = logging.getLogger(__name__)


async def attachment_from_vault(store: DocumentStore, path: str) -> Attachment:
    """Load a document of the store as an attachment."""
    normalized = normalize_vault_path(path)
    data = await store.read_bytes(normalized)
    return Attachment.from_bytes(data, display_name=normalized.rsplit("/", 1)[-1])


async def build(
    attachments: Sequence[Attachment], instruction: str, ctx: RunContext
) -> List[Part]:
    """
    Assemble the first message: attachment references, vault snapshot, instruction.

    Attachments are uploaded (or matched to earlier uploads) first.  Having none is fine;
    the run then works from the instruction alone.
    """
    parts: List[Part] = []
    if attachments:
        uploader = ContentUploader(ctx.provider, ctx.tracker)
        refs = await uploader.ensure_all(attachments, ctx.token, ctx.upload_concurrency)
        parts.extend(AttachmentRefPart(uri=ref.uri, mime_type=ref.mime_type) for ref in refs)
    else:
        step = ctx.tracker.append_step("Attachments", "No files provided", "file-x")
        step.update_state(StepStatus.PENDING)

    ctx.checkpoint("vault snapshot")
    step = ctx.tracker.append_step("Vault snapshot", f"Depth {ctx.tree_depth}", "folder-tree")
    tree = await render_tree(
        ctx.store,
        "/",
        ctx.tree_depth,
        True,
        show_details=True,
        max_content_lines=ctx.tree_detail_lines,
        protected_markers=ctx.protected_markers,
    )
    step.update_state(StepStatus.COMPLETE)
    parts.append(TextPart(content=f"Current vault structure:\n{tree}"))

    if instruction.strip():
        parts.append(TextPart(content=instruction))
    logger.debug("Initial message has %d parts", len(parts))
    return parts
