"""
Content uploader.

Attachments are deduplicated by content hash against the provider's file listing before
anything is uploaded.  The listing is walked lazily and afresh on every lookup; no local cache
is trusted as authoritative.
"""

import asyncio
import logging
from typing import (
    Dict,
    List,
    Optional,
    Sequence,
)

from notewright.agent.provider_interface import BaseProvider
from notewright.core.cancellation import CancellationToken
from notewright.core.errors import (
    ModelProviderError,
    UploadError,
)
from notewright.core.progress import (
    ProgressTracker,
    StepStatus,
)
from notewright.core.schema import (
    Attachment,
    ProviderRef,
    RemoteFile,
)

logger = logging.getLogger(__name__)


class ContentUploader:
    """Binds attachments to provider-side references, uploading only unseen content."""

    def __init__(self, provider: BaseProvider, tracker: Optional[ProgressTracker] = None) -> None:
        self.provider = provider
        self.tracker = tracker or ProgressTracker()
        self._locks: Dict[str, asyncio.Lock] = {}

    async def find_remote(self, content_hash: str) -> Optional[RemoteFile]:
        """Return the first uploaded file whose hash is *content_hash*, fetching pages lazily."""
        async for remote in self.provider.list_uploaded_files():
            if remote.sha256 == content_hash:
                return remote
        return None

    async def ensure_uploaded(
        self, attachment: Attachment, token: CancellationToken
    ) -> ProviderRef:
        """
        Make sure *attachment* is stored with the provider and return its reference.

        Already-bound attachments are returned as-is.  Otherwise the provider listing is
        searched for the same content hash; only if nothing matches is the blob uploaded.

        Raises
        ------
        RunCancelledError
            If *token* is flipped before the lookup, or while the lookup or upload is in
            flight; any reference found or uploaded is then discarded and the attachment stays
            unbound.
        ModelProviderError
            If the provider listing cannot be read.
        UploadError
            If the provider rejects the upload.
        """
        if attachment.provider_ref is not None:
            return attachment.provider_ref

        digest = attachment.content_hash
        lock = self._locks.setdefault(digest, asyncio.Lock())
        async with lock:
            token.raise_if_cancelled(f"before uploading {attachment.display_name}")
            step = self.tracker.append_step(
                f"Upload: {attachment.display_name}", "Checking uploaded files", "upload"
            )

            try:
                remote = await self.find_remote(digest)
                if remote is None:
                    step.update_caption("Uploading")
                    uploaded = await self.provider.upload_file(
                        attachment.data, attachment.mime_type, attachment.display_name
                    )
            except (ModelProviderError, UploadError) as e:
                step.update_state(StepStatus.ERROR, str(e))
                raise
            except asyncio.CancelledError:
                step.update_state(StepStatus.ERROR, "Aborted")
                raise

            if token.cancelled:
                step.update_state(StepStatus.ERROR, "Cancelled")
            token.raise_if_cancelled(f"after the provider call for {attachment.display_name}")

            if remote is not None:
                logger.info("Reusing uploaded file %s for %s", remote.uri, attachment.display_name)
                ref = ProviderRef(uri=remote.uri, mime_type=attachment.mime_type, name=remote.name)
                step.update_state(StepStatus.COMPLETE, "Already uploaded")
            else:
                ref = uploaded
                logger.info("Uploaded %s as %s", attachment.display_name, ref.uri)
                step.update_state(StepStatus.COMPLETE, "Uploaded")

        attachment.bind(ref)
        return ref

    async def ensure_all(
        self,
        attachments: Sequence[Attachment],
        token: CancellationToken,
        concurrency: int = 4,
    ) -> List[ProviderRef]:
        """
        Upload *attachments* in batches of *concurrency*, returning refs in input order.

        If any upload in a batch fails, its siblings are cancelled and awaited before the error
        propagates, so no upload outlives the call.
        """
        refs: List[ProviderRef] = []
        size = max(concurrency, 1)
        for start in range(0, len(attachments), size):
            token.raise_if_cancelled("uploads")
            tasks = [
                asyncio.create_task(self.ensure_uploaded(item, token))
                for item in attachments[start : start + size]
            ]
            try:
                refs.extend(await asyncio.gather(*tasks))
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
        return refs
