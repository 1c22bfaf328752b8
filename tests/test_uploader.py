"""Content uploader: hash dedup against the provider listing and cancellation."""

import asyncio

import pytest

from conftest import FakeProvider
from notewright.agent.uploader import ContentUploader
from notewright.core.cancellation import CancellationToken
from notewright.core.errors import (
    ModelProviderError,
    RunCancelledError,
    UploadError,
)
from notewright.core.progress import StepStatus
from notewright.core.schema import (
    Attachment,
    ProviderRef,
)


@pytest.mark.asyncio
async def test_same_content_is_uploaded_once() -> None:
    provider = FakeProvider()
    uploader = ContentUploader(provider)
    token = CancellationToken()
    first = Attachment.from_bytes(b"lecture audio", "lecture.mp3")
    second = Attachment.from_bytes(b"lecture audio", "copy of lecture.mp3")

    ref1 = await uploader.ensure_uploaded(first, token)
    ref2 = await uploader.ensure_uploaded(second, token)

    assert len(provider.uploads) == 1
    assert provider.uploads[0][1] == "audio/mpeg"
    assert ref2.uri == ref1.uri
    assert second.uploaded and second.provider_ref == ref2


@pytest.mark.asyncio
async def test_remote_file_from_an_earlier_session_is_reused() -> None:
    provider = FakeProvider()
    await provider.upload_file(b"%PDF-1.7", "application/pdf", "paper.pdf")
    attachment = Attachment.from_bytes(b"%PDF-1.7", "renamed.pdf")

    ref = await ContentUploader(provider).ensure_uploaded(attachment, CancellationToken())

    assert len(provider.uploads) == 1
    assert ref.uri == "files/1"
    assert ref.mime_type == "application/pdf"


@pytest.mark.asyncio
async def test_bound_attachment_skips_the_lookup() -> None:
    provider = FakeProvider()
    attachment = Attachment.from_bytes(b"x", "x.txt")
    attachment.bind(ProviderRef(uri="files/known", mime_type="text/plain"))

    ref = await ContentUploader(provider).ensure_uploaded(attachment, CancellationToken())

    assert ref.uri == "files/known"
    assert provider.list_calls == 0


@pytest.mark.asyncio
async def test_cancelled_before_upload() -> None:
    provider = FakeProvider()
    token = CancellationToken()
    token.cancel()
    attachment = Attachment.from_bytes(b"data", "a.wav")

    with pytest.raises(RunCancelledError):
        await ContentUploader(provider).ensure_uploaded(attachment, token)
    assert provider.uploads == []
    assert not attachment.uploaded


@pytest.mark.asyncio
async def test_cancelled_during_upload_discards_the_result() -> None:
    provider = FakeProvider()
    token = CancellationToken()
    provider.on_upload = token.cancel
    attachment = Attachment.from_bytes(b"data", "a.wav")

    with pytest.raises(RunCancelledError):
        await ContentUploader(provider).ensure_uploaded(attachment, token)
    assert len(provider.uploads) == 1
    assert not attachment.uploaded


@pytest.mark.asyncio
async def test_ensure_all_keeps_order_and_dedups_within_a_batch() -> None:
    provider = FakeProvider()
    attachments = [
        Attachment.from_bytes(b"one", "one.txt"),
        Attachment.from_bytes(b"two", "two.txt"),
        Attachment.from_bytes(b"one", "one-again.txt"),
    ]

    refs = await ContentUploader(provider).ensure_all(attachments, CancellationToken(), 4)

    assert len(provider.uploads) == 2
    assert [ref.uri for ref in refs] == ["files/1", "files/2", "files/1"]


def test_attachment_binding_is_write_once() -> None:
    attachment = Attachment.from_bytes(b"x", "x.bin")
    assert attachment.mime_type == "application/octet-stream"
    ref = ProviderRef(uri="files/1", mime_type="application/octet-stream")
    attachment.bind(ref)
    attachment.bind(ref)
    with pytest.raises(ValueError):
        attachment.bind(ProviderRef(uri="files/2", mime_type="application/octet-stream"))


class CancellingListProvider(FakeProvider):
    """Flips *token* while the listing is being walked."""

    def __init__(self, token: CancellationToken) -> None:
        super().__init__()
        self.token = token

    async def list_uploaded_files(self):
        self.token.cancel("stop requested during lookup")
        async for remote in super().list_uploaded_files():
            yield remote


class BrokenListProvider(FakeProvider):
    async def list_uploaded_files(self):
        raise ModelProviderError("listing unavailable")
        yield  # pragma: no cover


class SlowUploadProvider(FakeProvider):
    """Rejects ``bad.txt`` at once; every other upload takes a while."""

    async def upload_file(self, data, mime_type, display_name):
        if display_name == "bad.txt":
            raise UploadError("rejected bad.txt")
        await asyncio.sleep(0.2)
        return await super().upload_file(data, mime_type, display_name)


@pytest.mark.asyncio
async def test_cancelled_during_lookup_does_not_bind_the_remote_match() -> None:
    token = CancellationToken()
    provider = CancellingListProvider(token)
    await provider.upload_file(b"talk", "audio/mpeg", "talk.mp3")
    uploader = ContentUploader(provider)
    attachment = Attachment.from_bytes(b"talk", "talk.mp3")

    with pytest.raises(RunCancelledError, match="during lookup"):
        await uploader.ensure_uploaded(attachment, token)

    assert not attachment.uploaded
    assert len(provider.uploads) == 1
    assert uploader.tracker.steps[-1].status == StepStatus.ERROR


@pytest.mark.asyncio
async def test_listing_failure_marks_the_step_as_error() -> None:
    uploader = ContentUploader(BrokenListProvider())
    attachment = Attachment.from_bytes(b"talk", "talk.mp3")

    with pytest.raises(ModelProviderError):
        await uploader.ensure_uploaded(attachment, CancellationToken())

    step = uploader.tracker.steps[-1]
    assert step.status == StepStatus.ERROR
    assert step.caption == "listing unavailable"


@pytest.mark.asyncio
async def test_failed_batch_cancels_sibling_uploads() -> None:
    provider = SlowUploadProvider()
    uploader = ContentUploader(provider)
    attachments = [
        Attachment.from_bytes(b"good", "good.txt"),
        Attachment.from_bytes(b"bad", "bad.txt"),
    ]

    with pytest.raises(UploadError):
        await uploader.ensure_all(attachments, CancellationToken(), 4)
    await asyncio.sleep(0.3)

    assert provider.uploads == []
    assert not attachments[0].uploaded
    assert {step.status for step in uploader.tracker.steps} == {StepStatus.ERROR}
