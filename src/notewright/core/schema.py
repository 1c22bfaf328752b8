"""
Schema definitions for provider <-> agent <-> tool messages.

These data models serve as the contract between the model provider, the turn loop, and
individual tools.  We keep them separate from runtime logic so they can be imported anywhere
without side-effects.
"""

import hashlib
import mimetypes
from pathlib import Path
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

# ---------------------------------------------------------------------------
# Conversation parts
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    """Free text, from either side of the conversation."""

    kind: Literal["text"] = "text"
    content: str


class AttachmentRefPart(BaseModel):
    """Reference to a binary asset already stored with the provider."""

    kind: Literal["attachment_ref"] = "attachment_ref"
    uri: str
    mime_type: str


class ToolCallPart(BaseModel):
    """A call that the model wants the agent to execute."""

    kind: Literal["tool_call"] = "tool_call"
    id: str = Field(..., description="Provider-issued call id, echoed back in the result")
    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class ToolResultPart(BaseModel):
    """Output of one tool call, keyed by the call's id and name."""

    kind: Literal["tool_result"] = "tool_result"
    id: str
    name: str
    output: str
    metadata: Optional[Dict[str, Any]] = None
    is_error: bool = False


Part = Annotated[
    Union[TextPart, AttachmentRefPart, ToolCallPart, ToolResultPart],
    Field(discriminator="kind"),
]


class Message(BaseModel):
    """An ordered list of parts produced by one side of the conversation."""

    role: Literal["user", "model"]
    parts: List[Part] = Field(default_factory=list)


class TurnResponse(BaseModel):
    """Everything the model produced in one turn, once its stream has completed."""

    text: str = ""
    tool_calls: List[ToolCallPart] = Field(default_factory=list)


class ToolOutput(BaseModel):
    """What a tool handler returns."""

    output: str
    metadata: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Provider files
# ---------------------------------------------------------------------------


class ProviderRef(BaseModel):
    """Opaque URI plus mime type identifying an uploaded asset."""

    model_config = ConfigDict(frozen=True)

    uri: str
    mime_type: str
    name: Optional[str] = None


class RemoteFile(BaseModel):
    """One entry of the provider's file listing."""

    name: str
    uri: str
    mime_type: str
    sha256: Optional[str] = Field(None, description="Hex SHA-256 of the file content, if known")

    def to_ref(self) -> ProviderRef:
        return ProviderRef(uri=self.uri, mime_type=self.mime_type, name=self.name)


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

MIME_TYPES: Dict[str, str] = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "aiff": "audio/aiff",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "pdf": "application/pdf",
    "md": "text/markdown",
    "txt": "text/plain",
    "gif": "image/gif",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
}


def guess_mime_type(filename: str) -> str:
    """Map a file name to the mime type declared to the provider."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension in MIME_TYPES:
        return MIME_TYPES[extension]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


class Attachment(BaseModel):
    """
    A local blob the caller wants the model to see.

    ``provider_ref`` is written once, by the uploader, after which the attachment is
    considered uploaded.
    """

    data: bytes = Field(repr=False)
    display_name: str
    mime_type: str
    provider_ref: Optional[ProviderRef] = None

    @classmethod
    def from_bytes(
        cls, data: bytes, display_name: str, mime_type: str | None = None
    ) -> "Attachment":
        return cls(
            data=data,
            display_name=display_name,
            mime_type=mime_type or guess_mime_type(display_name),
        )

    @classmethod
    def from_path(cls, path: Path | str) -> "Attachment":
        """Read a local file into an attachment."""
        file_path = Path(path)
        return cls.from_bytes(file_path.read_bytes(), display_name=file_path.name)

    @property
    def content_hash(self) -> str:
        """Hex SHA-256 of the blob."""
        return hashlib.sha256(self.data).hexdigest()

    @property
    def uploaded(self) -> bool:
        return self.provider_ref is not None

    def bind(self, ref: ProviderRef) -> None:
        """Record where the blob lives with the provider.  Can only happen once."""
        if self.provider_ref is not None and self.provider_ref != ref:
            raise ValueError(
                f"Attachment '{self.display_name}' is already bound to {self.provider_ref.uri}"
            )
        self.provider_ref = ref
