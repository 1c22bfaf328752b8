"""Shared fixtures: a scripted provider, a temporary vault and a run-context factory."""

import hashlib
import itertools
from typing import (
    Any,
    AsyncIterator,
    Callable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import pytest

from notewright.agent.context import RunContext
from notewright.agent.provider_interface import BaseProvider
from notewright.core.schema import (
    Message,
    Part,
    ProviderRef,
    RemoteFile,
    TextPart,
    ToolCallPart,
    TurnResponse,
)
from notewright.store.vault import FileSystemVault

_call_ids = itertools.count(1)


def tool_call(name: str, **arguments: Any) -> ToolCallPart:
    """A tool call as the model would emit it."""
    return ToolCallPart(id=f"call-{next(_call_ids)}", name=name, arguments=arguments)


def calls_turn(*calls: ToolCallPart, text: str = "") -> TurnResponse:
    return TurnResponse(text=text, tool_calls=list(calls))


def text_turn(text: str = "All done.") -> TurnResponse:
    return TurnResponse(text=text)


class FakeProvider(BaseProvider):
    """
    Provider that replays scripted responses and records every call.

    Each scripted item is either a :class:`TurnResponse` to return or an exception to raise.
    Once the script runs out, turns come back empty (a natural stop).
    """

    def __init__(self, responses: Sequence[Union[TurnResponse, Exception]] = ()) -> None:
        self.responses: List[Union[TurnResponse, Exception]] = list(responses)
        self.sent: List[List[Message]] = []
        self.tools_sent: List[List[str]] = []
        self.system_instructions: List[Optional[str]] = []
        self.uploads: List[Tuple[bytes, str, str]] = []
        self.remote_files: List[RemoteFile] = []
        self.list_calls = 0
        self.on_upload: Optional[Callable[[], None]] = None

    async def send_turn(self, history, tools, system_instruction=None) -> TurnResponse:
        self.sent.append(list(history))
        self.tools_sent.append([tool.name for tool in tools])
        self.system_instructions.append(system_instruction)
        if not self.responses:
            return TurnResponse()
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> ProviderRef:
        self.uploads.append((data, mime_type, display_name))
        uri = f"files/{len(self.uploads)}"
        self.remote_files.append(
            RemoteFile(
                name=display_name,
                uri=uri,
                mime_type=mime_type,
                sha256=hashlib.sha256(data).hexdigest(),
            )
        )
        if self.on_upload is not None:
            self.on_upload()
        return ProviderRef(uri=uri, mime_type=mime_type, name=display_name)

    async def list_uploaded_files(self) -> AsyncIterator[RemoteFile]:
        self.list_calls += 1
        for remote in list(self.remote_files):
            yield remote

    async def count_tokens(self, parts: Sequence[Part]) -> int:
        return sum(len(part.content) for part in parts if isinstance(part, TextPart))


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def vault(tmp_path) -> FileSystemVault:
    root = tmp_path / "vault"
    root.mkdir()
    return FileSystemVault(root)


@pytest.fixture
def make_ctx(vault, provider) -> Callable[..., RunContext]:
    """Factory for run contexts over the temporary vault and the fake provider."""

    def factory(**overrides: Any) -> RunContext:
        return RunContext(store=vault, provider=overrides.pop("provider", provider), **overrides)

    return factory
