"""
Model provider interface for Notewright.

This module is the only place that *directly* talks to a language model.  Everything else
(turn loop, tools, uploader) stays provider-agnostic and only sees :class:`BaseProvider`.

We support two back-ends out of the box:

1. **Gemini** via its REST API (``httpx``): streamed turns, the Files API and token counting.
2. **OpenAI** via the ``openai`` SDK: streamed chat completions and the Files API.

Additional providers can be added by subclassing :class:`BaseProvider` and registering via
:func:`register_provider`.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import re
import uuid
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

import httpx

from notewright.config import settings
from notewright.core.errors import (
    ModelProviderError,
    UploadError,
)
from notewright.core.schema import (
    AttachmentRefPart,
    Message,
    Part,
    ProviderRef,
    RemoteFile,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    TurnResponse,
)

if TYPE_CHECKING:
    from notewright.tools import ToolDeclaration

logger = logging.getLogger(__name__)

LOCAL_CALL_PREFIX = "local-"


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: dict[str, Type["BaseProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["BaseProvider"]) -> Type["BaseProvider"]:
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_provider(name: str | None = None) -> "BaseProvider":
    """
    Factory that returns an instantiated provider.

    Fallback order:
    1. *name* arg
    2. ``settings.PROVIDER`` env/.env option
    3. default: ``"gemini"``
    """

    target = name or getattr(settings, "PROVIDER", "gemini")
    cls = _PROVIDER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Provider '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseProvider(ABC):
    """Abstract model provider: streamed turns, file storage and token counting."""

    @abstractmethod
    async def send_turn(
        self,
        history: Sequence[Message],
        tools: Sequence["ToolDeclaration"],
        system_instruction: str | None = None,
    ) -> TurnResponse:
        """
        Send the conversation and return the completed response.

        The provider consumes its own stream; callers see a single suspension point.

        Raises
        ------
        ModelProviderError
            On any transport or provider failure.
        """

    @abstractmethod
    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> ProviderRef:
        """Upload *data* and return where it lives.  Raises :class:`UploadError`."""

    @abstractmethod
    def list_uploaded_files(self) -> AsyncIterator[RemoteFile]:
        """Lazily iterate over the files already uploaded, fetching pages on demand."""

    @abstractmethod
    async def count_tokens(self, parts: Sequence[Part]) -> int:
        """Return the number of tokens *parts* would cost as model input."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def sanitize_json_string(content: str) -> str:
    """Clean up JSON strings returned by LLMs."""
    # Strip markdown code blocks if present
    if "```" in content:
        match = re.search(r"```(?:json)?\s*(.+?)```", content, re.DOTALL)
        if match:
            content = match.group(1).strip()

    # Remove control characters except whitespace
    content = "".join(ch for ch in content if ch >= " " or ch in "\n\r\t")

    # Keep only the outermost JSON object; braces inside strings are skipped
    open_idx = content.find("{")
    if open_idx < 0:
        return content.strip()
    depth = 0
    in_string = False
    escaped = False
    for i in range(open_idx, len(content)):
        ch = content[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[open_idx : i + 1]
    return content[open_idx:]


def new_call_id() -> str:
    """Id for a tool call the provider did not number itself."""
    return f"{LOCAL_CALL_PREFIX}{uuid.uuid4().hex[:12]}"


def decode_sha256(value: str | None) -> str | None:
    """
    Normalise a provider-reported SHA-256 to lowercase hex.

    Gemini reports hashes base64-encoded; depending on the API version the decoded bytes are
    either the raw digest or its ASCII hex form.
    """
    if not value:
        return None
    if re.fullmatch(r"[0-9a-fA-F]{64}", value):
        return value.lower()
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Unrecognised hash format: %s", value)
        return None
    if len(raw) == 32:
        return raw.hex()
    text = raw.decode("ascii", errors="ignore")
    return text.lower() if re.fullmatch(r"[0-9a-fA-F]{64}", text) else None


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------
@register_provider("gemini")
class GeminiProvider(BaseProvider):
    """Gemini REST provider using ``httpx.AsyncClient``."""

    PAGE_SIZE = 100

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.GOOGLE_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.api_key:
            raise ModelProviderError("GOOGLE_API_KEY is not set")
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"x-goog-api-key": self.api_key},
            timeout=self.timeout,
            transport=self._transport,
        )

    # ------------------------------------------------------------------ #
    # Wire format
    # ------------------------------------------------------------------ #
    @staticmethod
    def _part_to_wire(part: Part) -> Dict[str, Any]:
        if isinstance(part, TextPart):
            return {"text": part.content}
        if isinstance(part, AttachmentRefPart):
            return {"fileData": {"fileUri": part.uri, "mimeType": part.mime_type}}
        if isinstance(part, ToolCallPart):
            call: Dict[str, Any] = {"name": part.name, "args": part.arguments}
            if not part.id.startswith(LOCAL_CALL_PREFIX):
                call["id"] = part.id
            return {"functionCall": call}
        response: Dict[str, Any] = {"name": part.name, "response": {"output": part.output}}
        if not part.id.startswith(LOCAL_CALL_PREFIX):
            response["id"] = part.id
        return {"functionResponse": response}

    def _contents(self, history: Sequence[Message]) -> List[Dict[str, Any]]:
        return [
            {"role": message.role, "parts": [self._part_to_wire(part) for part in message.parts]}
            for message in history
        ]

    @staticmethod
    def _accumulate(chunk: Dict[str, Any], text: List[str], calls: List[ToolCallPart]) -> None:
        for candidate in chunk.get("candidates", [])[:1]:
            for part in candidate.get("content", {}).get("parts", []):
                if "text" in part and not part.get("thought"):
                    text.append(part["text"])
                elif "functionCall" in part:
                    fn = part["functionCall"]
                    calls.append(
                        ToolCallPart(
                            id=fn.get("id") or new_call_id(),
                            name=fn["name"],
                            arguments=fn.get("args") or {},
                        )
                    )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def send_turn(
        self,
        history: Sequence[Message],
        tools: Sequence["ToolDeclaration"],
        system_instruction: str | None = None,
    ) -> TurnResponse:
        payload: Dict[str, Any] = {
            "contents": self._contents(history),
            "generationConfig": {"temperature": settings.TEMPERATURE},
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if tools:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        {
                            "name": tool.name,
                            "description": tool.description,
                            "parametersJsonSchema": tool.parameters,
                        }
                        for tool in tools
                    ]
                }
            ]

        text: List[str] = []
        calls: List[ToolCallPart] = []
        url = f"/v1beta/models/{self.model}:streamGenerateContent"
        try:
            async with self._client() as client:
                async with client.stream("POST", url, params={"alt": "sse"}, json=payload) as resp:
                    if resp.is_error:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise ModelProviderError(f"Gemini returned {resp.status_code}: {body}")
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:") :].strip()
                        if data:
                            self._accumulate(json.loads(data), text, calls)
        except httpx.HTTPError as e:
            logger.error("Gemini request error: %s", str(e))
            raise ModelProviderError(f"Error calling Gemini: {e}") from e
        except json.JSONDecodeError as e:
            raise ModelProviderError(f"Malformed Gemini stream chunk: {e}") from e

        logger.debug("Gemini turn: %d chars, %d tool calls", len("".join(text)), len(calls))
        return TurnResponse(text="".join(text), tool_calls=calls)

    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> ProviderRef:
        boundary = f"notewright-{uuid.uuid4().hex}"
        metadata = json.dumps({"file": {"displayName": display_name, "mimeType": mime_type}})
        body = b"".join(
            [
                f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n".encode(),
                metadata.encode("utf-8"),
                f"\r\n--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n".encode(),
                data,
                f"\r\n--{boundary}--\r\n".encode(),
            ]
        )
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/upload/v1beta/files",
                    params={"uploadType": "multipart"},
                    content=body,
                    headers={
                        "Content-Type": f"multipart/related; boundary={boundary}",
                        "X-Goog-Upload-Protocol": "multipart",
                    },
                )
                resp.raise_for_status()
                uploaded = resp.json().get("file", {})
        except ModelProviderError as e:
            raise UploadError(str(e)) from e
        except httpx.HTTPError as e:
            logger.error("Gemini upload error: %s", str(e))
            raise UploadError(f"Failed to upload '{display_name}': {e}") from e
        except ValueError as e:
            raise UploadError(f"Upload of '{display_name}' returned malformed JSON: {e}") from e

        if not uploaded.get("uri"):
            raise UploadError(f"Upload of '{display_name}' returned no file uri")
        return ProviderRef(
            uri=uploaded["uri"],
            mime_type=uploaded.get("mimeType", mime_type),
            name=uploaded.get("name"),
        )

    async def list_uploaded_files(self) -> AsyncIterator[RemoteFile]:
        page_token: str | None = None
        async with self._client() as client:
            while True:
                params: Dict[str, Any] = {"pageSize": self.PAGE_SIZE}
                if page_token:
                    params["pageToken"] = page_token
                try:
                    resp = await client.get("/v1beta/files", params=params)
                    resp.raise_for_status()
                except httpx.HTTPError as e:
                    raise ModelProviderError(f"Failed to list uploaded files: {e}") from e

                try:
                    page = resp.json()
                except ValueError as e:
                    raise ModelProviderError(f"Malformed file listing page: {e}") from e
                for item in page.get("files", []):
                    yield RemoteFile(
                        name=item.get("name", ""),
                        uri=item.get("uri", ""),
                        mime_type=item.get("mimeType", "application/octet-stream"),
                        sha256=decode_sha256(item.get("sha256Hash")),
                    )
                page_token = page.get("nextPageToken")
                if not page_token:
                    return

    async def count_tokens(self, parts: Sequence[Part]) -> int:
        payload = {"contents": self._contents([Message(role="user", parts=list(parts))])}
        try:
            async with self._client() as client:
                resp = await client.post(f"/v1beta/models/{self.model}:countTokens", json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise ModelProviderError(f"Failed to count tokens: {e}") from e
        try:
            return int(resp.json().get("totalTokens", 0))
        except ValueError as e:
            raise ModelProviderError(f"Malformed countTokens reply: {e}") from e


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------
HASH_SEPARATOR = "__"


@register_provider("openai")
class OpenAIProvider(BaseProvider):
    """
    OpenAI chat-completions provider.

    The Files API does not report content hashes, so the hash is carried in the uploaded
    filename as ``<sha256>__<display name>``.
    """

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self._async_client: Any = None

    def _client(self) -> Any:
        import openai  # pylint: disable=import-outside-toplevel

        if self._async_client is None:
            self._async_client = openai.AsyncOpenAI(
                api_key=self.api_key, timeout=settings.REQUEST_TIMEOUT
            )
        return self._async_client

    @staticmethod
    def _messages(
        history: Sequence[Message], system_instruction: str | None
    ) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        for message in history:
            if message.role == "model":
                text = "".join(p.content for p in message.parts if isinstance(p, TextPart))
                calls = [
                    {
                        "id": p.id,
                        "type": "function",
                        "function": {"name": p.name, "arguments": json.dumps(p.arguments)},
                    }
                    for p in message.parts
                    if isinstance(p, ToolCallPart)
                ]
                entry: Dict[str, Any] = {"role": "assistant", "content": text or None}
                if calls:
                    entry["tool_calls"] = calls
                messages.append(entry)
                continue

            content: List[Dict[str, Any]] = []
            for part in message.parts:
                if isinstance(part, ToolResultPart):
                    messages.append(
                        {"role": "tool", "tool_call_id": part.id, "content": part.output}
                    )
                elif isinstance(part, TextPart):
                    content.append({"type": "text", "text": part.content})
                elif isinstance(part, AttachmentRefPart):
                    content.append({"type": "file", "file": {"file_id": part.uri}})
            if content:
                messages.append({"role": "user", "content": content})
        return messages

    async def send_turn(
        self,
        history: Sequence[Message],
        tools: Sequence["ToolDeclaration"],
        system_instruction: str | None = None,
    ) -> TurnResponse:
        import openai  # pylint: disable=import-outside-toplevel

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": self._messages(history, system_instruction),
            "temperature": settings.TEMPERATURE,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in tools
            ]

        text: List[str] = []
        pending: Dict[int, Dict[str, str]] = {}
        try:
            stream = await self._client().chat.completions.create(**kwargs)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    text.append(delta.content)
                for tc in delta.tool_calls or []:
                    slot = pending.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function and tc.function.name:
                        slot["name"] += tc.function.name
                    if tc.function and tc.function.arguments:
                        slot["arguments"] += tc.function.arguments
        except openai.APIError as e:
            logger.error("OpenAI request error: %s", str(e))
            raise ModelProviderError(f"Error calling OpenAI: {e}") from e

        calls = []
        for index in sorted(pending):
            slot = pending[index]
            try:
                arguments = json.loads(sanitize_json_string(slot["arguments"]) or "{}")
            except json.JSONDecodeError:
                logger.warning(
                    "Tool call %s has malformed arguments: %s", slot["name"], slot["arguments"]
                )
                arguments = {"_raw": slot["arguments"]}
            calls.append(
                ToolCallPart(id=slot["id"] or new_call_id(), name=slot["name"], arguments=arguments)
            )
        return TurnResponse(text="".join(text), tool_calls=calls)

    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> ProviderRef:
        import openai  # pylint: disable=import-outside-toplevel

        filename = f"{hashlib.sha256(data).hexdigest()}{HASH_SEPARATOR}{display_name}"
        try:
            created = await self._client().files.create(
                file=(filename, data, mime_type), purpose="user_data"
            )
        except openai.APIError as e:
            logger.error("OpenAI upload error: %s", str(e))
            raise UploadError(f"Failed to upload '{display_name}': {e}") from e
        return ProviderRef(uri=created.id, mime_type=mime_type, name=display_name)

    async def list_uploaded_files(self) -> AsyncIterator[RemoteFile]:
        import openai  # pylint: disable=import-outside-toplevel

        try:
            async for item in self._client().files.list():
                digest, sep, display = item.filename.partition(HASH_SEPARATOR)
                yield RemoteFile(
                    name=display if sep else item.filename,
                    uri=item.id,
                    mime_type="application/octet-stream",
                    sha256=decode_sha256(digest) if sep else None,
                )
        except openai.APIError as e:
            raise ModelProviderError(f"Failed to list uploaded files: {e}") from e

    async def count_tokens(self, parts: Sequence[Part]) -> int:
        # Roughly four bytes per token for English text
        total = 0
        for part in parts:
            if isinstance(part, TextPart):
                total += len(part.content.encode("utf-8"))
            elif isinstance(part, ToolResultPart):
                total += len(part.output.encode("utf-8"))
            elif isinstance(part, ToolCallPart):
                total += len(json.dumps(part.arguments).encode("utf-8"))
        return (total + 3) // 4
