"""
Document store adapter.

The agent core only talks to :class:`DocumentStore`.  :class:`FileSystemVault` is the
concrete adapter over a folder of markdown notes; other backends can be added by subclassing
the ABC.  All paths are vault-relative, ``/``-separated, with the root as the empty string.
"""

import logging
import posixpath
from abc import (
    ABC,
    abstractmethod,
)
from datetime import (
    datetime,
    timezone,
)
from pathlib import Path
from typing import (
    Iterable,
    List,
    Optional,
)

from pydantic import BaseModel

from notewright.common import (
    normalize_vault_path,
    parent_of,
)
from notewright.core.errors import DocumentStoreError
from notewright.store.links import (
    LinkRef,
    extract_links,
)

logger = logging.getLogger(__name__)


class Node(BaseModel):
    """A document or folder in the tree."""

    path: str
    name: str
    is_folder: bool

    @property
    def extension(self) -> str:
        return self.name.rsplit(".", 1)[-1].lower() if "." in self.name else ""


class DocumentStat(BaseModel):
    """Size and modification time of a document."""

    size: int
    modified: datetime


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class DocumentStore(ABC):
    """Capability surface over a hierarchical document tree."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Return True if a document or folder lives at *path*."""

    @abstractmethod
    async def get_node(self, path: str) -> Optional[Node]:
        """Return the node at *path*, or None."""

    @abstractmethod
    async def read(self, path: str) -> str:
        """Return the text of the document at *path*."""

    @abstractmethod
    async def read_bytes(self, path: str) -> bytes:
        """Return the raw bytes of the document at *path*."""

    @abstractmethod
    async def stat(self, path: str) -> DocumentStat:
        """Return size and modification time of the document at *path*."""

    @abstractmethod
    async def write(self, path: str, content: str) -> None:
        """Create or overwrite the document at *path*.  The parent folder must exist."""

    @abstractmethod
    async def create_folder(self, path: str) -> None:
        """Create the folder at *path*, including missing parents."""

    @abstractmethod
    async def rename(self, path: str, new_path: str) -> None:
        """Move or rename the node at *path* to *new_path*."""

    @abstractmethod
    async def list_children(self, path: str) -> List[Node]:
        """Return the direct children of the folder at *path*, unsorted."""

    @abstractmethod
    async def all_document_paths(self) -> List[str]:
        """Return the path of every document in the store, sorted."""

    async def links_of(self, path: str) -> List[LinkRef]:
        """Return the outbound link references of a markdown document."""
        if not path.lower().endswith(".md"):
            return []
        return extract_links(await self.read(path))

    async def resolve_link(self, link_text: str, from_path: str) -> Optional[Node]:
        """Resolve a link as written inside *from_path* to the document it points at."""
        resolved = resolve_link_path(link_text, from_path, await self.all_document_paths())
        if resolved is None:
            return None
        return Node(path=resolved, name=resolved.rsplit("/", 1)[-1], is_folder=False)


def resolve_link_path(
    link_text: str, from_path: str, document_paths: Iterable[str]
) -> Optional[str]:
    """
    Resolve *link_text* against *document_paths*.

    Lookup order: path relative to the source folder, path from the vault root, then a
    document with the same file name anywhere (closest to the source folder, then shortest
    path wins).  Names are compared case-insensitively and ``.md`` is implied when the link
    has no extension.
    """
    by_lower = {path.lower(): path for path in document_paths}
    target = link_text.strip().replace("\\", "/")
    if not target:
        return None
    has_extension = "." in target.rsplit("/", 1)[-1]
    candidates = [target] if has_extension else [f"{target}.md", target]

    folder = parent_of(from_path)
    for candidate in candidates:
        relative = posixpath.normpath(posixpath.join(folder, candidate)) if folder else candidate
        for option in (relative, candidate):
            hit = by_lower.get(normalize_vault_path(option).lower())
            if hit is not None:
                return hit

    for candidate in candidates:
        suffix = normalize_vault_path(candidate).lower()
        matches = [
            original
            for lowered, original in by_lower.items()
            if lowered == suffix or lowered.endswith("/" + suffix)
        ]
        if matches:
            matches.sort(
                key=lambda p: (not p.startswith(folder + "/") if folder else False, len(p), p)
            )
            return matches[0]
    return None


# ---------------------------------------------------------------------------
# Filesystem implementation
# ---------------------------------------------------------------------------
class FileSystemVault(DocumentStore):
    """
    A vault backed by a local folder.

    Dot-prefixed entries (``.obsidian``, ``.trash``, ...) are hidden from listings, like the
    editor does, but can still be written or moved into explicitly.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise DocumentStoreError(f"Vault folder does not exist: {self.root}")

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _abs(self, path: str) -> Path:
        rel = normalize_vault_path(path)
        full = (self.root / rel).resolve()
        if full != self.root and self.root not in full.parents:
            raise DocumentStoreError(f"Path escapes the vault: {path}")
        return full

    def _rel(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    def _node(self, full: Path) -> Node:
        rel = self._rel(full)
        return Node(path=rel, name=full.name if rel else "", is_folder=full.is_dir())

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def exists(self, path: str) -> bool:
        return self._abs(path).exists()

    async def get_node(self, path: str) -> Optional[Node]:
        full = self._abs(path)
        return self._node(full) if full.exists() else None

    async def read(self, path: str) -> str:
        full = self._abs(path)
        if not full.is_file():
            raise DocumentStoreError(f"File not found: {path}")
        try:
            return full.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentStoreError(f"Failed to read '{path}': {e}") from e

    async def read_bytes(self, path: str) -> bytes:
        full = self._abs(path)
        if not full.is_file():
            raise DocumentStoreError(f"File not found: {path}")
        try:
            return full.read_bytes()
        except OSError as e:
            raise DocumentStoreError(f"Failed to read '{path}': {e}") from e

    async def stat(self, path: str) -> DocumentStat:
        full = self._abs(path)
        try:
            st = full.stat()
        except OSError as e:
            raise DocumentStoreError(f"Failed to stat '{path}': {e}") from e
        return DocumentStat(
            size=st.st_size, modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
        )

    async def write(self, path: str, content: str) -> None:
        full = self._abs(path)
        if full == self.root or full.is_dir():
            raise DocumentStoreError(f"Cannot write to a folder: {path}")
        try:
            full.write_text(content, encoding="utf-8")
        except OSError as e:
            raise DocumentStoreError(f"Failed to write '{path}': {e}") from e
        logger.debug("Wrote %d characters to %s", len(content), path)

    async def create_folder(self, path: str) -> None:
        full = self._abs(path)
        try:
            full.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DocumentStoreError(f"Failed to create folder '{path}': {e}") from e

    async def rename(self, path: str, new_path: str) -> None:
        source = self._abs(path)
        target = self._abs(new_path)
        if not source.exists():
            raise DocumentStoreError(f"File not found: {path}")
        if target.exists():
            raise DocumentStoreError(f"Destination already exists: {new_path}")
        try:
            source.rename(target)
        except OSError as e:
            raise DocumentStoreError(f"Failed to move '{path}' to '{new_path}': {e}") from e
        logger.debug("Moved %s -> %s", path, new_path)

    async def list_children(self, path: str) -> List[Node]:
        full = self._abs(path)
        if not full.is_dir():
            raise DocumentStoreError(f"Not a folder: {path or '/'}")
        return [self._node(child) for child in full.iterdir() if not child.name.startswith(".")]

    async def all_document_paths(self) -> List[str]:
        paths = []
        for full in self.root.rglob("*"):
            rel = full.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts) or not full.is_file():
                continue
            paths.append(rel.as_posix())
        return sorted(paths)
