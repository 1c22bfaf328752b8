"""Extraction of outbound link references from markdown text."""

import re
from typing import List
from urllib.parse import unquote

from pydantic import BaseModel

_WIKI_LINK = re.compile(r"(!?)\[\[([^\[\]]+?)\]\]")
_MD_LINK = re.compile(r"(!?)\[[^\]]*\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
_URL_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
_FENCE = re.compile(r"^(```|~~~).*?^\1", re.MULTILINE | re.DOTALL)
_INLINE_CODE = re.compile(r"`[^`\n]*`")


class LinkRef(BaseModel):
    """One outbound reference found in a document."""

    link: str
    display: str | None = None
    embed: bool = False


def _strip_subpath(target: str) -> str:
    # [[note#heading]] and [[note^block]] point at note
    return re.split(r"[#^]", target, maxsplit=1)[0].strip()


def extract_links(text: str) -> List[LinkRef]:
    """
    Return every wiki link (``[[target|alias]]``, ``![[embed]]``) and relative markdown link
    (``[text](target.md)``) in *text*, in order of appearance.  Code spans and fenced code
    blocks are ignored, as are URLs and same-document anchors.
    """
    body = _INLINE_CODE.sub("", _FENCE.sub("", text))
    found: List[tuple[int, LinkRef]] = []

    for match in _WIKI_LINK.finditer(body):
        inner = match.group(2)
        target, _, alias = inner.partition("|")
        link = _strip_subpath(target)
        if link:
            found.append(
                (
                    match.start(),
                    LinkRef(link=link, display=alias or None, embed=bool(match.group(1))),
                )
            )

    for match in _MD_LINK.finditer(body):
        target = match.group(2)
        if _URL_SCHEME.match(target) or target.startswith("#"):
            continue
        link = _strip_subpath(unquote(target))
        if link:
            found.append((match.start(), LinkRef(link=link, embed=bool(match.group(1)))))

    return [ref for _, ref in sorted(found, key=lambda item: item[0])]
