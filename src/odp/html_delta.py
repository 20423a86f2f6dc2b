"""HTML fragment -> delta decoding.

Some extractors deliver section paragraphs as small HTML fragments (the
iDL section documents in particular). This module walks the fragment with
BeautifulSoup and emits delta ops:

- ``p``, ``div`` and headings close a line;
- ``strong``/``b``, ``em``/``i`` and ``u`` add inline marks;
- ``ul``/``ol`` nesting depth sets the list indent (depth - 1), and the
  innermost list picks bullet vs ordered;
- inside an ``li``, nested paragraphs are joined into one item with a space;
- ``<p class="list-paragraph">`` (a common Word export artefact) is a bullet;
- ``br`` ends the current line.

Whitespace is collapsed the way a browser would; entities are decoded by the
parser.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag

from odp.rich_text import DeltaOp, delta_to_json, normalize_ops

_INLINE_MARKS: dict[str, str] = {
    "strong": "bold",
    "b": "bold",
    "em": "italic",
    "i": "italic",
    "u": "underline",
}

_BLOCK_TAGS: frozenset[str] = frozenset({
    "p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "tr",
})

_WS_RE = re.compile(r"\s+")
_HTML_HINT_RE = re.compile(r"<\s*/?\s*[a-zA-Z][^>]*>")


def looks_like_html(text: str) -> bool:
    """Cheap check used by dialects that accept either HTML or plain text."""
    return bool(_HTML_HINT_RE.search(text or ""))


@dataclass(slots=True)
class _Builder:
    ops: list[DeltaOp] = field(default_factory=list)
    line: list[DeltaOp] = field(default_factory=list)

    def text(self, value: str, marks: frozenset[str]) -> None:
        value = _WS_RE.sub(" ", value)
        if not self.line:
            value = value.lstrip()
        if not value:
            return
        self.line.append(DeltaOp(value, {m: True for m in sorted(marks)}))

    def end_line(self, attrs: dict[str, Any] | None = None) -> None:
        while self.line and not self.line[-1].insert.strip():
            self.line.pop()
        if not self.line:
            return
        last = self.line[-1]
        self.line[-1] = DeltaOp(last.insert.rstrip(), last.attributes)
        self.ops.extend(self.line)
        self.ops.append(DeltaOp("\n", dict(attrs or {})))
        self.line = []


def _list_attrs(stack: tuple[str, ...]) -> dict[str, Any]:
    attrs: dict[str, Any] = {"list": stack[-1]}
    if len(stack) > 1:
        attrs["indent"] = len(stack) - 1
    return attrs


def _walk(
    node: Any,
    out: _Builder,
    marks: frozenset[str],
    lists: tuple[str, ...],
    in_item: bool,
) -> None:
    if isinstance(node, Comment):
        return
    if isinstance(node, NavigableString):
        out.text(str(node), marks)
        return
    if not isinstance(node, Tag):
        return
    name = node.name.lower()
    if name in _INLINE_MARKS:
        for child in node.children:
            _walk(child, out, marks | {_INLINE_MARKS[name]}, lists, in_item)
        return
    if name == "br":
        if in_item:
            out.text(" ", marks)
        else:
            out.end_line()
        return
    if name in ("ul", "ol"):
        if in_item:
            out.end_line(_list_attrs(lists))
        nested = lists + ("ordered" if name == "ol" else "bullet",)
        for child in node.children:
            _walk(child, out, marks, nested, False)
        return
    if name == "li":
        stack = lists or ("bullet",)
        for child in node.children:
            _walk(child, out, marks, stack, True)
        out.end_line(_list_attrs(stack))
        return
    if name in _BLOCK_TAGS:
        if in_item:
            if out.line:
                out.text(" ", marks)
            for child in node.children:
                _walk(child, out, marks, lists, True)
            return
        out.end_line()
        for child in node.children:
            _walk(child, out, marks, lists, False)
        classes = node.get("class") or []
        if name == "p" and "list-paragraph" in [c.lower() for c in classes]:
            out.end_line({"list": "bullet"})
        else:
            out.end_line()
        return
    for child in node.children:
        _walk(child, out, marks, lists, in_item)


def html_to_ops(html: str | None) -> list[DeltaOp]:
    """Decode an HTML fragment into normalized delta ops."""
    if not html or not html.strip():
        return []
    soup = BeautifulSoup(html, "html.parser")
    out = _Builder()
    for child in soup.children:
        _walk(child, out, frozenset(), (), False)
    out.end_line()
    return normalize_ops(out.ops)


def html_to_delta(html: str | None) -> str:
    """Decode an HTML fragment into delta JSON (``{"ops": []}`` when empty)."""
    return delta_to_json(html_to_ops(html))


def html_to_text(html: str | None) -> str:
    """Visible text of a fragment with block boundaries as newlines."""
    if not html:
        return ""
    return "".join(op.insert for op in html_to_ops(html)).strip()
