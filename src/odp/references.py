"""Reference-token parsing.

Reference fields in documents are written as list items, one reference per
item, in a handful of surface forms:

- ``./Title`` or ``./Sub/Title``        relative to the current entity's path
- ``/Folder/Sub/Title``                 absolute from the dialect root
- ``[ON-12] Title`` / ``[ON-12]``       coded (the code is the id)
- ``ON-12 [Title]`` / ``A/B/Title``     plain text, interpreted per dialect

Any form may carry a leading list marker (``-``, ``*``, ``.``) and a trailing
``[note]``.

A Lark grammar parses one item into a ``ParsedReference``. Turning a parsed
token into an external id is the job of ``odp.hierarchy`` (it needs the
current entity's effective path and the dialect's reference policy).

Public API:
  ``parse_reference``       one item -> ParsedReference
  ``split_reference_items`` multi-line field text -> raw items
  ``parse_annotated_item``  ``id [note]`` -> (id, note)
  ``split_colon_note``      ``document:id: note`` -> (id, note)
  ``parse_document_item``   either document style -> (id, note)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Literal, TypeAlias

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedInput

ReferenceKind: TypeAlias = Literal["relative", "absolute", "coded", "plain"]

REFERENCE_GRAMMAR = r"""
    start: MARKER? ref note?
    ?ref: relative | absolute | coded | plain
    relative: "./" SEGMENT ("/" SEGMENT)*
    absolute: "/" SEGMENT ("/" SEGMENT)*
    coded: "[" BRACKETED "]" TEXT?
    plain: PLAIN
    note: "[" BRACKETED "]"
    MARKER: /[-*.]{1,5}[ \t]+/
    PLAIN: /[^\/\[.\s*\-][^\[\n]*/
    TEXT: /[^\[\n]+/
    SEGMENT: /[^\/\[\n]+/
    BRACKETED: /[^\]\n]+/
"""

# Lazily built; prefer LALR (contextual lexer keeps the overlapping text
# terminals apart) and fall back to Earley if a runtime rejects the grammar.
_reference_parser: Any = None


def _get_reference_parser() -> Any:
    """Return the singleton Lark parser, creating it on first call."""
    global _reference_parser
    if _reference_parser is None:
        try:
            _reference_parser = Lark(REFERENCE_GRAMMAR, parser="lalr")
        except Exception:
            _reference_parser = Lark(REFERENCE_GRAMMAR, parser="earley", ambiguity="resolve")
    return _reference_parser


@dataclass(frozen=True, slots=True)
class ParsedReference:
    """Structured parse of one reference item.

    ``segments`` holds path segments with the target title last (for
    relative/absolute/plain); ``code`` is set for coded references.
    """
    kind: ReferenceKind
    segments: tuple[str, ...] = ()
    code: str | None = None
    note: str | None = None
    text: str = ""          # item text without list marker

    @property
    def title(self) -> str | None:
        if self.segments:
            return self.segments[-1]
        return None


@dataclass(frozen=True, slots=True)
class _Note:
    text: str


@v_args(inline=True)
class ReferenceTransformer(Transformer):
    """Transform a Lark parse tree into a ParsedReference."""

    def start(self, *items: Any) -> ParsedReference | None:
        ref: ParsedReference | None = None
        note: str | None = None
        for item in items:
            if isinstance(item, ParsedReference):
                ref = item
            elif isinstance(item, _Note):
                note = item.text or None
        if ref is None:
            return None
        return replace(ref, note=note)

    def relative(self, *segments: Token) -> ParsedReference:
        return ParsedReference("relative", _clean_segments(segments))

    def absolute(self, *segments: Token) -> ParsedReference:
        return ParsedReference("absolute", _clean_segments(segments))

    def coded(self, code: Token, text: Token | None = None) -> ParsedReference:
        title = str(text).strip() if text is not None else ""
        return ParsedReference("coded", (title,) if title else (), code=str(code).strip())

    def plain(self, token: Token) -> ParsedReference:
        return ParsedReference("plain", _clean_segments(str(token).split("/")))

    def note(self, token: Token) -> _Note:
        return _Note(str(token).strip())


_reference_transformer = ReferenceTransformer()

_MARKER_RE = re.compile(r"^[-*.]{1,5}[ \t]+")


def _clean_segments(parts: Any) -> tuple[str, ...]:
    return tuple(s for s in (str(p).strip() for p in parts) if s)


def parse_reference(text: str) -> ParsedReference:
    """Parse one reference item.

    Args:
        text: A single list item such as ``"- ./Child [why]"``.

    Returns:
        ParsedReference. Input the grammar cannot parse becomes a plain
        reference of the stripped text (never raises).
    """
    cleaned = " ".join(text.split())
    body = _MARKER_RE.sub("", cleaned).strip()
    if not body:
        return ParsedReference("plain", (), text="")
    try:
        tree: Any = _get_reference_parser().parse(cleaned)
        result = _reference_transformer.transform(tree)
        if isinstance(result, ParsedReference):
            return replace(result, text=body)
    except UnexpectedInput:
        pass  # not one of the structured forms
    return ParsedReference("plain", (body,), text=body)


def split_reference_items(text: str | None) -> list[str]:
    """Split a multi-line reference field into items (one per non-blank line).

    Lines without a list marker are kept as items too; ``;``-separated items
    on a single line are not split (titles may contain semicolons).
    """
    if not text:
        return []
    items: list[str] = []
    for line in text.replace("\r\n", "\n").split("\n"):
        item = _MARKER_RE.sub("", line.strip()).strip()
        if item:
            items.append(item)
    return items


def parse_annotated_item(text: str) -> tuple[str, str | None]:
    """Split ``id [note]`` into its parts. ``[CODE] title`` yields the code."""
    ref = parse_reference(text)
    if ref.kind == "coded" and ref.code:
        return ref.code, ref.note
    body = ref.text
    if ref.note is not None and "[" in body:
        body = body[: body.rfind("[")].strip()
    return body, ref.note


def split_colon_note(text: str, id_colons: int = 1) -> tuple[str, str | None]:
    """Split ``document:id: note`` after the id.

    Args:
        text: Item text.
        id_colons: Number of colons that belong to the id itself; the note
            starts after the next one. ``document:x: n`` uses 1,
            ``document:x:y: n`` uses 2.
    """
    stripped = _MARKER_RE.sub("", text.strip()).strip()
    index = -1
    for _ in range(id_colons + 1):
        index = stripped.find(":", index + 1)
        if index < 0:
            return stripped, None
    note = stripped[index + 1:].strip()
    return stripped[:index].strip(), note or None


def parse_document_item(
    text: str, style: Literal["bracket", "colon"] = "bracket", *, id_colons: int = 1,
) -> tuple[str, str | None]:
    """Document reference item in either ``id [note]`` or ``document:id: note`` style."""
    if style == "colon":
        return split_colon_note(text, id_colons=id_colons)
    return parse_annotated_item(text)
