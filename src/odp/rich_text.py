"""Rich-text codec: delta documents <-> marked-up text <-> paragraph/run model.

The canonical rich-text form is a delta document: an ordered list of insert
operations serialized as ``{"ops": [{"insert": "...", "attributes": {...}}]}``.
Inline attributes (``bold``, ``italic``, ``underline``) apply to their insert
only; line attributes (``list``, ``indent``) sit on the ``"\\n"`` insert that
terminates a line and apply to that whole line.

Two surface syntaxes are supported:

- **Marked-up text**, line based: ``**bold**``, ``*italic*``, ``__underline__``,
  and list lines introduced by 1-5 marker characters (``*`` bullet, ``.``
  ordered; marker length minus one is the indent, the last character picks the
  kind so mixed nesting such as ``.*`` survives). Blank lines separate
  paragraphs.
- **Paragraph/run model**, the shape a word-processing renderer consumes:
  paragraphs of styled runs, bullet or numbered with a level. Ordered lists
  reference a numbering instance allocated from an explicit
  ``NumberingRegistry`` so independently restarting lists never share a
  counter.

Public API:
  ``parse_delta``          JSON / dict -> Result[ops, RichTextError]
  ``delta_to_json``        ops -> canonical JSON string
  ``markup_to_delta``      marked-up text -> delta JSON
  ``delta_to_markup``      delta JSON -> marked-up text
  ``delta_to_paragraphs``  delta JSON -> tuple[Paragraph, ...]
  ``paragraphs_to_delta``  tuple[Paragraph, ...] -> delta JSON
  ``text_to_delta``        plain text with ``- `` bullets -> delta JSON
  ``normalize_rich_text``  canonical comparison form ("" when empty)
  ``is_empty_rich_text``   emptiness check over all empty encodings
  ``concat_deltas``        join documents with a blank paragraph between
  ``delta_plain_text``     visible text only

Usage::

    delta = markup_to_delta("**a*b*c**")
    assert delta_to_markup(delta) == "**a*b*c**"
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, TypeAlias

import orjson

from odp.types import Err, Ok, Result

log = logging.getLogger("odp.rich_text")

ListKind: TypeAlias = str  # "bullet" | "ordered"

INLINE_MARKS: tuple[str, ...] = ("bold", "italic", "underline")
_MARK_TOKENS: dict[str, str] = {"bold": "**", "italic": "*", "underline": "__"}
_LIST_MARKER_RE = re.compile(r"^([.*]{1,5})\s+")
_MAX_INDENT = 4

ERROR_COLOR = "999999"


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DeltaOp:
    """Single insert operation. ``insert == "\\n"`` terminates a line."""
    insert: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def is_line_break(self) -> bool:
        return self.insert == "\n"

    def marks(self) -> frozenset[str]:
        return frozenset(m for m in INLINE_MARKS if self.attributes.get(m))


@dataclass(frozen=True, slots=True)
class RichTextError:
    reason: str


@dataclass(frozen=True, slots=True)
class TextRun:
    text: str
    bold: bool = False
    italic: bool = False
    underline: bool = False
    color: str | None = None    # hex without '#', error placeholders only


@dataclass(frozen=True, slots=True)
class Paragraph:
    runs: tuple[TextRun, ...] = ()
    list_kind: ListKind | None = None       # "bullet" | "ordered" | None
    level: int = 0
    numbering_reference: str | None = None  # "ordered-list-N" for ordered items
    is_spacer: bool = False

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


@dataclass(slots=True)
class NumberingRegistry:
    """Allocates ordered-list numbering instances for one document run.

    Each ordered list occurrence gets its own instance so numbering restarts
    at 1; document assembly declares one numbering definition per entry of
    ``used_instances``.
    """
    _next: int = 1
    _used: list[int] = field(default_factory=list)

    def allocate(self) -> int:
        instance = self._next
        self._next += 1
        self._used.append(instance)
        return instance

    @staticmethod
    def reference(instance: int) -> str:
        return f"ordered-list-{instance}"

    @property
    def used_instances(self) -> tuple[int, ...]:
        return tuple(sorted(self._used))


@dataclass(slots=True)
class _Line:
    runs: list[DeltaOp]
    list_kind: ListKind | None = None
    indent: int = 0

    @property
    def text(self) -> str:
        return "".join(r.insert for r in self.runs)


# ---------------------------------------------------------------------------
# Delta parsing / serialization
# ---------------------------------------------------------------------------


def parse_delta(value: Any) -> Result[tuple[DeltaOp, ...], RichTextError]:
    """Parse a delta document.

    Accepts a JSON string, a double-encoded JSON string, or an already
    decoded ``{"ops": [...]}`` dict. None and blank strings are the empty
    document. Non-string inserts (embeds) are skipped.
    """
    if value is None:
        return Ok(())
    data: Any = value
    if isinstance(value, (str, bytes)):
        if not value.strip():
            return Ok(())
        try:
            data = orjson.loads(value)
            if isinstance(data, str):
                data = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            return Err(RichTextError(f"invalid JSON: {exc}"))
    if not isinstance(data, dict):
        return Err(RichTextError(f"expected an object, got {type(data).__name__}"))
    raw_ops = data.get("ops")
    if not isinstance(raw_ops, list):
        return Err(RichTextError("missing 'ops' array"))
    ops: list[DeltaOp] = []
    for raw in raw_ops:
        if not isinstance(raw, dict):
            return Err(RichTextError(f"operation is not an object: {raw!r}"))
        insert = raw.get("insert")
        if not isinstance(insert, str):
            continue
        attrs = raw.get("attributes")
        ops.append(DeltaOp(insert, dict(attrs) if isinstance(attrs, dict) else {}))
    return Ok(tuple(ops))


def delta_to_json(ops: tuple[DeltaOp, ...] | list[DeltaOp]) -> str:
    """Serialize ops as canonical delta JSON."""
    payload = []
    for op in ops:
        item: dict[str, Any] = {"insert": op.insert}
        if op.attributes:
            item["attributes"] = op.attributes
        payload.append(item)
    return orjson.dumps({"ops": payload}).decode()


def split_line_fragments(ops: tuple[DeltaOp, ...] | list[DeltaOp]) -> list[DeltaOp]:
    """Split inserts with embedded newlines so no op spans a line break.

    Text fragments keep the inline attributes; the produced line breaks keep
    only the line attributes of the original op.
    """
    out: list[DeltaOp] = []
    for op in ops:
        if op.is_line_break or "\n" not in op.insert:
            out.append(op)
            continue
        inline = {k: v for k, v in op.attributes.items() if k in INLINE_MARKS}
        line_attrs = {k: v for k, v in op.attributes.items() if k in ("list", "indent")}
        parts = op.insert.split("\n")
        for i, part in enumerate(parts):
            if part:
                out.append(DeltaOp(part, dict(inline)))
            if i < len(parts) - 1:
                out.append(DeltaOp("\n", dict(line_attrs)))
    return out


def normalize_ops(ops: tuple[DeltaOp, ...] | list[DeltaOp]) -> list[DeltaOp]:
    """Merge adjacent text inserts with identical attributes; drop empty inserts."""
    out: list[DeltaOp] = []
    for op in split_line_fragments(ops):
        if not op.insert:
            continue
        if (
            out
            and not op.is_line_break
            and not out[-1].is_line_break
            and out[-1].attributes == op.attributes
        ):
            out[-1] = DeltaOp(out[-1].insert + op.insert, out[-1].attributes)
        else:
            out.append(op)
    return out


def _coerce_indent(value: Any) -> int:
    """Indent from a line attribute; anything non-numeric counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def _iter_lines(ops: tuple[DeltaOp, ...] | list[DeltaOp]) -> list[_Line]:
    """Group ops into lines at line-break boundaries."""
    lines: list[_Line] = []
    current: list[DeltaOp] = []
    for op in split_line_fragments(ops):
        if op.is_line_break:
            kind = op.attributes.get("list")
            if kind not in ("bullet", "ordered"):
                kind = None
            indent = _coerce_indent(op.attributes.get("indent")) if kind else 0
            lines.append(_Line(current, kind, max(0, min(indent, _MAX_INDENT))))
            current = []
        elif op.insert:
            current.append(op)
    if current:
        lines.append(_Line(current))
    return lines


def _marks_to_attrs(marks: frozenset[str] | set[str]) -> dict[str, Any]:
    return {m: True for m in INLINE_MARKS if m in marks}


# ---------------------------------------------------------------------------
# Marked-up text -> delta
# ---------------------------------------------------------------------------


def _star_run_plan(
    n: int,
    open_marks: set[str],
    rest: str,
) -> tuple[list[str], list[str], int]:
    """Decide what a run of ``n`` asterisks closes and opens.

    Candidates are every combination of closing open marks and opening closed
    ones (an open requires a matching closer later in the line). An exact fit
    wins, preferring more closes; otherwise the largest partial fit is used
    and the remainder is literal.
    """
    best: tuple[int, int, list[str], list[str]] | None = None
    bold_choices = ("close", "keep") if "bold" in open_marks else ("open", "keep")
    italic_choices = ("close", "keep") if "italic" in open_marks else ("open", "keep")
    for b in bold_choices:
        if b == "open" and "**" not in rest:
            continue
        for it in italic_choices:
            if it == "open" and "*" not in rest.replace("**", "", 1 if b == "open" else 0):
                continue
            closes = [m for m, c in (("bold", b), ("italic", it)) if c == "close"]
            opens = [m for m, c in (("bold", b), ("italic", it)) if c == "open"]
            used = sum(len(_MARK_TOKENS[m]) for m in closes + opens)
            if used > n:
                continue
            exact = 1 if used == n else 0
            rank = (exact, used if not exact else len(closes), closes, opens)
            if best is None or rank[:2] > best[:2]:
                best = rank
    if best is None:
        return [], [], n
    _, _, closes, opens = best
    used = sum(len(_MARK_TOKENS[m]) for m in closes + opens)
    return closes, opens, n - used


def _decode_inline(text: str) -> list[DeltaOp]:
    """Tokenize one line of inline markup into attributed runs."""
    ops: list[DeltaOp] = []
    open_marks: set[str] = set()
    buf: list[str] = []

    def flush() -> None:
        if buf:
            chunk = "".join(buf)
            attrs = _marks_to_attrs(open_marks)
            if ops and ops[-1].attributes == attrs:
                ops[-1] = DeltaOp(ops[-1].insert + chunk, attrs)
            else:
                ops.append(DeltaOp(chunk, attrs))
            buf.clear()

    i = 0
    while i < len(text):
        ch = text[i]
        if ch not in "*_":
            buf.append(ch)
            i += 1
            continue
        j = i
        while j < len(text) and text[j] == ch:
            j += 1
        n = j - i
        rest = text[j:]
        if ch == "*":
            closes, opens, literal = _star_run_plan(n, open_marks, rest)
        else:
            closes, opens, literal = [], [], n
            if n >= 2 and "underline" in open_marks:
                closes, literal = ["underline"], n - 2
            elif n >= 2 and "__" in rest:
                opens, literal = ["underline"], n - 2
        if literal:
            buf.append(ch * literal)
        if closes or opens:
            flush()
            open_marks.difference_update(closes)
            open_marks.update(opens)
        i = j
    flush()
    return ops


def markup_to_delta(text: str | None) -> str:
    """Decode marked-up text into delta JSON.

    Blank lines separate paragraphs and are not emitted. Each non-blank line
    produces its runs plus one line break carrying list attributes when the
    line starts with a list marker.
    """
    ops: list[DeltaOp] = []
    for raw_line in (text or "").replace("\r\n", "\n").split("\n"):
        line = raw_line.rstrip()
        if not line.strip():
            continue
        line_attrs: dict[str, Any] = {}
        m = _LIST_MARKER_RE.match(line)
        if m:
            marker = m.group(1)
            line_attrs["list"] = "ordered" if marker[-1] == "." else "bullet"
            if len(marker) > 1:
                line_attrs["indent"] = len(marker) - 1
            line = line[m.end():]
        else:
            line = line.strip()
        ops.extend(_decode_inline(line))
        ops.append(DeltaOp("\n", line_attrs))
    return delta_to_json(ops)


# ---------------------------------------------------------------------------
# Delta -> marked-up text
# ---------------------------------------------------------------------------


def _encode_runs(runs: list[DeltaOp]) -> str:
    """Encode one line's runs, keeping shared marks open across runs."""
    parts: list[str] = []
    opened: list[str] = []
    for run in runs:
        marks = run.marks()
        for mark in reversed(list(opened)):
            if mark not in marks:
                parts.append(_MARK_TOKENS[mark])
                opened.remove(mark)
        for mark in INLINE_MARKS:
            if mark in marks and mark not in opened:
                parts.append(_MARK_TOKENS[mark])
                opened.append(mark)
        parts.append(run.insert)
    for mark in reversed(opened):
        parts.append(_MARK_TOKENS[mark])
    return "".join(parts)


def _list_marker(stack: list[ListKind], kind: ListKind, indent: int) -> str:
    """Update the per-indent type stack and return the marker for this item."""
    del stack[indent + 1:]
    while len(stack) <= indent:
        stack.append(kind)
    stack[indent] = kind
    return "".join("." if k == "ordered" else "*" for k in stack[: indent + 1])


def delta_to_markup(value: Any) -> str:
    """Encode a delta document as marked-up text.

    Malformed input yields the placeholder ``[Error parsing rich text: ...]``
    rather than raising.
    """
    result = parse_delta(value)
    match result:
        case Err(error=e):
            log.warning("Cannot encode rich text: %s", e.reason)
            return f"[Error parsing rich text: {e.reason}]"
        case Ok(value=ops):
            pass
    out: list[str] = []
    stack: list[ListKind] = []
    for line in _iter_lines(ops):
        body = _encode_runs(line.runs)
        if line.list_kind:
            out.append(f"{_list_marker(stack, line.list_kind, line.indent)} {body}")
            continue
        stack.clear()
        if out and out[-1] != "":
            out.append("")
        out.append(body)
        out.append("")
    while out and out[-1] == "":
        out.pop()
    return "\n".join(out)


# ---------------------------------------------------------------------------
# Delta <-> paragraph/run model
# ---------------------------------------------------------------------------


def _error_paragraphs(reason: str) -> tuple[Paragraph, ...]:
    run = TextRun(f"[Error parsing rich text: {reason}]", italic=True, color=ERROR_COLOR)
    return (Paragraph(runs=(run,)),)


def delta_to_paragraphs(
    value: Any,
    numbering: NumberingRegistry | None = None,
    *,
    spacers: bool = True,
) -> tuple[Paragraph, ...]:
    """Encode a delta document into the paragraph/run model.

    Args:
        value: Delta JSON string or dict.
        numbering: Registry that hands out ordered-list instances. Each
            ordered list occurrence (a run of ordered lines not interrupted
            by a plain paragraph) gets a fresh instance. A private registry
            is used when omitted.
        spacers: Insert a blank spacer paragraph between successive
            paragraphs (never between items of the same list).

    Returns:
        At least one paragraph. Malformed input yields a single italic
        grey placeholder paragraph.
    """
    result = parse_delta(value)
    match result:
        case Err(error=e):
            log.warning("Cannot render rich text: %s", e.reason)
            return _error_paragraphs(e.reason)
        case Ok(value=ops):
            pass
    registry = numbering if numbering is not None else NumberingRegistry()
    paragraphs: list[Paragraph] = []
    instance: int | None = None
    prev_kind: ListKind | None = None
    for idx, line in enumerate(_iter_lines(ops)):
        runs = tuple(
            TextRun(
                run.insert,
                bold=bool(run.attributes.get("bold")),
                italic=bool(run.attributes.get("italic")),
                underline=bool(run.attributes.get("underline")),
            )
            for run in line.runs
        )
        if spacers and idx and not (line.list_kind and prev_kind):
            paragraphs.append(Paragraph(is_spacer=True))
        ref = None
        if line.list_kind == "ordered":
            if instance is None:
                instance = registry.allocate()
            ref = registry.reference(instance)
        elif line.list_kind is None:
            instance = None
        paragraphs.append(Paragraph(runs, line.list_kind, line.indent, ref))
        prev_kind = line.list_kind
    if not paragraphs:
        return (Paragraph(),)
    return tuple(paragraphs)


def paragraphs_to_delta(paragraphs: tuple[Paragraph, ...] | list[Paragraph]) -> str:
    """Decode the paragraph/run model back into delta JSON. Spacers are dropped."""
    ops: list[DeltaOp] = []
    for para in paragraphs:
        if para.is_spacer:
            continue
        for run in para.runs:
            if run.text:
                ops.append(DeltaOp(run.text, _marks_to_attrs(
                    {m for m in INLINE_MARKS if getattr(run, m)}
                )))
        line_attrs: dict[str, Any] = {}
        if para.list_kind in ("bullet", "ordered"):
            line_attrs["list"] = para.list_kind
            if para.level:
                line_attrs["indent"] = para.level
        ops.append(DeltaOp("\n", line_attrs))
    return delta_to_json(normalize_ops(ops))


# ---------------------------------------------------------------------------
# Convenience constructors and comparison helpers
# ---------------------------------------------------------------------------

_DASH_ITEM_RE = re.compile(r"^\s*[-•]\s+")


def text_to_delta(text: str | None) -> str | None:
    """Build a delta from plain text. ``- `` / bullet-dot lines become
    bullet items; other non-blank lines become paragraphs. Blank text is None."""
    if text is None or not text.strip():
        return None
    ops: list[DeltaOp] = []
    for raw in text.replace("\r\n", "\n").split("\n"):
        if not raw.strip():
            continue
        m = _DASH_ITEM_RE.match(raw)
        if m:
            ops.append(DeltaOp(raw[m.end():].strip()))
            ops.append(DeltaOp("\n", {"list": "bullet"}))
        else:
            ops.append(DeltaOp(raw.strip()))
            ops.append(DeltaOp("\n"))
    return delta_to_json(ops)


def normalize_rich_text(value: Any) -> str:
    """Canonical form used for comparison.

    None, blank text, ``{"ops": []}`` and a single bare line break all
    normalize to ``""``. Double-encoded JSON is unwrapped. A value that is
    not a delta document is compared as trimmed text.
    """
    if value is None:
        return ""
    if isinstance(value, str) and not value.strip():
        return ""
    result = parse_delta(value)
    match result:
        case Err(error=e):
            log.warning("Rich text is not a delta document (%s); comparing as text", e.reason)
            return value.strip() if isinstance(value, str) else str(value)
        case Ok(value=ops):
            pass
    ops = tuple(normalize_ops(ops))
    if not ops:
        return ""
    if len(ops) == 1 and ops[0].is_line_break and not ops[0].attributes:
        return ""
    return delta_to_json(ops)


def is_empty_rich_text(value: Any) -> bool:
    return normalize_rich_text(value) == ""


def concat_deltas(*values: str | None) -> str | None:
    """Join delta documents with a blank paragraph between them."""
    ops: list[DeltaOp] = []
    for value in values:
        if is_empty_rich_text(value):
            continue
        result = parse_delta(value)
        if isinstance(result, Err):
            log.warning("Skipping malformed rich text in concatenation: %s", result.error.reason)
            continue
        part = split_line_fragments(result.value)
        if part and not part[-1].is_line_break:
            part.append(DeltaOp("\n"))
        if ops:
            ops.append(DeltaOp("\n"))
        ops.extend(part)
    return delta_to_json(ops) if ops else None


def delta_plain_text(value: Any) -> str:
    """Visible text of a delta document (empty for malformed input)."""
    result = parse_delta(value)
    if isinstance(result, Err):
        return ""
    return "".join(op.insert for op in result.value).strip()
