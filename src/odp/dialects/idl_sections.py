"""iDL section-numbered dialect (folder-scoped: iDLADP, iDLADMM).

Layout:

- level-1 section 4 ("Operational Needs") holds ONs, section 5
  ("Operational Requirements") holds ORs; other level-1 sections are skipped;
- below them, headings are folders until a section carries a
  ``Statement:`` paragraph, which makes it an entity; deeper entity sections
  refine it.

Paragraphs usually arrive as HTML fragments, so markers are detected on the
visible text and rich-text fields are rebuilt from the HTML of the paragraphs
that belong to them. Reference markers: ``Implemented ONs:`` /
``Implemented Operational Needs:`` (ORs), ``Dependencies:`` (OR -> OR) and
``ConOPS Reference(s):``.

Every path starts with the folder, which is also the root of absolute
``/A/Title`` references.
"""

from __future__ import annotations

import html as html_lib
import logging
import re

from odp.dialects.base import Dialect, ReferencePolicy
from odp.dialects.fields import missing_field, plain_text
from odp.external_ids import derive_simple_id
from odp.html_delta import html_to_delta, html_to_text, looks_like_html
from odp.references import split_colon_note
from odp.rich_text import delta_to_markup
from odp.types import DocumentNode, DocumentReference, Entity, EntityType, ReferenceDocument
from odp.walker import Classification, Extraction, WalkContext, strip_numbering

log = logging.getLogger("odp.dialects.idl_sections")

DRG = "IDL"
FOLDERS: tuple[str, ...] = ("iDLADP", "iDLADMM")

IDL_CONOPS = ReferenceDocument(
    name="iDL ConOPS",
    external_id=derive_simple_id("document", "iDL ConOPS"),
    version="2.1",
    description="Integrated Data Layer (iDL) - Concept of Operations (CONOPS)",
    url="https://www.eurocontrol.int/publication/integrated-data-layer-idl-concept-operations-conops",
)

_STATEMENT = "statement:"
_RICH_MARKERS: tuple[tuple[str, str], ...] = (
    ("statement:", "statement"),
    ("rationale:", "rationale"),
    ("flow examples:", "flows"),
    ("flow examples", "flows"),
    ("flow example:", "flows"),
    ("flow example", "flows"),
    ("flows:", "flows"),
    ("flow:", "flows"),
)
_LIST_MARKERS: tuple[tuple[str, str], ...] = (
    ("implemented operational needs:", "implemented_ons"),
    ("implemented ons:", "implemented_ons"),
    ("dependencies:", "dependencies"),
    ("conops references:", "conops"),
    ("conops reference:", "conops"),
)
_TERMINATORS: tuple[str, ...] = ("impact:",)
_ITEM_RE = re.compile(r"^\s*(?:[.*]{1,5}|-)\s+(.*)$")
_PLACEHOLDER_RE = re.compile(r"^<[^>]*>$")


def _visible(paragraph: str) -> str:
    return html_to_text(paragraph) if looks_like_html(paragraph) else paragraph.strip()


def _as_html(paragraph: str) -> str:
    if looks_like_html(paragraph):
        return paragraph
    return f"<p>{html_lib.escape(paragraph)}</p>"


def _strip_prefix_html(fragment: str, prefix: str) -> str:
    """Remove the first case-insensitive occurrence of ``prefix``."""
    at = fragment.lower().find(prefix)
    if at < 0:
        return fragment
    return (fragment[:at] + fragment[at + len(prefix):]).strip()


def _list_items(paragraph: str) -> list[str]:
    """List items of a paragraph, from HTML lists or ``* ``/``. ``/``- `` lines."""
    if looks_like_html(paragraph):
        text = delta_to_markup(html_to_delta(paragraph))
    else:
        text = paragraph
    items: list[str] = []
    for line in text.split("\n"):
        m = _ITEM_RE.match(line)
        if m and m.group(1).strip():
            items.append(plain_text(m.group(1)))
    return items


def _has_statement(node: DocumentNode) -> bool:
    return any(_visible(p).lower().startswith(_STATEMENT) for p in node.paragraphs)


def _root_type(node: DocumentNode) -> EntityType | None:
    number = (node.section_number or "").strip()
    if number.startswith("4"):
        return "ON"
    if number.startswith("5"):
        return "OR"
    title = strip_numbering(node.title).lower()
    if title.startswith("operational needs"):
        return "ON"
    if title.startswith("operational requirements"):
        return "OR"
    return None


def detect_entity_type(node: DocumentNode, ctx: WalkContext) -> Classification:
    if node.level == 1:
        entity_type = _root_type(node)
        if entity_type is None:
            return Classification("skip")
        return Classification("passthrough", entity_type)
    if ctx.entity_type is not None and _has_statement(node):
        return Classification("entity", ctx.entity_type)
    return Classification("folder")


def _conops_reference(item: str) -> DocumentReference | None:
    text = item.strip()
    if not text or _PLACEHOLDER_RE.match(text):
        log.debug("Skipping ConOPS placeholder %r", text)
        return None
    if text.startswith("document:"):
        return DocumentReference(*split_colon_note(text, id_colons=2))
    return DocumentReference(IDL_CONOPS.external_id, text)


def extract_fields(node: DocumentNode, ctx: WalkContext, entity_type: EntityType) -> Extraction:
    rich: dict[str, list[str]] = {"statement": [], "rationale": [], "flows": []}
    items: dict[str, list[str]] = {"implemented_ons": [], "dependencies": [], "conops": []}
    current: str | None = None

    for paragraph in node.paragraphs:
        text = _visible(paragraph)
        lowered = text.lower()
        fragment = _as_html(paragraph)
        rich_hit = next(((p, f) for p, f in _RICH_MARKERS if lowered.startswith(p)), None)
        list_hit = next((f for p, f in _LIST_MARKERS if lowered.startswith(p)), None)
        if rich_hit is not None:
            prefix, name = rich_hit
            if name == "flows" and current == "flows":
                rich["flows"].append(fragment)
            else:
                current = name
                rest = _strip_prefix_html(fragment, prefix)
                if html_to_text(rest):
                    rich[name].append(rest)
        elif list_hit is not None:
            current = list_hit
            rest = text[len(next(p for p, f in _LIST_MARKERS if lowered.startswith(p))):].strip()
            if rest:
                items[current].append(plain_text(rest))
        elif any(lowered.startswith(t) for t in _TERMINATORS):
            current = None
        elif not text:
            continue
        elif current in rich:
            rich[current].append(fragment)
        elif current in items:
            items[current].extend(_list_items(paragraph))

    def delta(name: str) -> str | None:
        return html_to_delta("".join(rich[name])) if rich[name] else None

    title = strip_numbering(node.title)
    if not title:
        return Extraction(issues=(missing_field(entity_type, "Title", node.title, ctx.path),))
    path, parent = ctx.placement
    documents = tuple(
        ref for ref in (_conops_reference(i) for i in items["conops"]) if ref is not None
    )
    entity = Entity(
        type=entity_type,
        title=title,
        external_id=ctx.entity_id(entity_type, title, path=path, parent_id=parent),
        drg=ctx.drg,
        path=path,
        parent=parent,
        statement=delta("statement"),
        rationale=delta("rationale"),
        flows=delta("flows"),
        implemented_ons=tuple(items["implemented_ons"]) if entity_type == "OR" else (),
        depends_on_requirements=tuple(items["dependencies"]) if entity_type == "OR" else (),
        document_references=documents,
    )
    return Extraction((entity,))


IDL_SECTIONS_DIALECT = Dialect(
    name="idl_sections",
    drg=DRG,
    detect_entity_type=detect_entity_type,
    extract_fields=extract_fields,
    reference_policy=ReferencePolicy(plain_as_path=True),
    reference_documents=(IDL_CONOPS,),
    folders=FOLDERS,
    folder_in_path=True,
)
