"""NM B2B dialect: marker paragraphs under ``ONs`` / ``ORs`` headings.

Layout:

- any organizational nesting of headings;
- a heading titled exactly ``ONs`` or ``ORs`` fixes the entity type of
  everything below it (and is not a path segment);
- below it, a section whose paragraphs include one starting with
  ``Statement:`` is an entity titled by its heading; deeper entity sections
  refine it; other sections are folders.

Field markers: ``Statement:``, ``Rationale:``, ``Flow:``/``Flows:``/``Flow
example(s)``, ``Implemented ONs:`` (ORs only, ``- ./Title``, ``- /Abs/Path/Title``
or ``- A/B/Title`` items) and ``References:``/``Reference:`` (``- document:id``
or ``- document:id: note``). Continuation paragraphs join with a blank line.

External ids are derived from DRG + path + title (or parent id + title). ONs
without explicit document references point at the NM B2B ConOPS, with the
organizational section as the note.
"""

from __future__ import annotations

from odp.dialects.base import Dialect, ReferencePolicy
from odp.dialects.fields import MarkerScanner, missing_field
from odp.external_ids import derive_simple_id
from odp.references import split_colon_note
from odp.rich_text import markup_to_delta
from odp.types import DocumentNode, DocumentReference, Entity, EntityType, ReferenceDocument
from odp.walker import Classification, Extraction, WalkContext

DRG = "NM_B2B"

_TYPE_SECTIONS: dict[str, EntityType] = {"ons": "ON", "ors": "OR"}
_MARKER_SEGMENTS = frozenset({"ons", "ors", "ocs", "operational needs and requirements"})

CONOPS = ReferenceDocument(
    name="NM B2B ConOPS",
    external_id=derive_simple_id("document", "NM B2B ConOPS"),
    version="2.1",
    description="NM B2B Concept of Operations",
    url="https://www.eurocontrol.int/publication/network-manager-b2b-concept-operations",
)
CIR_2021_116 = ReferenceDocument(
    name="Commission Implementing Regulation (EU) 2021/116",
    external_id=derive_simple_id("document", "Commission Implementing Regulation (EU) 2021/116"),
    url="https://eur-lex.europa.eu/legal-content/en/TXT/?uri=CELEX%3A32021R0116",
)

SCANNER = MarkerScanner({
    "Statement:": "statement",
    "Rationale:": "rationale",
    "Flows:": "flows",
    "Flow:": "flows",
    "Flow examples": "flows",
    "Flow example": "flows",
    "Implemented ONs:": "implemented_ons",
    "References:": "references",
    "Reference:": "references",
})


def _has_statement(node: DocumentNode) -> bool:
    return any(p.strip().startswith("Statement:") for p in node.paragraphs)


def detect_entity_type(node: DocumentNode, ctx: WalkContext) -> Classification:
    hint = _TYPE_SECTIONS.get(node.title.strip().lower())
    if hint is not None:
        return Classification("passthrough", hint)
    if ctx.entity_type is not None and _has_statement(node):
        return Classification("entity", ctx.entity_type)
    return Classification("folder", segment=node.title.strip())


def _organizational_section(ctx: WalkContext) -> str:
    """Ancestor headings before the nearest ``ONs``/``ORs`` marker, minus the
    level-1 heading, joined with `` / ``."""
    titles = list(ctx.section_titles)
    for i in range(len(titles) - 1, -1, -1):
        if titles[i].strip().lower() in _TYPE_SECTIONS:
            titles = titles[:i]
            break
    return " / ".join(t.strip() for t in titles[1:])


def _items(parts: list[str]) -> list[str]:
    return [p[2:].strip() for p in parts if p.startswith("- ") and p[2:].strip()]


def extract_fields(node: DocumentNode, ctx: WalkContext, entity_type: EntityType) -> Extraction:
    parts = SCANNER.scan_parts(node.paragraphs)

    def rich(name: str) -> str | None:
        text = "\n\n".join(parts.get(name, []))
        return markup_to_delta(text) if text.strip() else None

    path, parent = ctx.placement
    title = node.title.strip()
    if not title:
        return Extraction(issues=(missing_field(entity_type, "Title", node.title, ctx.path),))
    external_id = ctx.entity_id(entity_type, title, path=path, parent_id=parent)
    documents = tuple(
        DocumentReference(*split_colon_note(item, id_colons=1))
        for item in _items(parts.get("references", []))
    )
    if entity_type == "ON" and not documents:
        documents = (DocumentReference(
            CONOPS.external_id, f"Section: '{_organizational_section(ctx)}'",
        ),)
    implemented = tuple(_items(parts.get("implemented_ons", []))) if entity_type == "OR" else ()
    entity = Entity(
        type=entity_type,
        title=title,
        external_id=external_id,
        drg=ctx.drg,
        path=path,
        parent=parent,
        statement=rich("statement"),
        rationale=rich("rationale"),
        flows=rich("flows"),
        implemented_ons=implemented,
        document_references=documents,
    )
    return Extraction((entity,))


NM_B2B_DIALECT = Dialect(
    name="nm_b2b",
    drg=DRG,
    detect_entity_type=detect_entity_type,
    extract_fields=extract_fields,
    reference_policy=ReferencePolicy(plain_as_path=True, ignore_segments=_MARKER_SEGMENTS),
    reference_documents=(CONOPS, CIR_2021_116),
)
