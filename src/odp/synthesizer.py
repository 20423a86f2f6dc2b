"""Document synthesis: entity set -> structured document tree.

The output tree is the layout the standard dialect reads back, so an export
re-imports to the same entity set with codes as ids.

Layout::

    {DRG} [/ folder] Operational Needs, Requirements and Changes
    1 Operational Needs and Requirements
      1.1 [ON-1] Root need             (refinement children nested below)
      1.2 [OR-1] Root requirement
      1.3 Folder                        (ONs, ORs, then sub-folders)
    2 Operational Changes               (only when OCs exist)
      2.1 [OC-1] Change

Heading numbers come from a per-run ``HeadingNumbering``. Levels up to
``native_heading_depth`` use the native ``Heading{n}`` styles; deeper ones
get an explicit ``outline-numbering`` reference. Ordered lists inside cells
draw numbering instances from a per-run ``NumberingRegistry``.

Public API:
    HeadingNumbering      Dot-joined heading counters
    heading_style()       Style + numbering for a heading level
    DocumentSynthesizer   Entity set -> SynthesizedDocument
    synthesized_to_dict() JSON-ready export record

Usage::

    doc = DocumentSynthesizer(PipelineConfig()).synthesize(entities, drg="NM_B2B")
    save_json(synthesized_to_dict(doc), out_path)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from odp.config import MAX_HEADING_LEVEL, PipelineConfig
from odp.drafting_groups import drg_display
from odp.hierarchy import HierarchyResolver, HierarchyTree, PathNode
from odp.rich_text import NumberingRegistry, Paragraph, TextRun, delta_to_markup, delta_to_paragraphs
from odp.types import AnnotatedReference, Cell, DocumentNode, DocumentReference, Entity, Table, document_node_to_dict

log = logging.getLogger("odp.synthesizer")

OUTLINE_NUMBERING = "outline-numbering"
TITLE_SUFFIX = "Operational Needs, Requirements and Changes"


# ---------------------------------------------------------------------------
# Heading numbering
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class HeadingNumbering:
    """Per-run heading counters, one slot per level."""
    _counters: list[int] = field(default_factory=lambda: [0] * MAX_HEADING_LEVEL)

    def next(self, level: int) -> str:
        """Advance ``level``, reset deeper levels and return e.g. ``"2.1.3"``."""
        level = max(1, min(level, MAX_HEADING_LEVEL))
        self._counters[level - 1] += 1
        for deeper in range(level, MAX_HEADING_LEVEL):
            self._counters[deeper] = 0
        return ".".join(str(n) for n in self._counters[:level])


@dataclass(frozen=True, slots=True)
class HeadingStyle:
    style: str
    numbering_reference: str | None = None
    numbering_level: int | None = None      # 0-based level index in the outline numbering


def heading_style(level: int, native_depth: int = 6) -> HeadingStyle:
    level = max(1, min(level, MAX_HEADING_LEVEL))
    if level <= native_depth:
        return HeadingStyle(f"Heading{level}")
    return HeadingStyle(f"Heading{level}", OUTLINE_NUMBERING, level - 1)


@dataclass(frozen=True, slots=True)
class HeadingSpec:
    level: int
    number: str
    text: str
    style: HeadingStyle


@dataclass(frozen=True, slots=True)
class SynthesizedDocument:
    title: str
    sections: tuple[DocumentNode, ...]
    headings: tuple[HeadingSpec, ...]
    numbering_instances: tuple[int, ...] = ()


def document_title(drg: str, folder: str | None = None) -> str:
    scope = drg_display(drg) + (f" / {folder}" if folder else "")
    return f"{scope} {TITLE_SUFFIX}"


# ---------------------------------------------------------------------------
# Cell rendering
# ---------------------------------------------------------------------------


def _plain_cell(text: str | None) -> Cell:
    value = (text or "").strip()
    return Cell(value, (Paragraph((TextRun(value),)),) if value else ())


def _bullet_cell(items: Sequence[str]) -> Cell:
    if not items:
        return Cell("")
    return Cell(
        "\n".join(f"* {item}" for item in items),
        tuple(Paragraph((TextRun(item),), "bullet") for item in items),
    )


def _with_note(label: str, note: str | None) -> str:
    return f"{label} [{note}]" if note else label


class _Run:
    """State of one synthesis run: arena lookups and numbering registries."""

    def __init__(self, resolver: HierarchyResolver, config: PipelineConfig) -> None:
        self.resolver = resolver
        self.config = config
        self.headings = HeadingNumbering()
        self.numbering = NumberingRegistry()
        self.specs: list[HeadingSpec] = []

    # -- cells --------------------------------------------------------------

    def rich(self, value: str | None) -> Cell:
        if not value:
            return Cell("")
        return Cell(
            delta_to_markup(value),
            delta_to_paragraphs(value, self.numbering, spacers=self.config.paragraph_spacers),
        )

    def entity_refs(self, ids: Iterable[str]) -> Cell:
        items: list[str] = []
        for external_id in ids:
            target = self.resolver.get(external_id)
            if target is None:
                items.append(external_id)
            else:
                items.append(_with_note(target.sort_code, target.title))
        return _bullet_cell(items)

    def annotated(self, refs: Iterable[AnnotatedReference | DocumentReference]) -> Cell:
        return _bullet_cell([
            _with_note(
                r.document_external_id if isinstance(r, DocumentReference) else r.external_id,
                r.note,
            )
            for r in refs
        ])

    def field_table(self, entity: Entity) -> Table:
        rows: list[tuple[str, Cell]] = [("Code", _plain_cell(entity.sort_code))]
        match entity.type:
            case "ON":
                rows += [
                    ("Statement", self.rich(entity.statement)),
                    ("Rationale", self.rich(entity.rationale)),
                    ("References", self.annotated(entity.document_references)),
                    ("Flows", self.rich(entity.flows)),
                ]
            case "OR":
                rows += [
                    ("Statement", self.rich(entity.statement)),
                    ("Rationale", self.rich(entity.rationale)),
                    ("Flows", self.rich(entity.flows)),
                    ("Implements", self.entity_refs(entity.implemented_ons)),
                    ("Depends on Requirements", self.entity_refs(entity.depends_on_requirements)),
                    ("References", self.annotated(entity.document_references)),
                    ("Impacts Stakeholders", self.annotated(entity.impacts_stakeholders)),
                    ("Impacts Data", self.annotated(entity.impacts_data)),
                    ("Impacts Services", self.annotated(entity.impacts_services)),
                ]
            case "OC":
                rows += [
                    ("Title", _plain_cell(entity.title)),
                    ("Purpose", self.rich(entity.purpose)),
                    ("Satisfies Requirements", self.entity_refs(entity.satisfies_requirements)),
                    ("Supersedes Requirements", self.entity_refs(entity.supersedes_requirements)),
                    ("Depends on Changes", self.entity_refs(entity.depends_on_changes)),
                    ("Initial State", self.rich(entity.initial_state)),
                    ("Final State", self.rich(entity.final_state)),
                    ("Details", self.rich(entity.details)),
                    ("Visibility", _plain_cell(entity.visibility)),
                ]
        rows.append(("Private Notes", self.rich(entity.private_notes)))
        return Table(tuple((Cell(label, (Paragraph((TextRun(label, bold=True),)),)), cell)
                           for label, cell in rows))

    # -- headings -----------------------------------------------------------

    def heading(self, level: int, text: str) -> tuple[int, str]:
        level = min(level, self.config.max_heading_depth)
        number = self.headings.next(level)
        self.specs.append(HeadingSpec(
            level, number, text, heading_style(level, self.config.native_heading_depth),
        ))
        return level, number

    # -- nodes --------------------------------------------------------------

    def entity_node(self, entity: Entity, level: int, tree: HierarchyTree) -> DocumentNode:
        text = f"[{entity.sort_code}] {entity.title}"
        level, number = self.heading(level, text)
        table = self.field_table(entity)
        children = tuple(self.entity_node(c, level + 1, tree) for c in tree.children_of(entity.external_id))
        return DocumentNode(text, level, section_number=number, tables=(table,), children=children)

    def folder_node(self, folder: PathNode, level: int, tree: HierarchyTree) -> DocumentNode:
        level, number = self.heading(level, folder.name)
        children = [self.entity_node(e, level + 1, tree) for e in folder.needs]
        children += [self.entity_node(e, level + 1, tree) for e in folder.requirements]
        children += [self.folder_node(f, level + 1, tree) for f in folder.children]
        return DocumentNode(folder.name, level, section_number=number, children=tuple(children))

    def needs_requirements(self, tree: HierarchyTree) -> DocumentNode:
        title = self.config.needs_requirements_title
        _, number = self.heading(1, title)
        children = [self.entity_node(e, 2, tree) for e in tree.root_needs]
        children += [self.entity_node(e, 2, tree) for e in tree.root_requirements]
        children += [self.folder_node(f, 2, tree) for f in tree.folders]
        return DocumentNode(title, 1, section_number=number, children=tuple(children))

    def changes(self, tree: HierarchyTree) -> DocumentNode:
        title = self.config.changes_title
        _, number = self.heading(1, title)
        children = tuple(self.entity_node(e, 2, tree) for e in tree.changes)
        return DocumentNode(title, 1, section_number=number, children=children)


# ---------------------------------------------------------------------------
# Synthesizer
# ---------------------------------------------------------------------------


class DocumentSynthesizer:
    """Builds the standard-layout document for one DRG (and folder) scope."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def synthesize(
        self,
        entities: Iterable[Entity],
        *,
        drg: str,
        folder: str | None = None,
    ) -> SynthesizedDocument:
        resolver = HierarchyResolver(entities)
        tree = resolver.build_tree()
        run = _Run(resolver, self.config)

        sections = [run.needs_requirements(tree)]
        if tree.changes:
            sections.append(run.changes(tree))

        doc = SynthesizedDocument(
            title=document_title(drg, folder),
            sections=tuple(sections),
            headings=tuple(run.specs),
            numbering_instances=run.numbering.used_instances,
        )
        log.info(
            "Synthesized %r: %d entities, %d headings, %d list numbering instance(s)",
            doc.title, len(resolver), len(doc.headings), len(doc.numbering_instances),
        )
        return doc


def synthesized_to_dict(doc: SynthesizedDocument) -> dict[str, Any]:
    return {
        "title": doc.title,
        "sections": [document_node_to_dict(s) for s in doc.sections],
        "headings": [
            {
                "level": h.level,
                "number": h.number,
                "text": h.text,
                "style": h.style.style,
                "numberingReference": h.style.numbering_reference,
                "numberingLevel": h.style.numbering_level,
            }
            for h in doc.headings
        ],
        "numberingInstances": list(doc.numbering_instances),
    }
