"""Core types for the ODP document codec.

Every layer of the import/export pipeline shares these types. Entities are
built fresh per run, handed off as immutable values, and never mutated in
place: any rewrite (reference normalization, use-case injection) produces a
new instance via ``dataclasses.replace``. All dataclasses use slots=True.

Type hierarchy:
  Ok[T] / Err[E]      Strict algebraic Result type
  Cell / Table        Table content of a document section
  DocumentNode        One section of a document tree (title, level, content)
  DocumentReference   Link from an entity to a reference document
  AnnotatedReference  Link to a stakeholder/data/service category with a note
  Milestone           OC milestone (wave + event types)
  Entity              ON / OR / OC with rich-text fields and references
  ReferenceDocument   Document pre-populated by a dialect
  ValidationIssue     Structured dropped-item / warning record
  ImportResult        Outcome of one import run

The ``*_to_dict`` / ``*_from_dict`` helpers at the bottom convert to and from
the camelCase wire records used by the surrounding services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeAlias, TypeVar

if TYPE_CHECKING:
    from odp.hierarchy import ReferenceReport

# ---------------------------------------------------------------------------
# Result ADT
# ---------------------------------------------------------------------------

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Success case of Result[T, E].

    Usage::

        result: Result[tuple[str, ...], str] = Ok(("Folder",))
        match result:
            case Ok(value=v): print(v)
            case Err(error=e): print(e)
    """
    value: T


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failure case of Result[T, E].

    Keeps the typed failure reason. A refinement cycle or an unparseable
    rich-text value is a signal the caller reports, not a silent None.
    """
    error: E


Result: TypeAlias = Ok[T] | Err[E]


EntityType: TypeAlias = Literal["ON", "OR", "OC"]
Severity: TypeAlias = Literal["error", "warning"]

ENTITY_TYPES: tuple[EntityType, ...] = ("ON", "OR", "OC")

# Rich-text fields in the order they are rendered.
RICH_TEXT_FIELDS: tuple[str, ...] = (
    "statement",
    "rationale",
    "flows",
    "private_notes",
    "purpose",
    "initial_state",
    "final_state",
    "details",
)

# Plain id-list reference fields.
REFERENCE_FIELDS: tuple[str, ...] = (
    "implemented_ons",
    "depends_on_requirements",
    "satisfies_requirements",
    "supersedes_requirements",
    "depends_on_changes",
)

ANNOTATED_FIELDS: tuple[str, ...] = (
    "impacts_stakeholders",
    "impacts_data",
    "impacts_services",
)


# ---------------------------------------------------------------------------
# Document structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Cell:
    """Single table cell. ``text`` is marked-up text; ``paragraphs`` is the
    rendered paragraph/run form when the cell was synthesized from rich text."""
    text: str
    paragraphs: tuple[Any, ...] = ()


@dataclass(frozen=True, slots=True)
class Table:
    rows: tuple[tuple[Cell, ...], ...]

    @property
    def width(self) -> int:
        return max((len(r) for r in self.rows), default=0)


@dataclass(frozen=True, slots=True)
class DocumentNode:
    """One section of a document tree.

    Invariants (enforced in __post_init__):
        - 1 <= level <= 9
    """
    title: str
    level: int
    section_number: str | None = None       # e.g. "4.2.1", when the source carries one
    identifier: str | None = None           # extractor-supplied section id
    paragraphs: tuple[str, ...] = ()        # marked-up text (or HTML for HTML sources)
    tables: tuple[Table, ...] = ()
    children: tuple[DocumentNode, ...] = ()

    def __post_init__(self) -> None:
        if not 1 <= self.level <= 9:
            raise ValueError(f"DocumentNode.level must be in 1..9, got {self.level}")


# ---------------------------------------------------------------------------
# Entity model
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DocumentReference:
    document_external_id: str
    note: str | None = None


@dataclass(frozen=True, slots=True)
class AnnotatedReference:
    external_id: str
    note: str | None = None


@dataclass(frozen=True, slots=True)
class Milestone:
    title: str
    wave: str | None                        # wave external id, e.g. "wave:2027"
    event_types: tuple[str, ...] = ()       # e.g. ("API_PUBLICATION",)


@dataclass(frozen=True, slots=True)
class Entity:
    """Operational Need, Requirement or Change.

    Rich-text fields hold serialized delta JSON (``{"ops": [...]}``) or None.
    Plain reference fields hold external ids once normalized; before
    normalization they may hold raw reference tokens as written in the
    source document.

    Invariants (enforced in __post_init__):
        - type is one of ON / OR / OC
        - title and external_id are non-empty
        - path and parent are mutually exclusive
    """
    type: EntityType
    title: str
    external_id: str
    drg: str
    code: str | None = None                 # document-native code (ordering, headings)
    path: tuple[str, ...] | None = None     # organizational folders
    parent: str | None = None               # external id of refinement parent
    statement: str | None = None
    rationale: str | None = None
    flows: str | None = None
    private_notes: str | None = None
    purpose: str | None = None
    initial_state: str | None = None
    final_state: str | None = None
    details: str | None = None
    implemented_ons: tuple[str, ...] = ()
    depends_on_requirements: tuple[str, ...] = ()
    satisfies_requirements: tuple[str, ...] = ()
    supersedes_requirements: tuple[str, ...] = ()
    depends_on_changes: tuple[str, ...] = ()
    document_references: tuple[DocumentReference, ...] = ()
    impacts_stakeholders: tuple[AnnotatedReference, ...] = ()
    impacts_data: tuple[AnnotatedReference, ...] = ()
    impacts_services: tuple[AnnotatedReference, ...] = ()
    visibility: str | None = None           # OC only: "NM" | "NETWORK"
    milestones: tuple[Milestone, ...] = ()  # OC only

    def __post_init__(self) -> None:
        if self.type not in ENTITY_TYPES:
            raise ValueError(f"Entity.type must be one of {ENTITY_TYPES}, got {self.type!r}")
        if not self.title.strip():
            raise ValueError("Entity.title must be non-empty")
        if not self.external_id.strip():
            raise ValueError(f"Entity.external_id must be non-empty ({self.title!r})")
        if self.path is not None and self.parent is not None:
            raise ValueError(
                f"Entity {self.external_id!r} has both path {self.path!r} and "
                f"parent {self.parent!r}; placement is one or the other"
            )

    @property
    def sort_code(self) -> str:
        """Code used for natural ordering; falls back to the external id."""
        return self.code or self.external_id


@dataclass(frozen=True, slots=True)
class ReferenceDocument:
    name: str
    external_id: str
    version: str | None = None
    description: str | None = None
    url: str | None = None


# ---------------------------------------------------------------------------
# Run outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """A dropped item or a non-fatal warning raised during a run."""
    severity: Severity
    kind: str                   # "missing_field" | "unresolved_reference" | "duplicate_id" | ...
    message: str
    entity_type: EntityType | None = None
    title: str | None = None
    path: tuple[str, ...] = ()
    external_id: str | None = None


@dataclass(frozen=True, slots=True)
class ImportResult:
    needs: tuple[Entity, ...]
    requirements: tuple[Entity, ...]
    changes: tuple[Entity, ...]
    documents: tuple[ReferenceDocument, ...] = ()
    issues: tuple[ValidationIssue, ...] = ()
    reference_report: ReferenceReport | None = None

    @property
    def entities(self) -> tuple[Entity, ...]:
        return self.needs + self.requirements + self.changes

    @property
    def errors(self) -> tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if i.severity == "error")

    @property
    def warnings(self) -> tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if i.severity == "warning")


# ---------------------------------------------------------------------------
# Wire conversion
# ---------------------------------------------------------------------------

_RICH_WIRE: dict[str, str] = {
    "statement": "statement",
    "rationale": "rationale",
    "flows": "flows",
    "private_notes": "privateNotes",
    "purpose": "purpose",
    "initial_state": "initialState",
    "final_state": "finalState",
    "details": "details",
}

_REF_WIRE: dict[str, str] = {
    "implemented_ons": "implementedONs",
    "depends_on_requirements": "dependsOnRequirements",
    "satisfies_requirements": "satisfiesRequirements",
    "supersedes_requirements": "supersedsRequirements",
    "depends_on_changes": "dependsOnChanges",
}

_ANNOTATED_WIRE: dict[str, str] = {
    "impacts_stakeholders": "impactsStakeholderCategories",
    "impacts_data": "impactsData",
    "impacts_services": "impactsServices",
}


def entity_to_dict(entity: Entity) -> dict[str, Any]:
    """Convert an Entity to its camelCase wire record (empty fields omitted)."""
    out: dict[str, Any] = {
        "type": entity.type,
        "externalId": entity.external_id,
        "title": entity.title,
        "drg": entity.drg,
    }
    if entity.code:
        out["code"] = entity.code
    if entity.path is not None:
        out["path"] = list(entity.path)
    if entity.parent is not None:
        out["refinesParents"] = [entity.parent]
    for attr, key in _RICH_WIRE.items():
        value = getattr(entity, attr)
        if value:
            out[key] = value
    for attr, key in _REF_WIRE.items():
        refs = getattr(entity, attr)
        if refs:
            out[key] = list(refs)
    if entity.document_references:
        out["documentReferences"] = [
            _drop_none({"documentExternalId": r.document_external_id, "note": r.note})
            for r in entity.document_references
        ]
    for attr, key in _ANNOTATED_WIRE.items():
        refs = getattr(entity, attr)
        if refs:
            out[key] = [_drop_none({"externalId": r.external_id, "note": r.note}) for r in refs]
    if entity.visibility:
        out["visibility"] = entity.visibility
    if entity.milestones:
        out["milestones"] = [
            _drop_none({
                "title": m.title,
                "targetDate": m.wave,
                "eventTypes": list(m.event_types),
            })
            for m in entity.milestones
        ]
    return out


def entity_from_dict(data: dict[str, Any]) -> Entity:
    """Inverse of :func:`entity_to_dict`."""
    parents = data.get("refinesParents") or []
    if len(parents) > 1:
        raise ValueError(
            f"{data.get('externalId')!r}: multiple refinement parents are not supported"
        )
    path = data.get("path")
    kwargs: dict[str, Any] = {
        "type": data["type"],
        "title": data["title"],
        "external_id": data["externalId"],
        "drg": data.get("drg", ""),
        "code": data.get("code"),
        "path": tuple(path) if path is not None else None,
        "parent": parents[0] if parents else None,
        "visibility": data.get("visibility"),
    }
    for attr, key in _RICH_WIRE.items():
        kwargs[attr] = data.get(key)
    for attr, key in _REF_WIRE.items():
        kwargs[attr] = tuple(data.get(key) or ())
    kwargs["document_references"] = tuple(
        DocumentReference(r["documentExternalId"], r.get("note"))
        for r in data.get("documentReferences") or ()
    )
    for attr, key in _ANNOTATED_WIRE.items():
        kwargs[attr] = tuple(
            AnnotatedReference(r["externalId"], r.get("note")) for r in data.get(key) or ()
        )
    kwargs["milestones"] = tuple(
        Milestone(m["title"], m.get("targetDate"), tuple(m.get("eventTypes") or ()))
        for m in data.get("milestones") or ()
    )
    return Entity(**kwargs)


def reference_document_to_dict(doc: ReferenceDocument) -> dict[str, Any]:
    return _drop_none({
        "name": doc.name,
        "externalId": doc.external_id,
        "version": doc.version,
        "description": doc.description,
        "url": doc.url,
    })


def validation_issue_to_dict(issue: ValidationIssue) -> dict[str, Any]:
    return _drop_none({
        "severity": issue.severity,
        "kind": issue.kind,
        "message": issue.message,
        "type": issue.entity_type,
        "title": issue.title,
        "path": list(issue.path) or None,
        "externalId": issue.external_id,
    })


def _paragraph_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        for key in ("html", "text", "plainText"):
            value = raw.get(key)
            if isinstance(value, str):
                return value
    return ""


def _table_from_raw(raw: Any) -> Table:
    rows_raw = raw.get("rows", []) if isinstance(raw, dict) else raw
    rows: list[tuple[Cell, ...]] = []
    for row in rows_raw or ():
        cells_raw = row.get("cells", []) if isinstance(row, dict) else row
        rows.append(tuple(Cell(_paragraph_text(c)) for c in cells_raw))
    return Table(tuple(rows))


def document_node_from_dict(data: dict[str, Any], *, level: int | None = None) -> DocumentNode:
    """Build a DocumentNode tree from the raw extractor structure.

    Accepts ``title``, ``level``, ``sectionNumber``, ``identifier``,
    ``content.paragraphs`` (strings or ``{text|plainText|html}`` objects),
    ``content.tables`` (row arrays or ``{rows}`` objects) and ``subsections``.
    Missing levels are inferred from depth.
    """
    node_level = int(data.get("level") or level or 1)
    content = data.get("content") or {}
    paragraphs = tuple(
        _paragraph_text(p) for p in content.get("paragraphs") or ()
    )
    tables = tuple(_table_from_raw(t) for t in content.get("tables") or ())
    children = tuple(
        document_node_from_dict(child, level=min(node_level + 1, 9))
        for child in data.get("subsections") or ()
    )
    return DocumentNode(
        title=str(data.get("title") or ""),
        level=node_level,
        section_number=data.get("sectionNumber") or data.get("section_number"),
        identifier=data.get("identifier") or data.get("id"),
        paragraphs=paragraphs,
        tables=tables,
        children=children,
    )


def document_node_to_dict(node: DocumentNode) -> dict[str, Any]:
    out: dict[str, Any] = {"title": node.title, "level": node.level}
    if node.section_number:
        out["sectionNumber"] = node.section_number
    if node.identifier:
        out["identifier"] = node.identifier
    content: dict[str, Any] = {}
    if node.paragraphs:
        content["paragraphs"] = list(node.paragraphs)
    if node.tables:
        content["tables"] = [
            {"rows": [[cell.text for cell in row] for row in table.rows]}
            for table in node.tables
        ]
    if content:
        out["content"] = content
    if node.children:
        out["subsections"] = [document_node_to_dict(c) for c in node.children]
    return out


def _drop_none(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}
