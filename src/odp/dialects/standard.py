"""Standard layout dialect (the layout the synthesizer emits).

Two level-1 sections select the entity family:

- "Operational Needs and Requirements": ONs and ORs, mixed under
  organizational folders. A section with a field table is an entity whose
  type comes from its ``Code`` (``ON-...`` / ``OR-...``) or ``ODP Id``
  (``on:...`` / ``or:...``) row; entity sections nested below it refine it.
  Legacy "Operational Needs" / "Operational Requirements" sub-headings are
  accepted as type hints.
- "Operational Changes": every field table below is an OC.

The external id of every entity is its ``Code`` cell. Reference cells hold
``*``/``.`` list items written as ``code [title]`` or ``[CODE] title``
(entity references) and ``id [note]`` (document and impact references).
"""

from __future__ import annotations

import logging
import re

from odp.dialects.base import Dialect
from odp.dialects.fields import field_map, plain_text
from odp.references import parse_annotated_item, split_reference_items
from odp.rich_text import markup_to_delta
from odp.types import (
    AnnotatedReference,
    DocumentNode,
    DocumentReference,
    Entity,
    EntityType,
    Table,
    ValidationIssue,
)
from odp.walker import Classification, Extraction, WalkContext, strip_numbering

log = logging.getLogger("odp.dialects.standard")

NEEDS_REQUIREMENTS_SECTION = "operational needs and requirements"
CHANGES_SECTION = "operational changes"

STANDARD_DRGS: tuple[str, ...] = ("NMUI", "PERF", "TCF")

_CODE_TOKEN_RE = re.compile(r"[^A-Z0-9]+")
_CODE_PREFIX_RE = re.compile(r"^\[[^\]]+\]\s*")


def _type_from_code(table: Table) -> EntityType | None:
    """``ON-12`` / ``on:...`` / ``iDL-OR-03-01`` -> entity type."""
    fields = field_map([table])
    for key in ("code", "odp id"):
        value = plain_text(fields.get(key)).lower()
        if value.startswith("on:"):
            return "ON"
        if value.startswith("or:"):
            return "OR"
    for token in _CODE_TOKEN_RE.split(plain_text(fields.get("code")).upper()):
        if token == "ON":
            return "ON"
        if token == "OR":
            return "OR"
    return None


def _heading_title(title: str) -> str:
    if title.lstrip().startswith("["):
        return _CODE_PREFIX_RE.sub("", title.strip()).strip()
    return strip_numbering(title)


def detect_entity_type(node: DocumentNode, ctx: WalkContext) -> Classification:
    title = node.title.lower()
    if node.level == 1:
        if NEEDS_REQUIREMENTS_SECTION in title:
            return Classification("passthrough")
        if CHANGES_SECTION in title:
            return Classification("passthrough", "OC")
        log.warning("Unknown top-level section %r skipped", node.title)
        return Classification("skip")
    if ctx.entity_type == "OC":
        return Classification("entity" if node.tables else "passthrough", "OC")
    coded = _type_from_code(node.tables[0]) if node.tables else None
    if coded is not None:
        return Classification("entity", coded)
    if "operational needs" in title and "requirements" not in title:
        return Classification("entity" if node.tables else "passthrough", "ON")
    if "operational requirements" in title:
        return Classification("entity" if node.tables else "passthrough", "OR")
    if node.tables:
        if ctx.entity_type is None:
            log.warning("Could not determine entity type for section %r", node.title)
            return Classification("skip")
        return Classification("entity", ctx.entity_type)
    return Classification("folder")


def _rich(fields: dict[str, str], label: str) -> str | None:
    value = fields.get(label)
    if not value or not value.strip():
        return None
    return markup_to_delta(value)


def _items(fields: dict[str, str], label: str) -> list[str]:
    return [plain_text(i) for i in split_reference_items(fields.get(label))]


def _entity_refs(fields: dict[str, str], label: str) -> tuple[str, ...]:
    return tuple(i for i in _items(fields, label) if i)


def _annotated(fields: dict[str, str], label: str) -> tuple[AnnotatedReference, ...]:
    return tuple(AnnotatedReference(*parse_annotated_item(i)) for i in _items(fields, label))


def _documents(fields: dict[str, str]) -> tuple[DocumentReference, ...]:
    return tuple(DocumentReference(*parse_annotated_item(i)) for i in _items(fields, "references"))


def extract_fields(node: DocumentNode, ctx: WalkContext, entity_type: EntityType) -> Extraction:
    entities: list[Entity] = []
    issues: list[ValidationIssue] = []
    for table in node.tables:
        if not table.rows:
            continue
        fields = field_map([table])
        title = plain_text(fields.get("title")) or _heading_title(node.title)
        code = plain_text(fields.get("code") or fields.get("odp id"))
        if not title or not code:
            missing = "Title" if not title else "Code"
            issues.append(ValidationIssue(
                "error", "missing_field",
                f"Skipping {entity_type} without {missing} field in section {node.title!r}",
                entity_type=entity_type, title=title or node.title, path=ctx.path,
            ))
            continue
        if entity_type == "OC":
            entities.append(Entity(
                type="OC", title=title, external_id=code, drg=ctx.drg, code=code,
                purpose=_rich(fields, "purpose"),
                initial_state=_rich(fields, "initial state"),
                final_state=_rich(fields, "final state"),
                details=_rich(fields, "details"),
                private_notes=_rich(fields, "private notes"),
                satisfies_requirements=_entity_refs(fields, "satisfies requirements"),
                supersedes_requirements=_entity_refs(fields, "supersedes requirements"),
                depends_on_changes=_entity_refs(fields, "depends on changes"),
                visibility=plain_text(fields.get("visibility")) or None,
            ))
            continue
        path, parent = ctx.placement
        entities.append(Entity(
            type=entity_type, title=title, external_id=code, drg=ctx.drg, code=code,
            path=path, parent=parent,
            statement=_rich(fields, "statement"),
            rationale=_rich(fields, "rationale"),
            flows=_rich(fields, "flows"),
            private_notes=_rich(fields, "private notes"),
            implemented_ons=_entity_refs(fields, "implements"),
            depends_on_requirements=_entity_refs(fields, "depends on requirements"),
            document_references=_documents(fields),
            impacts_stakeholders=_annotated(fields, "impacts stakeholders"),
            impacts_data=_annotated(fields, "impacts data"),
            impacts_services=_annotated(fields, "impacts services"),
        ))
    return Extraction(tuple(entities), tuple(issues))


def make_standard_dialect(drg: str) -> Dialect:
    return Dialect(
        name=f"standard:{drg}",
        drg=drg,
        detect_entity_type=detect_entity_type,
        extract_fields=extract_fields,
    )
