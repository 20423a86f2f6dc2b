"""Airport dialect: requirement tables in numbered sections.

Layout:

- only chapters 3 to 10 carry definitions; chapters 1 and 2 (introduction,
  summary tables) are skipped;
- a section holding a 2-column table with an ``ON #`` / ``OR #`` row is an
  entity titled by its (numbering-stripped) heading, placed in the folders
  above it; nesting never implies refinement;
- a ``Use Case Title`` table that directly follows a requirement table, in
  the same section or the next one, supplies that entity's flows;
- meta sections (Introduction, Scope, Acronyms...) are not path segments.

Fields: ``Detailed Requirement`` / ``Need statement`` + ``Fit Criteria`` ->
statement; ``Rationale`` + ``Opportunities / Risks`` -> rationale; the
requirement number, ``Originator``, ``Dependencies``, ``Data (and other
Enabler)`` and ``Impacted Services`` -> private notes; ``Stakeholders``
lines written as ``Name (note)``; ``ON Reference`` carries an
``APT-ON-NN`` number resolved once every table has been read;
``Regulatory requirements`` is ``document name, note``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace

from odp.dialects.base import Dialect
from odp.dialects.fields import field_map, missing_field, plain_text
from odp.dialects.nm_b2b import CIR_2021_116
from odp.rich_text import markup_to_delta
from odp.types import (
    AnnotatedReference,
    DocumentNode,
    DocumentReference,
    Entity,
    EntityType,
    ValidationIssue,
)
from odp.walker import Classification, Extraction, WalkContext, WalkOutcome, strip_numbering

log = logging.getLogger("odp.dialects.airport")

DRG = "AIRPORT"
FIRST_CHAPTER, LAST_CHAPTER = 3, 10

META_SECTIONS: tuple[str, ...] = (
    "introduction", "purpose", "scope", "intended audience", "initial roadmap",
    "acronyms", "abbreviations",
)

AIRPORT_STAKEHOLDERS: dict[str, str] = {
    "nm": "stakeholder:network/nm",
    "ansp": "stakeholder:network/ansp",
    "nmoc": "stakeholder:network/nm/nmoc",
    "fmp": "stakeholder:network/ansp/fmp",
    "twr": "stakeholder:network/ansp/twr",
    "airport operator": "stakeholder:network/airport_operator",
    "airspace user": "stakeholder:network/airspace_user",
    "ao": "stakeholder:network/airspace_user/ao",
    "apt unit": "stakeholder:network/nm/apt_unit",
    "airport domain": "stakeholder:network/nm/airport_domain",
    "national authority": "stakeholder:network/national_authority",
    "ground handling agent": "stakeholder:network/ground_handling_agent",
    "third party supplier": "stakeholder:network/third_party_supplier",
    "surveillance data provider": "stakeholder:network/surveillance_data_provider",
}
AIRPORT_STAKEHOLDER_SYNONYMS: dict[str, str] = {
    "aircraft operator": "ao",
    "aircraft operators": "ao",
    "ansps": "ansp",
    "airport operators": "airport operator",
    "caa": "national authority",
    "national authority / caa": "national authority",
    "gha": "ground handling agent",
}
# Names a run-together stakeholder cell is split on, longest first.
_STAKEHOLDER_KEYWORDS: tuple[str, ...] = tuple(sorted(
    (
        "NMOC", "ANSP", "FMP", "Airport Operator", "Aircraft Operator", "Airspace User",
        "APT Unit", "Airport Domain", "National Authority", "Ground Handling Agent",
        "Third Party Supplier", "Surveillance Data Provider", "TWR", "AO", "CAA",
    ),
    key=len,
    reverse=True,
))
_RUN_TOGETHER_MIN = 30

DOCUMENT_SYNONYMS: dict[str, str] = {
    "cp1 regulation 2021/116": CIR_2021_116.name.lower(),
}
DOCUMENTS: dict[str, str] = {CIR_2021_116.name.lower(): CIR_2021_116.external_id}

_NUMBER_KEYS: dict[str, EntityType] = {"or #": "OR", "or#": "OR", "on #": "ON", "on#": "ON"}
_USE_CASE_KEY = "use case title"
_ON_NUMBER_RE = re.compile(r"[A-Z]+-ON-[\d-]+")
_CHAPTER_RE = re.compile(r"^\s*(\d+)")
_STAKEHOLDER_SPLIT_RE = re.compile(r"\n|\s{2,}")
_NAME_NOTE_RE = re.compile(r"^([^(]+?)(?:\s*(\(.+\)))?$")


@dataclass(frozen=True, slots=True)
class RequirementTable:
    """Marks where a requirement table was read, for use-case pairing."""
    external_id: str
    number: str


@dataclass(frozen=True, slots=True)
class UseCaseTable:
    title: str | None
    flow_of_actions: str | None

    @property
    def flows(self) -> str | None:
        parts = [p for p in (self.title, self.flow_of_actions) if p]
        return "\n\n".join(parts) if parts else None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def chapter(node: DocumentNode) -> int | None:
    """Top-level section number from ``section_number`` or the title prefix."""
    m = _CHAPTER_RE.match(node.section_number or node.title or "")
    return int(m.group(1)) if m else None


def requirement_type(fields: dict[str, str]) -> EntityType | None:
    """``ON`` / ``OR`` when the parsed table carries a requirement number."""
    for key, entity_type in _NUMBER_KEYS.items():
        if fields.get(key):
            return entity_type
    return None


def is_use_case(fields: dict[str, str]) -> bool:
    return requirement_type(fields) is None and bool(fields.get(_USE_CASE_KEY))


def is_meta_section(title: str) -> bool:
    lowered = title.lower()
    return any(meta in lowered for meta in META_SECTIONS)


def detect_entity_type(node: DocumentNode, ctx: WalkContext) -> Classification:
    number = chapter(node)
    if node.level == 1 and number is not None and not FIRST_CHAPTER <= number <= LAST_CHAPTER:
        return Classification("skip")
    if number is None or FIRST_CHAPTER <= number <= LAST_CHAPTER:
        tables = [field_map([t]) for t in node.tables]
        for fields in tables:
            entity_type = requirement_type(fields)
            if entity_type is not None:
                return Classification("entity", entity_type)
        if any(is_use_case(fields) for fields in tables):
            return Classification("entity", "ON")        # use case only: flows for the previous table
    if is_meta_section(node.title):
        return Classification("passthrough")
    return Classification("folder")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _split_run_together(text: str) -> list[str]:
    names: list[str] = []
    remaining = text.strip()
    while remaining:
        for keyword in _STAKEHOLDER_KEYWORDS:
            m = re.match(rf"({re.escape(keyword)}(?:\s*\([^)]+\))?)(?:\s+|$)", remaining, re.IGNORECASE)
            if m:
                names.append(m.group(1).strip())
                remaining = remaining[m.end():].strip()
                break
        else:
            space = remaining.find(" ")
            if space < 0:
                break
            remaining = remaining[space + 1:].strip()
    return names


def parse_stakeholders(text: str | None) -> tuple[tuple[AnnotatedReference, ...], tuple[str, ...]]:
    """``Name (note)`` lines -> (references keeping the note, unknown names)."""
    if not text:
        return (), ()
    lines = [plain_text(s) for s in _STAKEHOLDER_SPLIT_RE.split(text)]
    lines = [s for s in lines if s]
    if len(lines) == 1 and len(lines[0]) > _RUN_TOGETHER_MIN:
        lines = _split_run_together(lines[0])
    resolved: list[AnnotatedReference] = []
    unknown: list[str] = []
    for line in lines:
        m = _NAME_NOTE_RE.match(line)
        if not m:
            continue
        name, note = m.group(1).strip(), m.group(2)
        canonical = AIRPORT_STAKEHOLDER_SYNONYMS.get(name.lower(), name.lower())
        external_id = AIRPORT_STAKEHOLDERS.get(canonical)
        if external_id is None:
            unknown.append(name)
        else:
            resolved.append(AnnotatedReference(external_id, note.strip() if note else None))
    return tuple(resolved), tuple(unknown)


def parse_regulatory_reference(text: str | None) -> DocumentReference | None:
    """``CP1 Regulation 2021/116, Article 3`` -> reference to the known document."""
    if not text or not text.strip():
        return None
    name, _, note = (p.strip() for p in plain_text(text).partition(","))
    canonical = DOCUMENT_SYNONYMS.get(name.lower(), name.lower())
    external_id = DOCUMENTS.get(canonical)
    if external_id is None:
        log.warning("Unknown regulatory document %r", name)
        return None
    return DocumentReference(external_id, note or None)


def _labelled(fields: dict[str, str], base: str, *sections: tuple[str, str]) -> str | None:
    text = fields.get(base, "")
    for label, key in sections:
        if fields.get(key):
            text += f"\n\n**{label}**\n{fields[key]}"
    return text.strip() or None


def _notes(fields: dict[str, str], number: str) -> str:
    text = f"Requirement ID: {number}"
    for label, key in (
        ("Originator:", "originator"),
        ("Dependencies:", "dependencies"),
        ("Data and Enablers:", "data (and other enabler)"),
        ("Impacted Services:", "impacted services"),
    ):
        if fields.get(key):
            text += f"\n\n**{label}** {fields[key]}"
    return text


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _entity(
    fields: dict[str, str], entity_type: EntityType, title: str, ctx: WalkContext,
) -> tuple[Entity, RequirementTable]:
    number = plain_text(next(fields[k] for k in _NUMBER_KEYS if fields.get(k)))
    path, _parent = ctx.placement
    stakeholders, unknown = parse_stakeholders(fields.get("stakeholders"))
    if unknown:
        log.warning("Stakeholders not found for %s: %s", number, ", ".join(unknown))
    statement = _labelled(
        fields, "detailed requirement" if fields.get("detailed requirement") else "need statement",
        ("Fit Criteria:", "fit criteria"),
    )
    rationale = _labelled(fields, "rationale", ("Opportunities / Risks:", "opportunities / risks"))
    implemented: tuple[str, ...] = ()
    if entity_type == "OR" and fields.get("on reference"):
        m = _ON_NUMBER_RE.search(fields["on reference"])
        implemented = (m.group(0),) if m else ()
    document = parse_regulatory_reference(fields.get("regulatory requirements"))
    entity = Entity(
        type=entity_type,
        title=title,
        external_id=ctx.entity_id(entity_type, title, path=path),
        drg=ctx.drg,
        code=number or None,
        path=path,
        statement=markup_to_delta(statement) if statement else None,
        rationale=markup_to_delta(rationale) if rationale else None,
        private_notes=markup_to_delta(_notes(fields, number)),
        implemented_ons=implemented,
        document_references=(document,) if document else (),
        impacts_stakeholders=stakeholders,
    )
    return entity, RequirementTable(entity.external_id, number)


def extract_fields(node: DocumentNode, ctx: WalkContext, entity_type: EntityType) -> Extraction:
    title = strip_numbering(node.title)
    entities: list[Entity] = []
    extras: list[RequirementTable | UseCaseTable] = []
    issues: list[ValidationIssue] = []
    for table in node.tables:
        fields = field_map([table])
        if is_use_case(fields):
            extras.append(UseCaseTable(
                plain_text(fields.get(_USE_CASE_KEY)) or None, fields.get("flow of actions"),
            ))
            continue
        kind = requirement_type(fields)
        if kind is not None:
            if not title:
                issues.append(missing_field(kind, "Title", node.title, ctx.path))
                continue
            entity, marker = _entity(fields, kind, title, ctx)
            entities.append(entity)
            extras.append(marker)
    return Extraction(tuple(entities), tuple(issues), tuple(extras))


# ---------------------------------------------------------------------------
# Finalize: use-case flows and ON references
# ---------------------------------------------------------------------------


def finalize(outcome: WalkOutcome, ctx: WalkContext) -> WalkOutcome:
    by_number: dict[str, str] = {}
    previous: RequirementTable | None = None
    flows = 0
    for extra in outcome.extras:
        if isinstance(extra, RequirementTable):
            by_number.setdefault(extra.number, extra.external_id)
            previous = extra
        elif isinstance(extra, UseCaseTable):
            target = outcome.get(previous.external_id) if previous else None
            previous = None
            if target is None or not extra.flows:
                log.debug("Use case %r has no requirement table before it", extra.title)
                continue
            outcome.replace_entity(replace(target, flows=markup_to_delta(extra.flows)))
            flows += 1

    for requirement in outcome.by_type("OR"):
        if not requirement.implemented_ons:
            continue
        resolved = tuple(by_number[n] for n in requirement.implemented_ons if n in by_number)
        for number in requirement.implemented_ons:
            if number not in by_number:
                outcome.warn(
                    "unresolved_reference",
                    f"OR {requirement.external_id} references unknown ON: {number}",
                    entity_type="OR", title=requirement.title, external_id=requirement.external_id,
                )
        outcome.replace_entity(replace(requirement, implemented_ons=resolved))

    log.info(
        "Airport tables: %d ONs, %d ORs, %d use case flow(s)",
        len(outcome.by_type("ON")), len(outcome.by_type("OR")), flows,
    )
    return outcome


AIRPORT_DIALECT = Dialect(
    name="airport",
    drg=DRG,
    detect_entity_type=detect_entity_type,
    extract_fields=extract_fields,
    finalize=finalize,
    refines_nested=False,
    reference_documents=(CIR_2021_116,),
)
