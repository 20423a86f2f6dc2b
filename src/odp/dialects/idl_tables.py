"""iDL code-marker dialect (folder-scoped: AURA, TCF, HMI, ...).

Entities are announced by bold markers followed by a code
``iDL-{ON|OR|UC}-NN-NN``, either in a run of paragraphs::

    **ON #:** iDL-ON-10-01
    **Title:** Publish airspace data
    **Need Statement:**
    ...

or in 2-column (label, value) / 4-column (label, value, label, value)
tables. The code is the external id and every entity sits at ``[folder]``;
nesting never implies refinement.

Use cases (``**UC #:**``) are not entities: their flow of actions is folded
into the flows of the ON named by ``ON Reference`` when the walk finishes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace

from odp.dialects.base import Dialect
from odp.dialects.fields import STAKEHOLDER_SYNONYMS, compose_sections, plain_text, resolve_stakeholders
from odp.rich_text import concat_deltas, markup_to_delta
from odp.types import DocumentNode, Entity, EntityType, Table, ValidationIssue
from odp.walker import Classification, Extraction, WalkContext, WalkOutcome

log = logging.getLogger("odp.dialects.idl_tables")

DRG = "IDL"
FOLDERS: tuple[str, ...] = (
    "iDLADM", "AURA", "TCF", "NET", "LoA", "IAM", "MAP", "NFR", "HMI", "TCT",
)

CODE_RE = re.compile(r"iDL-(?:ON|OR|UC)-\d{2}-\d{2}")
ON_CODE_RE = re.compile(r"iDL-ON-\d{2}-\d{2}")

ENTITY_MARKERS: dict[str, str] = {"ON #:": "ON", "OR #:": "OR", "UC #:": "UC"}
FIELD_MARKERS: dict[str, str] = {
    "Title:": "title",
    "Date:": "date",
    "Originator:": "originator",
    "Need Statement:": "statement",
    "Detailed Requirement:": "statement",
    "Rationale:": "rationale",
    "Flow of Actions:": "flow_of_actions",
    "ON Reference:": "on_reference",
    "Fit Criteria:": "fit_criteria",
    "Stakeholders:": "stakeholders",
    "Data (and other Enablers):": "data_enablers",
    "Impacted Services:": "impacted_services",
    "Opportunities/Risks:": "opportunities_risks",
    "Opportunities:": "opportunities",
    "Risks:": "risks",
    "Dependencies:": "dependencies",
    "Notes:": "notes",
}
# Use cases ride along as extras of an ON-typed extraction.
_TYPE_HINTS: dict[str, EntityType] = {"ON": "ON", "OR": "OR", "UC": "ON"}
_HEADER_PARAGRAPHS = frozenset({
    "Operational Need (ON)", "Operational Requirement (OR)", "Use Case (UC)",
})

IDL_STAKEHOLDER_SYNONYMS: dict[str, str] = {
    **STAKEHOLDER_SYNONYMS,
    "nm data management & tcf": "stakeholder:network/nm/tcf",
    "nm airspace data (ad) team": "stakeholder:network/nm/nmad",
    "nos airspace validation team": "stakeholder:network/nm/nmoc/nos_airspace_validation_team",
    "network operations (nos) airspace validation team":
        "stakeholder:network/nm/nmoc/nos_airspace_validation_team",
    "national/local environment coordinator (nec/lec)": "stakeholder:network/ansp/nec",
    "icao/scpg secretariat": "stakeholder:network/scpg",
    "icao eur/scpg secretariat": "stakeholder:network/scpg",
    "ccams operational users": "stakeholder:network/ccams_users",
    "state / fab / ansp": "stakeholder:network/ansp",
    "ansps / states code coordinators": "stakeholder:network/ansp",
    "nm surveillance data analysis (faas)": "stakeholder:network/nm",
}


@dataclass(frozen=True, slots=True)
class UseCase:
    """A use case waiting to be folded into its ON's flows."""
    code: str
    title: str
    flow_of_actions: str | None = None
    notes: str | None = None
    on_reference: str | None = None


@dataclass(slots=True)
class _Record:
    kind: str                               # ON / OR / UC
    fields: dict[str, str]


# ---------------------------------------------------------------------------
# Marker detection
# ---------------------------------------------------------------------------


def _entity_marker(text: str) -> str | None:
    for marker, kind in ENTITY_MARKERS.items():
        if f"**{marker}**" in text:
            return kind
    return None


def _field_marker(text: str) -> tuple[str, str] | None:
    for marker, name in FIELD_MARKERS.items():
        if f"**{marker}**" in text:
            return marker, name
    return None


def _node_kind(node: DocumentNode) -> str | None:
    """First entity marker in the node's paragraphs or table label cells."""
    for paragraph in node.paragraphs:
        kind = _entity_marker(paragraph)
        if kind is not None:
            return kind
    for table in node.tables:
        for row in table.rows:
            for cell in row[::2]:
                kind = _entity_marker(cell.text)
                if kind is not None:
                    return kind
    return None


def detect_entity_type(node: DocumentNode, ctx: WalkContext) -> Classification:
    kind = _node_kind(node)
    if kind is None:
        return Classification("passthrough")
    return Classification("entity", _TYPE_HINTS[kind])


# ---------------------------------------------------------------------------
# Record parsing
# ---------------------------------------------------------------------------


def parse_paragraphs(paragraphs: tuple[str, ...] | list[str]) -> list[_Record]:
    """Split a paragraph run into records at entity markers."""
    records: list[_Record] = []
    current: _Record | None = None
    field_name: str | None = None
    content: list[str] = []

    def save_field() -> None:
        if current is not None and field_name and field_name != "code" and content:
            joined = "\n".join(content).strip()
            if joined:
                current.fields[field_name] = joined
        content.clear()

    def save_record() -> None:
        save_field()
        if current is not None and current.fields.get("code"):
            records.append(current)

    for paragraph in paragraphs:
        text = paragraph.strip()
        kind = _entity_marker(text)
        if kind is not None:
            save_record()
            current = _Record(kind, {})
            m = CODE_RE.search(text)
            if m:
                current.fields["code"] = m.group(0)
            field_name = None if m else "code"
            continue
        if current is not None and field_name == "code":
            m = CODE_RE.search(text)
            if m:
                current.fields["code"] = m.group(0)
                field_name = None
                continue
        hit = _field_marker(text)
        if hit is not None and current is not None:
            save_field()
            marker, field_name = hit
            rest = text.replace(f"**{marker}**", "", 1).strip()
            if rest:
                content.append(rest)
            continue
        if current is not None and field_name and text and text not in _HEADER_PARAGRAPHS:
            content.append(text)
    save_record()
    return records


def _row_pairs(table: Table) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    four = table.width >= 4
    for row in table.rows:
        cells = [c.text.strip() for c in row]
        if four and len(cells) >= 4:
            pairs.extend([(cells[0], cells[1]), (cells[2], cells[3])])
        elif cells:
            pairs.append((cells[0], cells[1] if len(cells) > 1 else ""))
    return pairs


def parse_table(table: Table) -> _Record | None:
    """One record per table; None when it carries no entity marker + code."""
    kind: str | None = None
    fields: dict[str, str] = {}
    for label, value in _row_pairs(table):
        marker_kind = _entity_marker(label)
        if marker_kind is not None:
            kind = kind or marker_kind
            m = CODE_RE.search(value)
            if m:
                fields["code"] = m.group(0)
            continue
        hit = _field_marker(label)
        if hit is not None and value:
            fields[hit[1]] = value
    if kind is None or not fields.get("code"):
        return None
    return _Record(kind, fields)


# ---------------------------------------------------------------------------
# Record -> entity
# ---------------------------------------------------------------------------


def _is_empty(fields: dict[str, str]) -> bool:
    has_title = bool(fields.get("title", "").strip())
    has_body = bool(fields.get("statement", "").strip() or fields.get("flow_of_actions", "").strip())
    return not has_title and not has_body


def _private_notes(fields: dict[str, str], unresolved: str | None) -> str | None:
    parts: list[str] = []
    if fields.get("date"):
        parts.append(f"Date: {fields['date']}")
    if fields.get("originator"):
        parts.append(f"Originator: {fields['originator']}")
    for label, name in (
        ("Data (and other Enablers):", "data_enablers"),
        ("Impacted Services:", "impacted_services"),
        ("Dependencies:", "dependencies"),
    ):
        if fields.get(name):
            parts.append(f"{label}\n{fields[name]}")
    if unresolved:
        parts.append(f"Stakeholders:\n{unresolved}")
    return markup_to_delta("\n\n".join(parts)) if parts else None


def _to_entity(record: _Record, ctx: WalkContext) -> tuple[Entity, list[ValidationIssue]]:
    fields = record.fields
    code = fields["code"]
    entity_type: EntityType = "ON" if record.kind == "ON" else "OR"
    issues: list[ValidationIssue] = []

    stakeholders = resolve_stakeholders(
        fields.get("stakeholders"),
        synonyms=IDL_STAKEHOLDER_SYNONYMS,
    )
    for name in stakeholders.unresolved:
        issues.append(ValidationIssue(
            "warning", "unresolved_stakeholder", f"{code}: Unresolved stakeholder {name!r}",
            entity_type=entity_type, external_id=code,
        ))

    statement = compose_sections(fields.get("statement"), ("Fit Criteria:", fields.get("fit_criteria")))
    rationale = compose_sections(
        fields.get("rationale"),
        ("Opportunities/Risks:", fields.get("opportunities_risks")),
        ("Opportunities:", fields.get("opportunities")),
        ("Risks:", fields.get("risks")),
    )
    implemented: tuple[str, ...] = ()
    if entity_type == "OR" and fields.get("on_reference"):
        m = ON_CODE_RE.search(fields["on_reference"])
        implemented = (m.group(0),) if m else ()

    title = plain_text(fields.get("title")) or code
    entity = Entity(
        type=entity_type,
        title=title,
        external_id=code,
        drg=ctx.drg,
        code=code,
        path=ctx.path or None,
        statement=markup_to_delta(statement) if statement else None,
        rationale=markup_to_delta(rationale) if rationale else None,
        flows=markup_to_delta(fields["flow_of_actions"]) if fields.get("flow_of_actions") else None,
        private_notes=_private_notes(fields, stakeholders.unresolved_text),
        implemented_ons=implemented,
        impacts_stakeholders=stakeholders.resolved,
    )
    return entity, issues


def extract_fields(node: DocumentNode, ctx: WalkContext, entity_type: EntityType) -> Extraction:
    records = parse_paragraphs(node.paragraphs)
    records.extend(r for r in (parse_table(t) for t in node.tables) if r is not None)

    entities: list[Entity] = []
    issues: list[ValidationIssue] = []
    use_cases: list[UseCase] = []
    for record in records:
        fields = record.fields
        if _is_empty(fields):
            log.debug("Skipping empty entity %s", fields["code"])
            continue
        if record.kind == "UC":
            use_cases.append(UseCase(
                code=fields["code"],
                title=plain_text(fields.get("title")) or fields["code"],
                flow_of_actions=fields.get("flow_of_actions"),
                notes=fields.get("notes"),
                on_reference=fields.get("on_reference"),
            ))
            continue
        entity, entity_issues = _to_entity(record, ctx)
        entities.append(entity)
        issues.extend(entity_issues)
    return Extraction(tuple(entities), tuple(issues), tuple(use_cases))


# ---------------------------------------------------------------------------
# Finalize: implemented ONs and use-case flows
# ---------------------------------------------------------------------------


def use_case_flows(use_case: UseCase) -> str:
    text = f"**{use_case.title}**\n\n"
    if use_case.flow_of_actions:
        text += use_case.flow_of_actions
    if use_case.notes:
        text += f"\n\nNOTE: {use_case.notes}"
    return markup_to_delta(text)


def finalize(outcome: WalkOutcome, ctx: WalkContext) -> WalkOutcome:
    needs = {e.external_id for e in outcome.by_type("ON")}

    for requirement in outcome.by_type("OR"):
        unknown = [code for code in requirement.implemented_ons if code not in needs]
        if unknown:
            outcome.warn(
                "unresolved_reference",
                f"OR {requirement.external_id} references unknown ON: {', '.join(unknown)}",
                entity_type="OR", title=requirement.title, external_id=requirement.external_id,
            )
            kept = tuple(c for c in requirement.implemented_ons if c in needs)
            outcome.replace_entity(replace(requirement, implemented_ons=kept))

    injected = 0
    for extra in outcome.extras:
        if not isinstance(extra, UseCase):
            continue
        if not extra.on_reference:
            outcome.warn("use_case", f"UC {extra.code} has no ON Reference", external_id=extra.code)
            continue
        m = ON_CODE_RE.search(extra.on_reference)
        target = outcome.get(m.group(0)) if m else None
        if target is None or target.type != "ON":
            outcome.warn(
                "use_case",
                f"UC {extra.code} references unknown ON: {extra.on_reference}",
                external_id=extra.code,
            )
            continue
        outcome.replace_entity(replace(target, flows=concat_deltas(target.flows, use_case_flows(extra))))
        injected += 1
        log.debug("Injected UC %s flows into ON %s", extra.code, target.external_id)

    log.info(
        "iDL tables: %d ONs, %d ORs, %d use case(s) injected",
        len(needs), len(outcome.by_type("OR")), injected,
    )
    return outcome


IDL_TABLES_DIALECT = Dialect(
    name="idl_tables",
    drg=DRG,
    detect_entity_type=detect_entity_type,
    extract_fields=extract_fields,
    finalize=finalize,
    folders=FOLDERS,
    refines_nested=False,
    folder_in_path=True,
    extract_at_root=True,
    merge_duplicates=True,
)
