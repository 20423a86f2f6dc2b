"""ASM/ATFCM spreadsheet dialect.

A single ``ON OR OC`` sheet where every row is one Operational Requirement.
The row also names the ON it implements (``ON Title:``) and the step it
belongs to (``Step``); every distinct step becomes an OC satisfying the ORs
of that step. All entities are flat (``{type}:asm_atfcm/{title}``) and cells
are plain text.

Rows sharing an ON title describe one ON: a statement, rationale or ConOPS
improvement reference that differs from what earlier rows gave is appended.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from odp.dialects.base import Dialect
from odp.dialects.fields import clean_value, resolve_stakeholders
from odp.external_ids import derive_flat_id, derive_simple_id
from odp.rich_text import text_to_delta
from odp.types import DocumentReference, Entity, ReferenceDocument
from odp.walker import WalkContext, WalkOutcome

log = logging.getLogger("odp.dialects.asm_atfcm")

DRG = "ASM_ATFCM"
SHEET = "ON OR OC"
CONOPS_PREFIX = "CONOPS Improvement reference: "
STEP_PLACEHOLDER = "TBD"

CONOPS = ReferenceDocument(
    name="ASM ATFCM ConOPS",
    external_id=derive_simple_id("document", "ASM ATFCM ConOPS"),
    description="ASM / ATFCM integration Concept of Operations",
)

ASM_ATFCM_STAKEHOLDER_SYNONYMS: dict[str, str] = {
    "nm": "stakeholder:network/nm",
    "nmoc": "stakeholder:network/nm/nmoc",
    "network manager": "stakeholder:network/nm",
    "nm b2b office": "stakeholder:network/nm",
    "woc": "stakeholder:network/nm/woc",
    "wocs": "stakeholder:network/nm/woc",
    "ansp": "stakeholder:network/ansp",
    "ansps": "stakeholder:network/ansp",
    "fmp": "stakeholder:network/ansp/fmp",
    "fmps": "stakeholder:network/ansp/fmp",
    "local fmp": "stakeholder:network/ansp/fmp",
    "local fmps": "stakeholder:network/ansp/fmp",
    "amc": "stakeholder:network/ansp/amc",
    "amcs": "stakeholder:network/ansp/amc",
    "local amc": "stakeholder:network/ansp/amc",
    "local amcs": "stakeholder:network/ansp/amc",
    "atc unit": "stakeholder:network/ansp/atc",
    "atc units": "stakeholder:network/ansp/atc",
    "air traffic control units": "stakeholder:network/ansp/atc",
    "civil/military atc units": "stakeholder:network/ansp/atc",
    "atsu": "stakeholder:network/ansp/atc",
    "atsus": "stakeholder:network/ansp/atc",
    "au": "stakeholder:network/airspace_user",
    "aus": "stakeholder:network/airspace_user",
    "airspace user": "stakeholder:network/airspace_user",
    "airspace users": "stakeholder:network/airspace_user",
    "ao": "stakeholder:network/airspace_user/ao",
    "aos": "stakeholder:network/airspace_user/ao",
    "airlines": "stakeholder:network/airspace_user/ao",
    "cfsp": "stakeholder:network/airspace_user/cfsp",
    "cfsps": "stakeholder:network/airspace_user/cfsp",
    "military": "stakeholder:network/military",
    "mil": "stakeholder:network/military",
    "mil au": "stakeholder:network/military",
    "military operational units": "stakeholder:network/military",
    "military authorities": "stakeholder:network/military",
    "system integrators": "stakeholder:network/system_integrator",
    "system developers": "stakeholder:network/system_integrator",
    "it admins": "stakeholder:network/system_integrator",
    "stakeholder it admins": "stakeholder:network/system_integrator",
    "national authority": "stakeholder:network/national_authority",
    "nsa": "stakeholder:network/national_authority",
    "easa": "stakeholder:network/easa",
}
_IGNORED_STAKEHOLDERS = ("external systems", "external users")

# (column, note label, skip placeholders)
_REQUIREMENT_NOTES: tuple[tuple[str, str, bool], ...] = (
    ("#", "#", False),
    ("Originator:", "Originator:", False),
    ("OR Code", "OR Code:", False),
    ("Dependencies:", "Dependencies:", True),
    ("Priority (Implementing Year)", "Priority (Implementing Year):", False),
    ("Data (and other Enablers):", "Data (and other Enablers):", True),
    ("Impacted Services:", "Impacted Services:", True),
    ("Remark", "Remark:", False),
)


def _cell(row: Mapping[str, Any], column: str) -> str | None:
    value = row.get(column)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _column(row: Mapping[str, Any], *names: str) -> str | None:
    """First non-empty cell among header spellings (``\\r\\n`` or ``\\n`` breaks)."""
    for name in names:
        for spelling in (name, name.replace("\r\n", "\n")):
            text = _cell(row, spelling)
            if text:
                return text
    return None


@dataclass(slots=True)
class _NeedDraft:
    """ON text gathered over every row that names it."""
    title: str
    statements: list[str] = field(default_factory=list)
    rationales: list[str] = field(default_factory=list)
    conops_notes: list[str] = field(default_factory=list)
    assigned_to: str | None = None

    def absorb(self, row: Mapping[str, Any]) -> None:
        _append_distinct(self.statements, _cell(row, "ON Statement"))
        _append_distinct(self.rationales, _cell(row, "ON Rationale"))
        note = _cell(row, "CONOPS Improvement reference")
        if note and note.lower() not in (n.lower() for n in self.conops_notes):
            self.conops_notes.append(note)
        if self.assigned_to is None:
            self.assigned_to = _cell(row, "Assigned to")

    def build(self, ctx: WalkContext) -> Entity:
        references: tuple[DocumentReference, ...] = ()
        if self.conops_notes:
            note = "\n\n".join(CONOPS_PREFIX + n for n in self.conops_notes)
            references = (DocumentReference(CONOPS.external_id, note),)
        return Entity(
            type="ON",
            title=self.title,
            external_id=ctx.entity_id("ON", self.title),
            drg=ctx.drg,
            statement=text_to_delta("\n\n".join(self.statements)),
            rationale=text_to_delta("\n\n".join(self.rationales)),
            private_notes=text_to_delta(f"Assigned to: {self.assigned_to}") if self.assigned_to else None,
            document_references=references,
        )


def _append_distinct(parts: list[str], text: str | None) -> None:
    if text and text not in parts:
        parts.append(text)


def _with_section(base: str | None, label: str, body: str | None) -> str | None:
    """Plain-text ``base`` followed by ``label`` and ``body``; needs a base."""
    if not base:
        return None
    body = clean_value(body)
    return f"{base}\n\n{label}\n\n{body}" if body else base


def requirement_notes(row: Mapping[str, Any]) -> str | None:
    parts: list[str] = []
    for column, label, skip_placeholders in _REQUIREMENT_NOTES:
        value = _cell(row, column)
        if skip_placeholders:
            value = clean_value(value)
        if value:
            parts.append(f"{label} {value}")
    return "\n\n".join(parts) if parts else None


def _requirement(row: Mapping[str, Any], ctx: WalkContext, need_id: str | None) -> Entity | None:
    title = _cell(row, "OR Title:")
    if not title:
        return None
    stakeholders = resolve_stakeholders(
        _cell(row, "Stakeholders:"),
        split_pattern=r"[,;/]",
        synonyms=ASM_ATFCM_STAKEHOLDER_SYNONYMS,
        ignore=_IGNORED_STAKEHOLDERS,
    )
    if stakeholders.unresolved:
        log.warning("Unmapped stakeholders for OR %r: %s", title, ", ".join(stakeholders.unresolved))
    statement = _with_section(
        _column(row, "Detailed requirement:\r\nStatement"),
        "Fit Criteria:",
        _column(row, "Fit Criteria: (keep it under the statement)"),
    )
    rationale = _with_section(
        _cell(row, "Rationale:"),
        "Opportunities & Risks:",
        _column(row, "Opportunities & Risks:\r\n(keep)"),
    )
    return Entity(
        type="OR",
        title=title,
        external_id=ctx.entity_id("OR", title),
        drg=ctx.drg,
        statement=text_to_delta(statement),
        rationale=text_to_delta(rationale),
        private_notes=text_to_delta(requirement_notes(row)),
        implemented_ons=(need_id,) if need_id else (),
        impacts_stakeholders=stakeholders.resolved,
    )


def _change(step: str, requirement_ids: list[str], ctx: WalkContext) -> Entity:
    return Entity(
        type="OC",
        title=step,
        external_id=ctx.entity_id("OC", step),
        drg=ctx.drg,
        purpose=text_to_delta(STEP_PLACEHOLDER),
        details=text_to_delta(STEP_PLACEHOLDER),
        visibility="NETWORK",
        satisfies_requirements=tuple(requirement_ids),
    )


def extract_rows(sheets: Mapping[str, list[dict[str, Any]]], ctx: WalkContext) -> WalkOutcome:
    """Needs, then requirements, then one change per step."""
    drafts: dict[str, _NeedDraft] = {}
    requirements: list[Entity] = []
    steps: dict[str, list[str]] = {}

    for row in sheets.get(SHEET, ()):
        need_id: str | None = None
        need_title = _cell(row, "ON Title:")
        if need_title:
            draft = drafts.get(need_title)
            if draft is None:
                draft = drafts[need_title] = _NeedDraft(need_title)
            draft.absorb(row)
            need_id = ctx.entity_id("ON", need_title)
        else:
            log.warning("Row %s: OR without an ON title", _cell(row, "#") or "?")

        requirement = _requirement(row, ctx, need_id)
        if requirement is None:
            continue
        requirements.append(requirement)
        step = _cell(row, "Step")
        if step:
            linked = steps.setdefault(step, [])
            if requirement.external_id not in linked:
                linked.append(requirement.external_id)

    outcome = WalkOutcome()
    for draft in drafts.values():
        outcome.add_entity(draft.build(ctx))
    for requirement in requirements:
        outcome.add_entity(requirement)
    for step, requirement_ids in steps.items():
        outcome.add_entity(_change(step, requirement_ids, ctx))
    log.info(
        "Mapped %d needs, %d requirements and %d changes from %s",
        len(drafts), len(requirements), len(steps), SHEET,
    )
    return outcome


ASM_ATFCM_DIALECT = Dialect(
    name="asm_atfcm",
    drg=DRG,
    extract_rows=extract_rows,
    sheets=(SHEET,),
    derive_external_id=derive_flat_id,
    reference_documents=(CONOPS,),
)
