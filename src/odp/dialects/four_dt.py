"""4D Trajectory (4DT) spreadsheet dialect.

Two sheets: ``Operational Needs`` (one ON per row) and ``Operational
Requirements`` (one OR per row). Every entity is flat: ids are
``{type}:4dt/{title}`` and nothing is placed in folders.

Column mapping:

- ON: ``Title``; ``Need Statement`` -> statement; ``Rationale``;
  ``Originator`` and the part of ``Source`` before ``CONOPS`` go to the
  private notes; the part after ``CONOPS`` is the note of a reference to the
  4DT ConOPS;
- OR: ``Title``; statement = ``Detailed Requirement`` + ``Fit Criteria``;
  rationale = ``Rationale`` + ``Opportunities/Risks``; ``Operational Need``
  names the implemented ON by title (case-insensitive); ``CONOPS Section``
  and ``Source Reference`` make up the ConOPS reference note;
  ``Originator``, ``Data (and other Enabler)`` and ``Impacted Services`` go
  to the private notes; stakeholders from ``Stakeholders`` (``,`` or ``/``
  separated, a ``CIV or MIL`` qualifier is dropped).

``Date`` and ``Dependencies`` are not imported.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from odp.dialects.base import Dialect
from odp.dialects.fields import compose_sections, resolve_stakeholders
from odp.external_ids import derive_flat_id, derive_simple_id
from odp.rich_text import markup_to_delta
from odp.types import DocumentReference, Entity, ReferenceDocument
from odp.walker import WalkContext, WalkOutcome

log = logging.getLogger("odp.dialects.four_dt")

DRG = "4DT"
NEEDS_SHEET = "Operational Needs"
REQUIREMENTS_SHEET = "Operational Requirements"

CONOPS = ReferenceDocument(
    name="4D Trajectory ConOPS",
    external_id=derive_simple_id("document", "4D Trajectory ConOPS"),
    description="4D Trajectory Concept of Operations",
)

FOUR_DT_STAKEHOLDER_SYNONYMS: dict[str, str] = {
    "au": "stakeholder:network/airspace_user",
    "cfsp": "stakeholder:network/airspace_user/cfsp",
    "nm": "stakeholder:network/nm",
    "ansp": "stakeholder:network/ansp",
    "ansps": "stakeholder:network/ansp",
}

_CONOPS_MARK = "CONOPS"
_CIV_MIL_RE = re.compile(r"CIV or MIL\s*", re.IGNORECASE)


def _cell(row: Mapping[str, Any], column: str) -> str | None:
    value = row.get(column)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _rich(text: str | None) -> str | None:
    return markup_to_delta(text) if text else None


def split_source(source: str | None) -> tuple[str | None, str | None]:
    """``Source`` cell -> (sources note, ConOPS reference note).

    Text before ``CONOPS`` lists other sources; text after it locates the
    need in the ConOPS. Without the marker the whole cell is a source.
    """
    if not source:
        return None, None
    at = source.find(_CONOPS_MARK)
    if at < 0:
        return source.strip() or None, None
    before = source[:at].strip()
    after = source[at + len(_CONOPS_MARK):].strip()
    return before or None, after or None


def _need(row: Mapping[str, Any], ctx: WalkContext) -> Entity | None:
    title = _cell(row, "Title")
    if not title:
        return None
    sources, conops_note = split_source(_cell(row, "Source"))
    notes: list[str] = []
    originator = _cell(row, "Originator")
    if originator:
        notes.append(f"Originator: {originator}")
    if sources:
        notes.append(f"Sources:\n\n{sources}")
    return Entity(
        type="ON",
        title=title,
        external_id=ctx.entity_id("ON", title),
        drg=ctx.drg,
        statement=_rich(_cell(row, "Need Statement")),
        rationale=_rich(_cell(row, "Rationale")),
        private_notes=_rich("\n\n---\n\n".join(notes)) if notes else None,
        document_references=(
            (DocumentReference(CONOPS.external_id, conops_note),) if conops_note else ()
        ),
    )


def _conops_reference(row: Mapping[str, Any]) -> tuple[DocumentReference, ...]:
    note = ". ".join(
        part for part in (_cell(row, "CONOPS Section"), _cell(row, "Source Reference")) if part
    )
    return (DocumentReference(CONOPS.external_id, note),) if note else ()


def _requirement(row: Mapping[str, Any], ctx: WalkContext, needs_by_title: dict[str, str]) -> Entity | None:
    title = _cell(row, "Title")
    if not title:
        return None
    implemented: tuple[str, ...] = ()
    need_title = _cell(row, "Operational Need")
    if need_title:
        need_id = needs_by_title.get(need_title.lower())
        if need_id is None:
            log.warning("Unable to resolve ON %r (OR %r)", need_title, title)
        else:
            implemented = (need_id,)

    stakeholders = resolve_stakeholders(
        _CIV_MIL_RE.sub("", _cell(row, "Stakeholders") or ""),
        split_pattern=r"[,/]",
        synonyms=FOUR_DT_STAKEHOLDER_SYNONYMS,
    )
    for token in stakeholders.unresolved:
        log.warning("Unknown stakeholder token %r in row %r", token, title)

    statement = compose_sections(
        _cell(row, "Detailed Requirement"), ("Fit Criteria:", _cell(row, "Fit Criteria")),
    )
    rationale = compose_sections(
        _cell(row, "Rationale"), ("Opportunities / Risks:", _cell(row, "Opportunities/Risks")),
    )
    originator = _cell(row, "Originator")
    notes = compose_sections(
        f"**Originator:** {originator}" if originator else None,
        ("Data (and other Enabler):", _cell(row, "Data (and other Enabler)")),
        ("Impacted Services:", _cell(row, "Impacted Services")),
    )
    return Entity(
        type="OR",
        title=title,
        external_id=ctx.entity_id("OR", title),
        drg=ctx.drg,
        statement=_rich(statement),
        rationale=_rich(rationale),
        private_notes=_rich(notes),
        implemented_ons=implemented,
        document_references=_conops_reference(row),
        impacts_stakeholders=stakeholders.resolved,
    )


def extract_rows(sheets: Mapping[str, list[dict[str, Any]]], ctx: WalkContext) -> WalkOutcome:
    """ONs from the needs sheet first, then ORs linked to them by title."""
    outcome = WalkOutcome()
    needs_by_title: dict[str, str] = {}
    for row in sheets.get(NEEDS_SHEET, ()):
        need = _need(row, ctx)
        if need is not None and outcome.add_entity(need):
            needs_by_title[need.title.lower()] = need.external_id
    for row in sheets.get(REQUIREMENTS_SHEET, ()):
        requirement = _requirement(row, ctx, needs_by_title)
        if requirement is not None:
            outcome.add_entity(requirement)
    log.info(
        "Mapped %d needs and %d requirements from the 4DT workbook",
        len(outcome.by_type("ON")), len(outcome.by_type("OR")),
    )
    return outcome


FOUR_DT_DIALECT = Dialect(
    name="four_dt",
    drg=DRG,
    extract_rows=extract_rows,
    sheets=(NEEDS_SHEET, REQUIREMENTS_SHEET),
    derive_external_id=derive_flat_id,
    reference_documents=(CONOPS,),
)
