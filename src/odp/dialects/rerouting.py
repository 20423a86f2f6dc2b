"""Rerouting (RRT) spreadsheet dialect.

Reads the ``NM-RR`` sheet, one row per Operational Requirement. A row may
also introduce the ON it implements (``ON ID`` / ``ON`` / ``ON Definition``)
and the OC that satisfies it (``OC ID`` / ``OC Name`` / ``OC Description``);
later rows referring to the same ON or OC id reuse the first definition.

Column mapping:

- ON: ``ON`` -> title and path, ``ON Definition`` ``What:`` -> statement,
  ``Why:`` -> rationale, ``Focus:`` appended to the statement;
- OR: ``Title``; statement = ``What (Detailed Requirement)`` + ``Fit
  Criteria``; rationale = ``Why (Rationale)`` + ``Opportunities/Risks``;
  flows = ``Use Case``; private notes = ``Comments`` + ``Data (and other
  Enabler)``; stakeholders from ``Stakeholders`` (``,`` or ``/`` separated);
- OC: ``OC Name``; ``OC Description`` text after ``In essence:`` is the
  purpose, text before it the details; ``Target maturity`` /
  ``Target implementation`` years become the M1 / M2 milestones.

Columns such as Priority, Reviewer, Main Topic and Dependencies are not
imported.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from odp.dialects.base import Dialect
from odp.dialects.fields import compose_sections, resolve_stakeholders
from odp.rich_text import markup_to_delta
from odp.types import Entity, Milestone
from odp.walker import WalkContext, WalkOutcome

log = logging.getLogger("odp.dialects.rerouting")

DRG = "RRT"
SHEET = "NM-RR"
OC_ID_PREFIX = "RR-OC-"

RRT_STAKEHOLDER_SYNONYMS: dict[str, str] = {
    "nm": "stakeholder:network/nm",
    "nmoc": "stakeholder:network/nm/nmoc",
    "ansp": "stakeholder:network/ansp",
    "ansps": "stakeholder:network/ansp",
    "fmp": "stakeholder:network/ansp/fmp",
    "fmps": "stakeholder:network/ansp/fmp",
    "ao": "stakeholder:network/airspace_user/ao",
}
_IGNORED_STAKEHOLDERS = ("external users",)

_WHAT_RE = re.compile(r"What:\s*([\s\S]*?)(?=Why:|Focus:|$)", re.IGNORECASE)
_WHY_RE = re.compile(r"Why:\s*([\s\S]*?)(?=Focus:|$)", re.IGNORECASE)
_FOCUS_RE = re.compile(r"Focus:\s*([\s\S]*?)$", re.IGNORECASE)
_YEAR_RE = re.compile(r"\b(20\d{2})\b")
_SHORT_YEAR_RE = re.compile(r"\b(\d{2})\b")
_IN_ESSENCE = "In essence:"


def _cell(row: Mapping[str, Any], column: str) -> str | None:
    value = row.get(column)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _rich(text: str | None) -> str | None:
    return markup_to_delta(text) if text else None


def clean_oc_id(oc_id: str) -> str:
    return oc_id[len(OC_ID_PREFIX):] if oc_id.startswith(OC_ID_PREFIX) else oc_id


def parse_year(value: Any) -> str | None:
    """Four-digit year from a date-ish cell (``2027``, ``Q3 2027``, ``27``)."""
    if value is None:
        return None
    text = str(value).strip()
    m = _YEAR_RE.search(text)
    if m:
        return m.group(1)
    m = _SHORT_YEAR_RE.search(text)
    if m:
        return f"20{int(m.group(1)):02d}"
    return None


def split_need_definition(definition: str | None) -> tuple[str | None, str | None]:
    """``What: ... Why: ... Focus: ...`` -> (statement, rationale)."""
    if not definition or not definition.strip():
        return None, None
    text = definition.strip()
    what = _WHAT_RE.search(text)
    why = _WHY_RE.search(text)
    focus = _FOCUS_RE.search(text)
    statement = what.group(1).strip() if what else None
    rationale = why.group(1).strip() if why else None
    if focus:
        statement = compose_sections(statement, ("Focus:", focus.group(1).strip()))
    return statement or None, rationale or None


def split_change_description(description: str | None) -> tuple[str | None, str | None]:
    """Split at ``In essence:`` -> (purpose, details)."""
    if not description or not description.strip():
        return None, None
    text = description.strip()
    at = text.find(_IN_ESSENCE)
    if at < 0:
        return None, text
    return text[at + len(_IN_ESSENCE):].strip() or None, text[:at].strip() or None


def extract_milestones(row: Mapping[str, Any]) -> tuple[Milestone, ...]:
    milestones: list[Milestone] = []
    for title, column, event in (
        ("M1", "Target maturity", "API_PUBLICATION"),
        ("M2", "Target implementation", "OPS_DEPLOYMENT"),
    ):
        year = parse_year(_cell(row, column))
        if year:
            milestones.append(Milestone(title, f"wave:{year}", (event,)))
    return tuple(milestones)


def _need(row: Mapping[str, Any], ctx: WalkContext) -> Entity | None:
    title = _cell(row, "ON")
    definition = _cell(row, "ON Definition")
    if not title or not definition:
        return None
    statement, rationale = split_need_definition(definition)
    path = (title,)
    return Entity(
        type="ON",
        title=title,
        external_id=ctx.entity_id("ON", title, path=path),
        drg=ctx.drg,
        path=path,
        statement=_rich(statement),
        rationale=_rich(rationale),
    )


def _change(row: Mapping[str, Any], ctx: WalkContext) -> Entity | None:
    title = _cell(row, "OC Name")
    if not title:
        return None
    purpose, details = split_change_description(_cell(row, "OC Description"))
    return Entity(
        type="OC",
        title=title,
        external_id=ctx.entity_id("OC", title),
        drg=ctx.drg,
        purpose=_rich(purpose),
        details=_rich(details),
        visibility="NETWORK",
        milestones=extract_milestones(row),
    )


def _requirement(row: Mapping[str, Any], ctx: WalkContext, need: Entity | None) -> Entity | None:
    title = _cell(row, "Title")
    if not title:
        return None
    stakeholders = resolve_stakeholders(
        _cell(row, "Stakeholders"),
        split_pattern=r"[,/]",
        synonyms=RRT_STAKEHOLDER_SYNONYMS,
        ignore=_IGNORED_STAKEHOLDERS,
    )
    for token in stakeholders.unresolved:
        log.warning("Unknown stakeholder token %r in row %r", token, title)
    statement = compose_sections(
        _cell(row, "What (Detailed Requirement)"), ("Fit Criteria:", _cell(row, "Fit Criteria")),
    )
    rationale = compose_sections(
        _cell(row, "Why (Rationale)"), ("Opportunities/Risks:", _cell(row, "Opportunities/Risks")),
    )
    use_case = _cell(row, "Use Case")
    notes = compose_sections(
        None,
        ("Comments:", _cell(row, "Comments")),
        ("Data (and other Enabler):", _cell(row, "Data (and other Enabler)")),
    )
    path = need.path if need is not None else None
    return Entity(
        type="OR",
        title=title,
        external_id=ctx.entity_id("OR", title, path=path),
        drg=ctx.drg,
        path=path,
        statement=_rich(statement),
        rationale=_rich(rationale),
        flows=_rich(f"Use Case:\n\n{use_case}") if use_case else None,
        private_notes=_rich(notes),
        implemented_ons=(need.external_id,) if need is not None else (),
        impacts_stakeholders=stakeholders.resolved,
    )


def extract_rows(sheets: Mapping[str, list[dict[str, Any]]], ctx: WalkContext) -> WalkOutcome:
    """Build ONs, ORs and OCs from the ``NM-RR`` sheet rows.

    ONs and OCs are keyed by their sheet ids (``ON ID``, ``OC ID`` without
    the ``RR-OC-`` prefix); OC ``satisfies_requirements`` is filled once all
    rows have been read.
    """
    outcome = WalkOutcome()
    needs_by_id: dict[str, Entity] = {}
    changes_by_id: dict[str, str] = {}
    satisfied: dict[str, list[str]] = {}

    for row in sheets.get(SHEET, ()):
        need: Entity | None = None
        on_id = _cell(row, "ON ID")
        if on_id:
            need = needs_by_id.get(on_id)
            if need is None:
                need = _need(row, ctx)
                if need is not None and outcome.add_entity(need):
                    needs_by_id[on_id] = need

        change_id: str | None = None
        raw_oc_id = _cell(row, "OC ID")
        if raw_oc_id:
            oc_key = clean_oc_id(raw_oc_id)
            change_id = changes_by_id.get(oc_key)
            if change_id is None:
                change = _change(row, ctx)
                if change is not None and outcome.add_entity(change):
                    change_id = changes_by_id[oc_key] = change.external_id

        requirement = _requirement(row, ctx, need)
        if requirement is None or not outcome.add_entity(requirement):
            continue
        if change_id is not None:
            linked = satisfied.setdefault(change_id, [])
            if requirement.external_id not in linked:
                linked.append(requirement.external_id)

    for change_id, requirement_ids in satisfied.items():
        change = outcome.get(change_id)
        if change is not None:
            outcome.replace_entity(replace(change, satisfies_requirements=tuple(requirement_ids)))

    log.info(
        "Mapped %d needs, %d requirements and %d changes from %s (%d OC-OR links)",
        len(outcome.by_type("ON")), len(outcome.by_type("OR")), len(outcome.by_type("OC")),
        SHEET, len(satisfied),
    )
    return outcome


REROUTING_DIALECT = Dialect(
    name="rerouting",
    drg=DRG,
    extract_rows=extract_rows,
    sheets=(SHEET,),
)
