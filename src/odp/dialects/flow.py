"""FLOW / CRISIS_FAAS dialect: marker-titled sections holding field tables.

Layout:

- the level-1 heading is the document root;
- any heading titled ``Operational Need (ON)``, ``Operational Requirement
  (OR)`` or ``Use Case`` is an entity whose first table holds ``Field:`` /
  value rows; every other heading is an organizational folder (``NN - ``
  numbering stripped);
- entity titles come from the ``Title:`` row, not from the heading.

The statement is required (entities without one are dropped with an error
issue); a missing rationale is only a warning. ``ON Reference``,
``Dependencies`` and use cases can point forward in the document, so they
are resolved in ``finalize`` once every entity is known.

CRISIS_FAAS documents carry ``ON ID:`` / ``OR ID:`` rows instead of
extractor-supplied section identifiers; the same strategy reads them.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Any

from odp.dialects.base import Dialect, ExtractFn
from odp.dialects.fields import (
    StakeholderResolution,
    clean_value,
    compose_sections,
    field_map,
    resolve_stakeholders,
)
from odp.rich_text import concat_deltas, markup_to_delta
from odp.types import DocumentNode, Entity, EntityType, Severity, ValidationIssue
from odp.walker import Classification, Extraction, WalkContext, WalkOutcome

log = logging.getLogger("odp.dialects.flow")

_ENTITY_TITLES: dict[str, EntityType] = {
    "operational need (on)": "ON",
    "operational requirement (or)": "OR",
}
_USE_CASE_TITLE = "use case"
_DASH_NUMBER_RE = re.compile(r"^\d+\s*-\s*")
_VERSION_RE = re.compile(r"_v[^_]*$")
_DEPENDENCY_SPLIT_RE = re.compile(r"[\n;,.]+")
_TITLE_SYNONYMS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bPFDCI\b", re.IGNORECASE), "Proactive Flight Delay Criticality Indicator (P-FDCI)"),
)
STAKEHOLDER_SPLIT = r"[;,]|\s+and\s+"


@dataclass(frozen=True, slots=True)
class FlowLinks:
    """Unresolved cross references of one extracted entity."""
    external_id: str
    entity_type: EntityType
    path: tuple[str, ...]
    identifier: str | None = None
    on_reference: str | None = None
    dependencies: str | None = None


@dataclass(frozen=True, slots=True)
class FlowUseCase:
    on_reference: str
    content: str
    path: tuple[str, ...] = ()


def strip_version(reference: str | None) -> str | None:
    """``ASM_ATFCM-ON-3_v1.0`` -> ``ASM_ATFCM-ON-3``."""
    if not reference:
        return None
    return _VERSION_RE.sub("", reference.strip()).strip() or None


def normalize_for_matching(text: str) -> str:
    out = text
    for pattern, replacement in _TITLE_SYNONYMS:
        out = pattern.sub(replacement, out)
    return out.strip()


def detect_entity_type(node: DocumentNode, ctx: WalkContext) -> Classification:
    title = node.title.strip().lower()
    if title in _ENTITY_TITLES:
        return Classification("entity", _ENTITY_TITLES[title])
    if title == _USE_CASE_TITLE:
        return Classification("entity", "ON")
    return Classification("folder", segment=_DASH_NUMBER_RE.sub("", node.title.strip()).strip())


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _use_case(fields: dict[str, str], ctx: WalkContext) -> Extraction:
    reference = strip_version(fields.get("on reference"))
    if not reference:
        issue = ValidationIssue(
            "warning", "use_case", "Use Case without ON Reference found, skipping", path=ctx.path,
        )
        log.warning(issue.message)
        return Extraction(issues=(issue,))
    lines = [
        f"{label.title()}: {value}"
        for label, value in fields.items()
        if label not in ("date", "originator") and value.strip()
    ]
    return Extraction(extras=(FlowUseCase(reference, "\n".join(lines), ctx.path),))


def _missing(
    severity: Severity, entity_type: EntityType, title: str, field_name: str, path: tuple[str, ...],
) -> ValidationIssue:
    dropped = severity == "error"
    message = (
        f"{entity_type} {title!r} at path {list(path)} has no {field_name}"
        + (" - skipped" if dropped else "")
    )
    if dropped:
        log.error(message)
    else:
        log.warning(message)
    return ValidationIssue(
        severity,
        "missing_field",
        message,
        entity_type=entity_type,
        title=title,
        path=path,
    )


def make_extractor(legacy_ids: bool) -> ExtractFn:
    """Build the extract callable; ``legacy_ids`` reads ``ON ID``/``OR ID`` rows."""

    def extract_fields(node: DocumentNode, ctx: WalkContext, entity_type: EntityType) -> Extraction:
        fields = field_map(node.tables[:1])
        if node.title.strip().lower() == _USE_CASE_TITLE:
            return _use_case(fields, ctx)

        path = ctx.path
        title = clean_value(fields.get("title"))
        if not title:
            return Extraction(issues=(_missing("error", entity_type, node.title, "title", path),))

        if entity_type == "ON":
            statement = compose_sections(
                clean_value(fields.get("need statement")),
                ("Definitions (draft):", clean_value(fields.get("definitions (draft)"))),
                ("Fit Criteria:", clean_value(fields.get("fit criteria"))),
            )
        else:
            statement = compose_sections(
                clean_value(fields.get("detailed requirement")),
                ("Fit Criteria:", clean_value(fields.get("fit criteria"))),
            )
        if not statement:
            return Extraction(issues=(_missing("error", entity_type, title, "statement", path),))

        issues: list[ValidationIssue] = []
        rationale = compose_sections(
            clean_value(fields.get("rationale")),
            ("Opportunities / Risks:", clean_value(fields.get("opportunities/risks"))),
        )
        if not rationale:
            issues.append(_missing("warning", entity_type, title, "rationale", path))

        if legacy_ids:
            identifier = clean_value(fields.get("on id" if entity_type == "ON" else "or id"))
            id_note = f"{entity_type} ID: {identifier}" if identifier else None
        else:
            identifier = node.identifier
            id_note = f"Identifier: {identifier}" if identifier else None

        notes: list[str] = [n for n in (id_note,) if n]
        if clean_value(fields.get("originator")):
            notes.append(f"Originator: {fields['originator'].strip()}")

        stakeholders = StakeholderResolution((), ())
        if entity_type == "OR":
            data = clean_value(fields.get("data (and other enabler)") or fields.get("data (and other enablers)"))
            if data:
                notes.append(f"Data (and other Enabler):\n{data}")
            services = clean_value(fields.get("impacted services"))
            if services:
                notes.append(f"Impacted Services:\n{services}")
            stakeholders = resolve_stakeholders(
                fields.get("stakeholders"), split_pattern=STAKEHOLDER_SPLIT, strip_qualifiers=True,
            )
            if stakeholders.unresolved_text:
                notes.append(f"Stakeholders (unresolved):\n{stakeholders.unresolved_text}")

        external_id = ctx.entity_id(entity_type, title, path=path or None)
        entity = Entity(
            type=entity_type,
            title=title,
            external_id=external_id,
            drg=ctx.drg,
            path=path or None,
            statement=markup_to_delta(statement),
            rationale=markup_to_delta(rationale) if rationale else None,
            private_notes=markup_to_delta("\n\n".join(notes)) if notes else None,
            impacts_stakeholders=stakeholders.resolved,
        )
        links = FlowLinks(
            external_id=external_id,
            entity_type=entity_type,
            path=path,
            identifier=strip_version(identifier),
            on_reference=strip_version(fields.get("on reference")) if entity_type == "OR" else None,
            dependencies=clean_value(fields.get("dependencies")) if entity_type == "OR" else None,
        )
        return Extraction((entity,), tuple(issues), (links,))

    return extract_fields


# ---------------------------------------------------------------------------
# Finalize: ON references, dependencies, use cases
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _OnIndex:
    by_identifier: dict[str, str]
    by_title: dict[str, str]
    by_path: dict[tuple[str, ...], list[str]]

    def resolve(self, reference: str, path: tuple[str, ...]) -> str | None:
        """Identifier, then synonym-normalized title, then the only ON at ``path``."""
        normalized = normalize_for_matching(reference)
        found = (
            self.by_identifier.get(reference)
            or self.by_identifier.get(normalized)
            or self.by_title.get(normalized.lower())
        )
        if found is not None:
            return found
        siblings = self.by_path.get(path, [])
        return siblings[0] if len(siblings) == 1 else None


def _build_index(outcome: WalkOutcome, links: list[FlowLinks]) -> _OnIndex:
    index = _OnIndex({}, {}, defaultdict(list))
    for link in links:
        if link.identifier and outcome.get(link.external_id) is not None:
            index.by_identifier[link.identifier] = link.external_id
    for need in outcome.by_type("ON"):
        index.by_title[normalize_for_matching(need.title).lower()] = need.external_id
        index.by_path[need.path or ()].append(need.external_id)
    return index


def finalize(outcome: WalkOutcome, ctx: WalkContext) -> WalkOutcome:
    links = [x for x in outcome.extras if isinstance(x, FlowLinks)]
    index = _build_index(outcome, links)
    requirement_titles = {r.title.strip().lower(): r.external_id for r in outcome.by_type("OR")}
    resolved = unresolved = 0

    for link in links:
        entity = outcome.get(link.external_id)
        if entity is None or link.entity_type != "OR":
            continue
        changes: dict[str, Any] = {}
        if link.on_reference:
            target = index.resolve(link.on_reference, link.path)
            if target is not None:
                changes["implemented_ons"] = (target,)
                resolved += 1
            else:
                unresolved += 1
                outcome.warn(
                    "unresolved_reference",
                    f"OR {entity.external_id!r}: could not resolve ON Reference {link.on_reference!r}",
                    entity_type="OR", title=entity.title, path=link.path, external_id=entity.external_id,
                )
        if link.dependencies:
            depends: list[str] = []
            unmatched: list[str] = []
            for part in (p.strip() for p in _DEPENDENCY_SPLIT_RE.split(link.dependencies)):
                if not part:
                    continue
                match = requirement_titles.get(part.lower())
                if match is not None:
                    depends.append(match)
                else:
                    log.warning("OR %r: could not resolve dependency %r", entity.external_id, part)
                    unmatched.append(part)
            changes["depends_on_requirements"] = tuple(depends)
            if unmatched:
                note = markup_to_delta("Dependencies:\n" + "\n".join(unmatched))
                changes["private_notes"] = concat_deltas(entity.private_notes, note)
        if changes:
            outcome.replace_entity(replace(entity, **changes))

    injected = missing = 0
    for use_case in (x for x in outcome.extras if isinstance(x, FlowUseCase)):
        target_id = index.resolve(use_case.on_reference, use_case.path)
        target = outcome.get(target_id) if target_id else None
        if target is None:
            missing += 1
            outcome.warn(
                "use_case",
                f"Use Case references unknown ON identifier: {use_case.on_reference!r}",
                path=use_case.path,
            )
            continue
        outcome.replace_entity(
            replace(target, flows=concat_deltas(target.flows, markup_to_delta(use_case.content)))
        )
        injected += 1

    log.info(
        "ON references: %d resolved, %d unresolved; use cases: %d injected, %d not found",
        resolved, unresolved, injected, missing,
    )
    return outcome


def make_flow_dialect(drg: str, *, legacy_ids: bool = False) -> Dialect:
    return Dialect(
        name="flow",
        drg=drg,
        detect_entity_type=detect_entity_type,
        extract_fields=make_extractor(legacy_ids),
        finalize=finalize,
        refines_nested=False,
    )


FLOW_DIALECT = make_flow_dialect("FLOW")
CRISIS_FAAS_DIALECT = make_flow_dialect("CRISIS_FAAS", legacy_ids=True)
