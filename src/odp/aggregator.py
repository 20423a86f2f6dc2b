"""Templating data for edition / repository exports.

Builds the dict a document template iterates over: entities grouped by
drafting group with rich text as marked-up text, plus the reverse links a
reader needs (which ORs implement an ON, which OC satisfies a requirement)
and the milestones planned in each wave.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from typing import Any

from odp.drafting_groups import DRAFTING_GROUPS, UNASSIGNED, drg_display
from odp.rich_text import delta_to_markup, parse_delta
from odp.types import Entity, Err, Milestone, entity_to_dict

log = logging.getLogger("odp.aggregator")

MILESTONE_EVENT_ORDER: tuple[str, ...] = (
    "OPS_DEPLOYMENT",
    "API_PUBLICATION",
    "API_TEST_DEPLOYMENT",
    "UI_TEST_DEPLOYMENT",
    "API_DECOMMISSIONING",
)
OTHER_EVENT = "OTHER"

_RICH_WIRE_KEYS: dict[str, tuple[str, ...]] = {
    "ON": ("statement", "rationale", "flows", "privateNotes"),
    "OR": ("statement", "rationale", "flows", "privateNotes"),
    "OC": ("purpose", "initialState", "finalState", "details", "privateNotes"),
}
_WAVE_RE = re.compile(r"(\d{4})(?:\D+(\d))?")


def wave_key(wave: str | None) -> tuple[int, int, int, str]:
    """Chronological key for ``wave:2027`` / ``wave:2027.2``; waveless last."""
    if not wave:
        return (1, 0, 0, "")
    m = _WAVE_RE.search(wave)
    if m is None:
        return (0, 9999, 0, wave)
    return (0, int(m.group(1)), int(m.group(2) or 0), wave)


def _markup(value: Any, field_name: str, external_id: str) -> str:
    if isinstance(parse_delta(value), Err):
        log.warning("Failed to convert %s for %s; left empty", field_name, external_id)
        return ""
    return delta_to_markup(value)


def _record(entity: Entity) -> dict[str, Any]:
    record = entity_to_dict(entity)
    for key in _RICH_WIRE_KEYS[entity.type]:
        if record.get(key):
            record[key] = _markup(record[key], key, entity.external_id)
    return record


def group_by_drg(items: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drafting-group order, ``UNASSIGNED`` last, empty groups omitted."""
    groups: dict[str, list[dict[str, Any]]] = {drg_display(k): [] for k in DRAFTING_GROUPS}
    groups[UNASSIGNED] = []
    for item in items:
        name = drg_display(item.get("drg")) if item.get("drg") in DRAFTING_GROUPS else UNASSIGNED
        groups[name].append(item)
    return [{"drg": name, "items": members} for name, members in groups.items() if members]


def _milestone_record(milestone: Milestone) -> dict[str, Any]:
    return {
        "title": milestone.title,
        "wave": milestone.wave,
        "eventTypes": list(milestone.event_types),
    }


def _wave_groups(waves: Sequence[str], changes: Sequence[Entity]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for wave in sorted(waves, key=wave_key):
        by_event: dict[str, list[dict[str, Any]]] = {e: [] for e in MILESTONE_EVENT_ORDER}
        by_event[OTHER_EVENT] = []
        for change in changes:
            for milestone in change.milestones:
                if milestone.wave != wave:
                    continue
                record = _milestone_record(milestone) | {
                    "operationalChange": {"id": change.external_id, "drg": change.drg, "title": change.title},
                }
                for event in milestone.event_types or (OTHER_EVENT,):
                    by_event.get(event, by_event[OTHER_EVENT]).append(record)
        out.append({
            "id": wave,
            "eventTypeGroups": [
                {"eventType": event, "eventTypeLabel": event.replace("_", " "), "milestones": members}
                for event, members in by_event.items()
                if members
            ],
        })
    return out


def build_templating_data(
    entities: Iterable[Entity],
    *,
    title: str,
    waves: Sequence[str] = (),
) -> dict[str, Any]:
    """Assemble the export template context.

    Args:
        entities: ONs, ORs and OCs of the exported scope.
        title: Document title.
        waves: Wave ids to list; defaults to every wave a milestone targets.

    Returns:
        Dict with ``title``, ``waves``, ``operationalNeeds``,
        ``operationalRequirements`` and ``operationalChanges``.
    """
    items = list(entities)
    needs = [e for e in items if e.type == "ON"]
    requirements = [e for e in items if e.type == "OR"]
    changes = [e for e in items if e.type == "OC"]

    satisfied_by: dict[str, dict[str, str]] = {}
    for change in changes:
        for target in change.satisfies_requirements:
            satisfied_by[target] = {"id": change.external_id, "title": change.title}

    implementing: dict[str, list[dict[str, str]]] = {n.external_id: [] for n in needs}
    for requirement in requirements:
        for target in requirement.implemented_ons:
            if target in implementing:
                implementing[target].append({"id": requirement.external_id, "title": requirement.title})

    need_records = [
        _record(n) | {
            "implementingORs": implementing[n.external_id],
            "satisfiedByChange": satisfied_by.get(n.external_id),
        }
        for n in needs
    ]
    requirement_records = [
        _record(r) | {"satisfiedByChange": satisfied_by.get(r.external_id)} for r in requirements
    ]
    change_records = []
    for change in changes:
        record = _record(change)
        record["milestones"] = [
            _milestone_record(m) for m in sorted(change.milestones, key=lambda m: wave_key(m.wave))
        ]
        change_records.append(record)

    wave_ids = list(waves) or sorted(
        {m.wave for c in changes for m in c.milestones if m.wave}, key=wave_key,
    )
    log.info(
        "Templating data %r: %d needs, %d requirements, %d changes, %d waves",
        title, len(needs), len(requirements), len(changes), len(wave_ids),
    )
    return {
        "title": title,
        "waves": _wave_groups(wave_ids, changes),
        "operationalNeeds": group_by_drg(need_records),
        "operationalRequirements": group_by_drg(requirement_records),
        "operationalChanges": group_by_drg(change_records),
    }
