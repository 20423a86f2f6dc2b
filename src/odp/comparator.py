"""Field-level comparison of an existing entity with an incoming one.

Used by import callers to decide between create / update / skip. Values are
normalized before comparison so formatting noise does not count as a change:
empty deltas equal None, scalars are trimmed, reference lists compare as
sets, and annotated references compare as sorted (id, note) pairs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from odp.rich_text import normalize_rich_text
from odp.types import AnnotatedReference, DocumentReference, Entity

_REQUIREMENT_FIELDS: dict[str, tuple[str, ...]] = {
    "scalar": ("title", "type", "drg"),
    "rich": ("statement", "rationale", "flows", "private_notes"),
    "refs": ("implemented_ons", "depends_on_requirements"),
    "annotated": ("impacts_stakeholders", "impacts_data", "impacts_services", "document_references"),
}

_CHANGE_FIELDS: dict[str, tuple[str, ...]] = {
    "scalar": ("title", "visibility", "drg"),
    "rich": ("purpose", "initial_state", "final_state", "details", "private_notes"),
    "refs": ("satisfies_requirements", "supersedes_requirements", "depends_on_changes"),
    "annotated": ("document_references",),
}


@dataclass(frozen=True, slots=True)
class FieldChange:
    field: str
    old: Any
    new: Any


@dataclass(frozen=True, slots=True)
class Comparison:
    has_changes: bool
    changes: tuple[FieldChange, ...] = ()

    def fields(self) -> list[str]:
        return [c.field for c in self.changes]


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value)


def _pairs(refs: tuple[AnnotatedReference | DocumentReference, ...]) -> list[tuple[str, str]]:
    out = []
    for ref in refs:
        ref_id = ref.document_external_id if isinstance(ref, DocumentReference) else ref.external_id
        if ref_id:
            out.append((ref_id, _scalar(ref.note)))
    return sorted(out)


def compare_entities(existing: Entity, incoming: Entity) -> Comparison:
    """Compare two versions of the same entity; ``old``/``new`` hold raw values."""
    spec = _CHANGE_FIELDS if existing.type == "OC" else _REQUIREMENT_FIELDS
    changes: list[FieldChange] = []

    for name in spec["scalar"]:
        old, new = _scalar(getattr(existing, name)), _scalar(getattr(incoming, name))
        if old != new:
            changes.append(FieldChange(name, old, new))
    for name in spec["rich"]:
        old, new = normalize_rich_text(getattr(existing, name)), normalize_rich_text(getattr(incoming, name))
        if old != new:
            changes.append(FieldChange(name, old, new))

    old_path, new_path = list(existing.path or ()), list(incoming.path or ())
    if old_path != new_path:
        changes.append(FieldChange("path", old_path, new_path))
    if existing.type != "OC" and existing.parent != incoming.parent:
        changes.append(FieldChange("parent", existing.parent, incoming.parent))

    for name in spec["refs"]:
        old_refs, new_refs = getattr(existing, name), getattr(incoming, name)
        if sorted(set(old_refs)) != sorted(set(new_refs)):
            changes.append(FieldChange(name, list(old_refs), list(new_refs)))
    for name in spec["annotated"]:
        old_refs, new_refs = getattr(existing, name), getattr(incoming, name)
        if _pairs(old_refs) != _pairs(new_refs):
            changes.append(FieldChange(name, list(old_refs), list(new_refs)))

    return Comparison(bool(changes), tuple(changes))
