"""Hierarchy resolution over a flat entity arena.

Entities reference each other only by external id. ``HierarchyResolver``
keeps them in an id -> entity map and answers structural questions without
building object graphs:

- ``build_tree``: organizational folder tree + refinement children, sorted
  deterministically (folders case-insensitively, entities in natural code
  order);
- ``effective_path``: the path an entity inherits through its refinement
  ancestors (cycle-safe);
- ``normalize_reference`` / ``normalize_entities``: raw reference tokens
  written by dialects (``./Title``, ``/A/Title``, ``[CODE] Title``...) ->
  external ids;
- ``validate``: per-kind resolution tallies with one warning per dangling
  reference. Never raises.

Usage::

    resolver = HierarchyResolver(entities)
    entities = resolver.normalize_entities(dialect.policy_for(folder))
    report = HierarchyResolver(entities).validate(documents=dialect.reference_documents)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace

from odp.dialects.base import ReferencePolicy
from odp.external_ids import derive_entity_id
from odp.ordering import folder_key, natural_sorted
from odp.references import parse_annotated_item, parse_reference
from odp.types import Entity, EntityType, Err, Ok, ReferenceDocument, Result, ValidationIssue
from odp.walker import DeriveIdFn

log = logging.getLogger("odp.hierarchy")

_ENTITY_ID_RE = re.compile(r"^(?:on|or|oc):\S")

# Reference field -> type of the entity it points at.
REFERENCE_TARGETS: dict[str, EntityType] = {
    "implemented_ons": "ON",
    "depends_on_requirements": "OR",
    "satisfies_requirements": "OR",
    "supersedes_requirements": "OR",
    "depends_on_changes": "OC",
}

# Report label per reference kind, in log order.
_KIND_LABELS: dict[str, str] = {
    "implemented_ons": "Implemented ONs",
    "depends_on_requirements": "Depends on requirements",
    "depends_on_changes": "Depends on changes",
    "satisfies_requirements": "Satisfies requirements",
    "supersedes_requirements": "Supersedes requirements",
    "document_references": "Document references",
    "refines": "Refinement parents",
}


# ---------------------------------------------------------------------------
# Tree types
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class PathNode:
    name: str
    needs: list[Entity] = field(default_factory=list)
    requirements: list[Entity] = field(default_factory=list)
    children: list[PathNode] = field(default_factory=list)

    def child(self, name: str) -> PathNode:
        for node in self.children:
            if node.name == name:
                return node
        node = PathNode(name)
        self.children.append(node)
        return node


@dataclass(slots=True)
class HierarchyTree:
    folders: list[PathNode] = field(default_factory=list)
    children: dict[str, list[Entity]] = field(default_factory=dict)
    root_needs: list[Entity] = field(default_factory=list)
    root_requirements: list[Entity] = field(default_factory=list)
    changes: list[Entity] = field(default_factory=list)
    orphans: list[Entity] = field(default_factory=list)
    cycles: list[Entity] = field(default_factory=list)     # refinement-cycle members, placed as roots

    def children_of(self, external_id: str) -> list[Entity]:
        return self.children.get(external_id, [])


@dataclass(frozen=True, slots=True)
class ReferenceTally:
    total: int = 0
    resolved: int = 0

    @property
    def unresolved(self) -> int:
        return self.total - self.resolved


@dataclass(frozen=True, slots=True)
class ReferenceReport:
    tallies: dict[str, ReferenceTally]
    issues: tuple[ValidationIssue, ...] = ()

    @property
    def unresolved(self) -> int:
        return sum(t.unresolved for t in self.tallies.values())


def _by_code(entities: Iterable[Entity]) -> list[Entity]:
    return natural_sorted(entities, key=lambda e: e.sort_code)


_TYPE_RANK: dict[str, int] = {"ON": 0, "OR": 1, "OC": 2}


def _needs_first(entities: Iterable[Entity]) -> list[Entity]:
    return sorted(_by_code(entities), key=lambda e: _TYPE_RANK[e.type])


def _sort_folders(nodes: list[PathNode]) -> list[PathNode]:
    ordered = sorted(nodes, key=lambda n: folder_key(n.name))
    for node in ordered:
        node.needs = _by_code(node.needs)
        node.requirements = _by_code(node.requirements)
        node.children = _sort_folders(node.children)
    return ordered


def flatten(tree: HierarchyTree) -> list[tuple[tuple[str, ...], Entity]]:
    """Depth-first (path, entity) pairs of every folder-placed entity."""
    out: list[tuple[tuple[str, ...], Entity]] = []

    def visit(node: PathNode, prefix: tuple[str, ...]) -> None:
        path = prefix + (node.name,)
        out.extend((path, e) for e in node.needs)
        out.extend((path, e) for e in node.requirements)
        for child in node.children:
            visit(child, path)

    for root in tree.folders:
        visit(root, ())
    return out


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class HierarchyResolver:
    """Structural queries over one import/export scope."""

    def __init__(self, entities: Iterable[Entity]) -> None:
        self._arena: dict[str, Entity] = {}
        for entity in entities:
            self._arena.setdefault(entity.external_id, entity)

    def __len__(self) -> int:
        return len(self._arena)

    def __contains__(self, external_id: str) -> bool:
        return external_id in self._arena

    def get(self, external_id: str) -> Entity | None:
        return self._arena.get(external_id)

    @property
    def entities(self) -> list[Entity]:
        return list(self._arena.values())

    # -- tree ---------------------------------------------------------------

    def build_tree(self) -> HierarchyTree:
        """Folder tree, refinement children and roots, deterministically sorted.

        Entities whose parent is not in scope are listed in ``orphans`` and
        also placed with the roots so they are still rendered. Members of a
        refinement cycle are listed in ``cycles`` and placed with the roots
        too; the edge to their parent is dropped so the tree stays acyclic.
        Refinement children list needs before requirements.
        """
        tree = HierarchyTree()
        roots: dict[str, PathNode] = {}
        for entity in self._arena.values():
            if entity.type == "OC":
                tree.changes.append(entity)
                continue
            if entity.parent is not None:
                if entity.parent not in self._arena:
                    tree.orphans.append(entity)
                elif self._on_refinement_cycle(entity.external_id):
                    tree.cycles.append(entity)
                else:
                    tree.children.setdefault(entity.parent, []).append(entity)
                    continue
            elif entity.path:
                head, *rest = entity.path
                node = roots.get(head)
                if node is None:
                    node = roots[head] = PathNode(head)
                for name in rest:
                    node = node.child(name)
                (node.needs if entity.type == "ON" else node.requirements).append(entity)
                continue
            (tree.root_needs if entity.type == "ON" else tree.root_requirements).append(entity)

        tree.folders = _sort_folders(list(roots.values()))
        tree.children = {k: _needs_first(v) for k, v in tree.children.items()}
        tree.root_needs = _by_code(tree.root_needs)
        tree.root_requirements = _by_code(tree.root_requirements)
        tree.changes = _by_code(tree.changes)
        tree.orphans = _by_code(tree.orphans)
        tree.cycles = _by_code(tree.cycles)
        if tree.orphans:
            log.warning("%d entities refine a parent outside this scope", len(tree.orphans))
        for entity in tree.cycles:
            log.warning(
                "%s %r is part of a refinement cycle; placed at the top level",
                entity.type, entity.external_id,
            )
        return tree

    def _on_refinement_cycle(self, external_id: str) -> bool:
        """True when following parents from the entity leads back to it."""
        seen: set[str] = set()
        current = self._arena[external_id].parent
        while current is not None and current not in seen:
            if current == external_id:
                return True
            seen.add(current)
            entity = self._arena.get(current)
            current = entity.parent if entity is not None else None
        return False

    # -- paths --------------------------------------------------------------

    def effective_path(self, external_id: str) -> Result[tuple[str, ...], str]:
        """Path of the entity or of its nearest placed ancestor.

        Returns ``Err`` for a refinement cycle or a missing ancestor.
        """
        visited: set[str] = set()
        current = external_id
        while True:
            if current in visited:
                return Err(f"no path found for {external_id!r}: refinement cycle at {current!r}")
            visited.add(current)
            entity = self._arena.get(current)
            if entity is None:
                return Err(f"no path found for {external_id!r}: {current!r} is not in scope")
            if entity.path:
                return Ok(tuple(entity.path))
            if entity.parent is None:
                return Ok(())
            current = entity.parent

    # -- references ---------------------------------------------------------

    @staticmethod
    def normalize_reference(
        token: str,
        *,
        current_path: Sequence[str],
        drg: str,
        target_type: EntityType,
        policy: ReferencePolicy,
        derive_id: DeriveIdFn = derive_entity_id,
    ) -> str:
        """Turn one raw reference token into an external id.

        Path-style tokens go through ``derive_id`` (the dialect's derivation)
        so they land on the same id as the entity they name. Already-derived
        ids (``on:...``) are returned without their note, so normalization is
        idempotent.
        """
        text = token.strip()
        if _ENTITY_ID_RE.match(text):
            return parse_annotated_item(text)[0]
        ref = parse_reference(text)

        def derive(segments: Sequence[str], base: Sequence[str]) -> str:
            kept = [s for s in segments if s.strip().lower() not in policy.ignore_segments]
            if not kept:
                return text
            path = tuple(base) + tuple(kept[:-1])
            return derive_id(target_type, drg, kept[-1], path=path or None)

        match ref.kind:
            case "relative":
                return derive(ref.segments, current_path)
            case "absolute":
                return derive(ref.segments, policy.root)
            case "coded":
                return ref.code or text
            case _:
                body, _note = parse_annotated_item(ref.text)
                if policy.plain_as_path:
                    return derive([s.strip() for s in body.split("/") if s.strip()], policy.root)
                return body

    def normalize_entities(
        self, policy: ReferencePolicy, derive_id: DeriveIdFn = derive_entity_id,
    ) -> list[Entity]:
        """Rewrite every entity's raw reference tokens against its effective path."""
        out: list[Entity] = []
        for entity in self._arena.values():
            match self.effective_path(entity.external_id):
                case Ok(value=path):
                    current_path = path
                case Err():
                    current_path = ()
            changes: dict[str, tuple[str, ...]] = {}
            for attr, target in REFERENCE_TARGETS.items():
                tokens: tuple[str, ...] = getattr(entity, attr)
                if not tokens:
                    continue
                ids: list[str] = []
                for token in tokens:
                    resolved = self.normalize_reference(
                        token,
                        current_path=current_path,
                        drg=entity.drg,
                        target_type=target,
                        policy=policy,
                        derive_id=derive_id,
                    )
                    if resolved and resolved not in ids:
                        ids.append(resolved)
                if tuple(ids) != tokens:
                    changes[attr] = tuple(ids)
            out.append(replace(entity, **changes) if changes else entity)
        return out

    # -- validation ---------------------------------------------------------

    def validate(self, documents: Iterable[ReferenceDocument] = ()) -> ReferenceReport:
        """Count resolved / unresolved references per kind; one warning per miss."""
        document_ids = {d.external_id for d in documents}
        totals: dict[str, list[int]] = {kind: [0, 0] for kind in _KIND_LABELS}
        issues: list[ValidationIssue] = []

        def check(kind: str, entity: Entity, target: str, known: bool) -> None:
            totals[kind][0] += 1
            if known:
                totals[kind][1] += 1
                return
            issues.append(ValidationIssue(
                "warning",
                "unresolved_reference",
                f"{entity.type} {entity.external_id!r}: {_KIND_LABELS[kind].lower()} "
                f"target {target!r} not found",
                entity_type=entity.type,
                title=entity.title,
                path=entity.path or (),
                external_id=entity.external_id,
            ))

        for entity in self._arena.values():
            for attr in REFERENCE_TARGETS:
                for target in getattr(entity, attr):
                    check(attr, entity, target, target in self._arena)
            for doc in entity.document_references:
                check("document_references", entity, doc.document_external_id,
                      doc.document_external_id in document_ids)
            if entity.parent is not None:
                check("refines", entity, entity.parent, entity.parent in self._arena)
                result = self.effective_path(entity.external_id)
                if isinstance(result, Err) and "cycle" in result.error:
                    issues.append(ValidationIssue(
                        "warning", "refinement_cycle", result.error,
                        entity_type=entity.type, title=entity.title,
                        external_id=entity.external_id,
                    ))

        tallies = {kind: ReferenceTally(total, resolved) for kind, (total, resolved) in totals.items()}
        for kind, tally in tallies.items():
            if tally.total:
                log.info(
                    "%s validation: %d/%d resolved (%d unresolved)",
                    _KIND_LABELS[kind], tally.resolved, tally.total, tally.unresolved,
                )
        for issue in issues:
            log.warning(issue.message)
        return ReferenceReport(tallies, tuple(issues))
