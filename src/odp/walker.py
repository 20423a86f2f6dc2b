"""Section tree walker.

Traverses a document tree depth-first and asks a dialect, node by node, what
each section is:

- **entity**: the dialect extracts one or more entities from the node's
  content; entities found beneath it refine the last extracted entity;
- **folder**: the (numbering-stripped) title becomes a path segment for
  everything below, and any refinement parent is reset;
- **passthrough**: descend without adding a path segment, optionally setting
  an entity-type hint (``"ONs"``, ``"Operational Changes"``...);
- **skip**: do not descend.

Level-1 sections are always organizational: an entity or folder answer at
level 1 is downgraded to passthrough (keeping the type hint), so top-level
headings never appear in entity paths. A dialect that keeps entity tables
directly under level-1 headings opts in with ``extract_at_root``.

Traversal state lives in an immutable ``WalkContext`` rebuilt for every
recursion step; accumulated results go into a ``WalkOutcome`` created fresh
per call. Nothing is kept between runs.

Usage::

    outcome = walk_sections(nodes, dialect, folder="iDLADP")
    for entity in outcome.entities: ...
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

from odp.external_ids import derive_entity_id
from odp.types import DocumentNode, Entity, EntityType, ValidationIssue

if TYPE_CHECKING:
    from odp.config import PipelineConfig
    from odp.dialects.base import Dialect

log = logging.getLogger("odp.walker")

NodeRole: TypeAlias = Literal["entity", "folder", "passthrough", "skip"]
DeriveIdFn: TypeAlias = Callable[..., str]

_SECTION_NUMBER_RE = re.compile(r"^[\d.\s]+")
_CODE_PREFIX_RE = re.compile(r"^\[[^\]]+\]\s*")
_DASH_NUMBER_RE = re.compile(r"^\d+\s*-\s*")


def strip_numbering(title: str | None) -> str:
    """Remove leading section numbers, ``NN - `` prefixes and ``[CODE]`` prefixes."""
    if not title:
        return ""
    stripped = _DASH_NUMBER_RE.sub("", title.strip())
    stripped = _SECTION_NUMBER_RE.sub("", stripped).strip()
    return _CODE_PREFIX_RE.sub("", stripped).strip()


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Classification:
    role: NodeRole
    entity_type: EntityType | None = None   # entity type, or hint for descendants
    segment: str | None = None              # folder path segment (defaults to stripped title)


@dataclass(frozen=True, slots=True)
class WalkContext:
    """Traversal state handed to the dialect at each node."""
    drg: str
    folder: str | None = None
    path: tuple[str, ...] = ()
    parent: Entity | None = None
    entity_type: EntityType | None = None
    section_titles: tuple[str, ...] = ()
    derive_id: DeriveIdFn = derive_entity_id

    def entity_id(
        self,
        entity_type: EntityType,
        title: str,
        *,
        path: Sequence[str] | None = None,
        parent_id: str | None = None,
    ) -> str:
        """External id for an entity of this drafting group, via the dialect's derivation."""
        return self.derive_id(entity_type, self.drg, title, path=path, parent_id=parent_id)

    @property
    def placement(self) -> tuple[tuple[str, ...] | None, str | None]:
        """(path, parent id) for an entity created at this point; never both."""
        if self.parent is not None:
            return None, self.parent.external_id
        return (self.path or None), None


@dataclass(frozen=True, slots=True)
class Extraction:
    """What a dialect pulled out of one entity node."""
    entities: tuple[Entity, ...] = ()
    issues: tuple[ValidationIssue, ...] = ()
    extras: tuple[Any, ...] = ()            # dialect-private records for finalize


@dataclass(slots=True)
class WalkOutcome:
    """Accumulator for one walk. Entities keep document order."""
    entities: list[Entity] = field(default_factory=list)
    issues: list[ValidationIssue] = field(default_factory=list)
    extras: list[Any] = field(default_factory=list)
    merge_duplicates: bool = False
    strict_unique_ids: bool = False
    _index: dict[str, int] = field(default_factory=dict)

    def add_entity(self, entity: Entity) -> bool:
        """Add an entity, applying the duplicate-id policy.

        Returns True when the entity was kept (or replaced a poorer one).
        """
        existing_at = self._index.get(entity.external_id)
        if existing_at is None:
            self._index[entity.external_id] = len(self.entities)
            self.entities.append(entity)
            return True
        existing = self.entities[existing_at]
        if self.merge_duplicates and entity.statement and not existing.statement:
            self.entities[existing_at] = entity
            log.debug("Replaced %s with a richer duplicate", entity.external_id)
            return True
        if self.merge_duplicates and existing.statement and not entity.statement:
            log.debug("Kept richer %s, ignoring empty duplicate", entity.external_id)
            return False
        self.issues.append(ValidationIssue(
            severity="error" if self.strict_unique_ids else "warning",
            kind="duplicate_id",
            message=f"Duplicate external id {entity.external_id!r}; later occurrence dropped",
            entity_type=entity.type,
            title=entity.title,
            path=entity.path or (),
            external_id=entity.external_id,
        ))
        return False

    def replace_entity(self, entity: Entity) -> None:
        """Swap in a rewritten entity with the same external id."""
        self.entities[self._index[entity.external_id]] = entity

    def get(self, external_id: str) -> Entity | None:
        at = self._index.get(external_id)
        return self.entities[at] if at is not None else None

    def absorb(self, extraction: Extraction) -> list[Entity]:
        kept = [e for e in extraction.entities if self.add_entity(e)]
        self.issues.extend(extraction.issues)
        self.extras.extend(extraction.extras)
        return kept

    def warn(self, kind: str, message: str, **details: Any) -> None:
        log.warning(message)
        self.issues.append(ValidationIssue("warning", kind, message, **details))

    def by_type(self, entity_type: EntityType) -> list[Entity]:
        return [e for e in self.entities if e.type == entity_type]


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def initial_context(dialect: Dialect, *, drg: str | None = None, folder: str | None = None) -> WalkContext:
    path: tuple[str, ...] = ()
    if dialect.folder_in_path and folder:
        path = (folder,)
    return WalkContext(
        drg=drg or dialect.drg, folder=folder, path=path, derive_id=dialect.derive_external_id,
    )


def walk_sections(
    nodes: list[DocumentNode] | tuple[DocumentNode, ...],
    dialect: Dialect,
    *,
    drg: str | None = None,
    folder: str | None = None,
    config: PipelineConfig | None = None,
) -> WalkOutcome:
    """Walk a document tree and extract entities with ``dialect``.

    Args:
        nodes: Root sections (normally level 1).
        dialect: Node classification / extraction strategy.
        drg: Drafting group written on entities (defaults to the dialect's).
        folder: Folder qualifier for folder-scoped dialects.
        config: Pipeline configuration (duplicate-id policy).

    Returns:
        WalkOutcome with entities in document order, issues and dialect
        extras. The dialect's ``finalize`` hook has already run.
    """
    if dialect.detect_entity_type is None or dialect.extract_fields is None:
        raise ValueError(f"Dialect {dialect.name!r} does not read section trees")
    ctx = initial_context(dialect, drg=drg, folder=folder)
    outcome = WalkOutcome(
        merge_duplicates=dialect.merge_duplicates,
        strict_unique_ids=bool(config and config.strict_unique_ids),
    )
    detect, extract = dialect.detect_entity_type, dialect.extract_fields
    for node in nodes:
        _walk(node, ctx, dialect, detect, extract, outcome)
    if dialect.finalize is not None:
        outcome = dialect.finalize(outcome, ctx)
    log.info(
        "Walked %d root section(s) with %s: %d entities, %d issue(s)",
        len(nodes), dialect.name, len(outcome.entities), len(outcome.issues),
    )
    return outcome


def _walk(
    node: DocumentNode,
    ctx: WalkContext,
    dialect: Dialect,
    detect: Callable[[DocumentNode, WalkContext], Classification],
    extract: Callable[[DocumentNode, WalkContext, EntityType], Extraction],
    outcome: WalkOutcome,
) -> None:
    cls = detect(node, ctx)
    if node.level == 1 and (
        cls.role == "folder" or (cls.role == "entity" and not dialect.extract_at_root)
    ):
        cls = Classification("passthrough", entity_type=cls.entity_type)
    titles = ctx.section_titles + (node.title,)
    log.debug("%s %r -> %s", "  " * (node.level - 1), node.title, cls.role)

    child_ctx: WalkContext
    match cls.role:
        case "skip":
            return
        case "passthrough":
            child_ctx = replace(
                ctx, entity_type=cls.entity_type or ctx.entity_type, section_titles=titles,
            )
        case "folder":
            segment = cls.segment if cls.segment is not None else strip_numbering(node.title)
            child_ctx = replace(
                ctx,
                path=ctx.path + (segment,) if segment else ctx.path,
                parent=None,
                entity_type=cls.entity_type or ctx.entity_type,
                section_titles=titles,
            )
        case "entity":
            entity_type = cls.entity_type or ctx.entity_type
            if entity_type is None:
                outcome.warn(
                    "unknown_type",
                    f"Cannot determine entity type for section {node.title!r}; treated as organizational",
                    title=node.title,
                    path=ctx.path,
                )
                child_ctx = replace(ctx, section_titles=titles)
            else:
                kept = outcome.absorb(extract(node, ctx, entity_type))
                if kept and dialect.refines_nested and kept[-1].type != "OC":
                    child_ctx = replace(ctx, parent=kept[-1], section_titles=titles)
                else:
                    child_ctx = replace(ctx, section_titles=titles)

    for child in node.children:
        _walk(child, child_ctx, dialect, detect, extract, outcome)
