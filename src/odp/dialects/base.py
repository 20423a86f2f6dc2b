"""Dialect strategy type and registry.

A dialect captures one drafting group's document layout convention. It is a
plain frozen record of callables and policies, not a class hierarchy: each
dialect module builds one ``Dialect`` value with the capabilities it has
(section-tree dialects provide ``detect_entity_type`` + ``extract_fields``;
spreadsheet dialects provide ``extract_rows`` plus the ``sheets`` it reads)
and leaves the rest at their defaults. ``derive_external_id`` is how the
dialect turns (type, drg, title, placement) into an id; the walker hands it
to extractors through ``WalkContext.entity_id`` and the pipeline uses it
again when reference tokens are normalized.

``DialectRegistry`` maps ``DRG`` or ``DRG/folder`` keys to dialects. Lookup
is exact: a folder-scoped dialect is only found under its ``DRG/folder``
keys, and an unknown key raises ``DialectNotFoundError``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, TypeAlias

from odp.external_ids import derive_entity_id
from odp.types import DocumentNode, EntityType, ReferenceDocument
from odp.walker import Classification, DeriveIdFn, Extraction, WalkContext, WalkOutcome

DetectFn: TypeAlias = Callable[[DocumentNode, WalkContext], Classification]
ExtractFn: TypeAlias = Callable[[DocumentNode, WalkContext, EntityType], Extraction]
Rows: TypeAlias = list[dict[str, Any]]
RowsFn: TypeAlias = Callable[[Mapping[str, Rows], WalkContext], WalkOutcome]
FinalizeFn: TypeAlias = Callable[[WalkOutcome, WalkContext], WalkOutcome]


class DialectNotFoundError(LookupError):
    """No dialect registered under the requested DRG / folder key."""


@dataclass(frozen=True, slots=True)
class ReferencePolicy:
    """How raw reference tokens written by this dialect become external ids.

    ``root`` prefixes absolute (``/A/B/Title``) references; ``plain_as_path``
    treats bare ``A/B/Title`` text as a path reference instead of a literal id;
    ``ignore_segments`` (lower-cased) are dropped from written paths, for
    layouts whose authors copy container headings such as ``ONs`` into them.
    """
    root: tuple[str, ...] = ()
    plain_as_path: bool = False
    ignore_segments: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class Dialect:
    name: str
    drg: str
    detect_entity_type: DetectFn | None = None
    extract_fields: ExtractFn | None = None
    extract_rows: RowsFn | None = None
    sheets: tuple[str, ...] = ()            # sheets extract_rows reads, first is the default
    finalize: FinalizeFn | None = None
    derive_external_id: DeriveIdFn = derive_entity_id
    reference_policy: ReferencePolicy = field(default_factory=ReferencePolicy)
    reference_documents: tuple[ReferenceDocument, ...] = ()
    folders: tuple[str, ...] = ()           # folder-scoped when non-empty
    refines_nested: bool = True             # nested entity nodes refine their container
    folder_in_path: bool = False            # prepend the folder to every path
    extract_at_root: bool = False           # level-1 nodes may carry entity content
    merge_duplicates: bool = False          # prefer the duplicate that has a statement

    def __post_init__(self) -> None:
        tree = self.detect_entity_type is not None and self.extract_fields is not None
        if not tree and self.extract_rows is None:
            raise ValueError(
                f"Dialect {self.name!r} needs detect_entity_type + extract_fields or extract_rows"
            )
        if self.extract_rows is not None and not self.sheets:
            raise ValueError(f"Dialect {self.name!r} reads rows but declares no sheets")

    @property
    def reads_rows(self) -> bool:
        return self.extract_rows is not None

    def policy_for(self, folder: str | None) -> ReferencePolicy:
        """Reference policy with the folder as absolute root when folder-scoped."""
        if self.folder_in_path and folder and not self.reference_policy.root:
            return replace(self.reference_policy, root=(folder,))
        return self.reference_policy


@dataclass(slots=True)
class DialectRegistry:
    _dialects: dict[str, Dialect] = field(default_factory=dict)

    @staticmethod
    def key(drg: str, folder: str | None = None) -> str:
        return f"{drg}/{folder}" if folder else drg

    def register(self, dialect: Dialect, *, drg: str | None = None) -> None:
        """Register under ``drg`` (default: the dialect's) or its folder keys."""
        target = drg or dialect.drg
        if dialect.folders:
            for folder in dialect.folders:
                self._dialects[self.key(target, folder)] = dialect
        else:
            self._dialects[target] = dialect

    def get(self, drg: str, folder: str | None = None) -> Dialect:
        """Exact-match lookup.

        ``DRG/folder`` is tried first; a dialect registered under the bare
        ``DRG`` is not folder-scoped and accepts any folder qualifier.

        Raises:
            DialectNotFoundError: nothing registered for the key.
        """
        if folder:
            scoped = self._dialects.get(self.key(drg, folder))
            if scoped is not None:
                return scoped
        plain = self._dialects.get(drg)
        if plain is not None:
            return plain
        wanted = self.key(drg, folder)
        available = ", ".join(sorted(self._dialects)) or "none"
        raise DialectNotFoundError(
            f"No import dialect registered for {wanted!r} (available: {available})"
        )

    def keys(self) -> list[str]:
        return sorted(self._dialects)

    def __contains__(self, key: str) -> bool:
        return key in self._dialects
