"""Tests for odp.walker module."""
import pytest

from odp.dialects.base import Dialect
from odp.external_ids import derive_flat_id
from odp.types import Cell, DocumentNode, Entity, Table
from odp.walker import (
    Classification,
    Extraction,
    WalkContext,
    WalkOutcome,
    initial_context,
    strip_numbering,
    walk_sections,
)


def _table(*pairs: tuple[str, str]) -> Table:
    return Table(tuple((Cell(label), Cell(value)) for label, value in pairs))


def _detect(node: DocumentNode, ctx: WalkContext) -> Classification:
    if node.tables:
        return Classification("entity", "ON")
    if node.title == "Hidden":
        return Classification("skip")
    return Classification("folder")


def _extract(node: DocumentNode, ctx: WalkContext, entity_type) -> Extraction:
    path, parent = ctx.placement
    entity = Entity(
        type=entity_type,
        title=node.title,
        external_id=ctx.entity_id(entity_type, node.title, path=path, parent_id=parent),
        drg=ctx.drg,
        path=path,
        parent=parent,
    )
    return Extraction((entity,))


TOY = Dialect(name="toy", drg="TOY", detect_entity_type=_detect, extract_fields=_extract)


class TestStripNumbering:
    def test_forms(self) -> None:
        assert strip_numbering("4.2.1 Flight Planning") == "Flight Planning"
        assert strip_numbering("01 - Title") == "Title"
        assert strip_numbering("[ON-1] Need") == "Need"
        assert strip_numbering(None) == ""


class TestWalkSections:
    def _tree(self) -> list[DocumentNode]:
        need = DocumentNode(
            "Need", 3, tables=(_table(("k", "v")),),
            children=(DocumentNode("Sub need", 4, tables=(_table(("k", "v")),)),),
        )
        return [
            DocumentNode("1 Root", 1, tables=(_table(("k", "v")),), children=(
                DocumentNode("2.1 Planning", 2, children=(need,)),
                DocumentNode("Hidden", 2, children=(
                    DocumentNode("Lost", 3, tables=(_table(("k", "v")),)),
                )),
            )),
        ]

    def test_level_one_never_extracted_or_in_path(self) -> None:
        outcome = walk_sections(self._tree(), TOY)
        titles = [e.title for e in outcome.entities]
        assert "1 Root" not in titles
        assert outcome.entities[0].path == ("Planning",)

    def test_nested_entity_refines_container(self) -> None:
        outcome = walk_sections(self._tree(), TOY)
        need, sub = outcome.entities
        assert need.external_id == "on:toy/planning/need"
        assert sub.parent == need.external_id
        assert sub.path is None
        assert sub.external_id == "on:toy/on:toy/planning/need/sub_need"

    def test_dialect_derivation_used_for_ids(self) -> None:
        flat = Dialect(
            name="flat", drg="TOY", detect_entity_type=_detect, extract_fields=_extract,
            derive_external_id=derive_flat_id,
        )
        need, sub = walk_sections(self._tree(), flat).entities
        assert need.external_id == "on:toy/need"
        assert sub.external_id == "on:toy/sub_need"
        assert sub.parent == "on:toy/need"

    def test_skip_prunes_subtree(self) -> None:
        outcome = walk_sections(self._tree(), TOY)
        assert all(e.title != "Lost" for e in outcome.entities)

    def test_rows_dialect_rejected(self) -> None:
        rows_only = Dialect(
            name="rows", drg="X", extract_rows=lambda sheets, ctx: WalkOutcome(), sheets=("S",),
        )
        with pytest.raises(ValueError, match="does not read section trees"):
            walk_sections([], rows_only)
        with pytest.raises(ValueError, match="declares no sheets"):
            Dialect(name="rows", drg="X", extract_rows=lambda sheets, ctx: WalkOutcome())

    def test_folder_in_path(self) -> None:
        scoped = Dialect(
            name="scoped", drg="TOY", detect_entity_type=_detect, extract_fields=_extract,
            folder_in_path=True,
        )
        assert initial_context(scoped, folder="iDLADP").path == ("iDLADP",)
        assert initial_context(TOY, folder="iDLADP").path == ()


class TestWalkOutcome:
    def _entity(self, statement: str | None = None) -> Entity:
        return Entity(type="ON", title="A", external_id="on:x/a", drg="X", statement=statement)

    def test_duplicate_dropped_with_warning(self) -> None:
        outcome = WalkOutcome()
        assert outcome.add_entity(self._entity())
        assert not outcome.add_entity(self._entity())
        assert len(outcome.entities) == 1
        assert outcome.issues[0].kind == "duplicate_id"
        assert outcome.issues[0].severity == "warning"

    def test_strict_duplicates_are_errors(self) -> None:
        outcome = WalkOutcome(strict_unique_ids=True)
        outcome.add_entity(self._entity())
        outcome.add_entity(self._entity())
        assert outcome.issues[0].severity == "error"

    def test_merge_prefers_statement(self) -> None:
        outcome = WalkOutcome(merge_duplicates=True)
        outcome.add_entity(self._entity())
        assert outcome.add_entity(self._entity("s"))
        assert outcome.entities[0].statement == "s"
        assert not outcome.add_entity(self._entity())
        assert outcome.issues == []

    def test_context_placement(self) -> None:
        parent = self._entity()
        assert WalkContext("X", path=("A",)).placement == (("A",), None)
        assert WalkContext("X", path=("A",), parent=parent).placement == (None, "on:x/a")
        assert WalkContext("X").placement == (None, None)
