"""Tests for odp.dialects.standard and the dialect registry."""
import pytest

from odp.dialects import (
    IDL_SECTIONS_DIALECT,
    NM_B2B_DIALECT,
    DialectNotFoundError,
    build_default_registry,
    make_standard_dialect,
)
from odp.dialects.base import Dialect, ReferencePolicy
from odp.dialects.fields import (
    MarkerScanner,
    compose_sections,
    field_map,
    is_placeholder,
    plain_text,
    resolve_stakeholders,
)
from odp.rich_text import delta_to_markup
from odp.types import AnnotatedReference, Cell, DocumentNode, Table
from odp.walker import walk_sections


def _table(*pairs: tuple[str, str]) -> Table:
    return Table(tuple((Cell(label), Cell(value)) for label, value in pairs))


def _document() -> list[DocumentNode]:
    need = DocumentNode(
        "[ON-1] Need A", 3,
        tables=(_table(("Code", "ON-1"), ("Statement", "The **need**.")),),
        children=(DocumentNode(
            "[OR-1] Req", 4,
            tables=(_table(
                ("Code", "OR-1"),
                ("Statement", "Do it."),
                ("Implements", "* ON-1 [Need A]"),
                ("References", "* document:conops [Section 2]"),
                ("Impacts Stakeholders", "* stakeholder:network/nm [end user]"),
            ),),
        ),),
    )
    return [
        DocumentNode("Operational Needs and Requirements", 1, children=(
            DocumentNode("2.1 Planning", 2, children=(need,)),
            DocumentNode("Loose", 2, tables=(_table(("Statement", "orphan")),)),
        )),
        DocumentNode("Operational Changes", 1, children=(
            DocumentNode("[OC-1] Change", 2, tables=(_table(
                ("Code", "OC-1"),
                ("Purpose", "Why"),
                ("Satisfies Requirements", "* OR-1 [Req]"),
                ("Visibility", "NETWORK"),
            ),)),
        )),
        DocumentNode("Appendix", 1, tables=(_table(("Code", "ON-9")),)),
    ]


class TestStandardDialect:
    def test_entities_and_placement(self) -> None:
        outcome = walk_sections(_document(), make_standard_dialect("4DT"))
        by_id = {e.external_id: e for e in outcome.entities}
        assert set(by_id) == {"ON-1", "OR-1", "OC-1"}
        need = by_id["ON-1"]
        assert need.type == "ON"
        assert need.title == "Need A"
        assert need.path == ("Planning",)
        assert delta_to_markup(need.statement) == "The **need**."
        req = by_id["OR-1"]
        assert req.type == "OR"
        assert req.parent == "ON-1"
        assert req.implemented_ons == ("ON-1 [Need A]",)
        assert req.document_references[0].note == "Section 2"
        assert req.impacts_stakeholders == (AnnotatedReference("stakeholder:network/nm", "end user"),)

    def test_changes(self) -> None:
        outcome = walk_sections(_document(), make_standard_dialect("4DT"))
        change = next(e for e in outcome.entities if e.type == "OC")
        assert change.title == "Change"
        assert change.visibility == "NETWORK"
        assert change.satisfies_requirements == ("OR-1 [Req]",)
        assert change.path is None and change.parent is None

    def test_legacy_type_heading(self) -> None:
        nodes = [DocumentNode("Operational Needs and Requirements", 1, children=(
            DocumentNode("Operational Requirements", 2, children=(
                DocumentNode("Thing", 3, tables=(_table(("Code", "X-1")),)),
            )),
        ))]
        (entity,) = walk_sections(nodes, make_standard_dialect("TCF")).entities
        assert entity.type == "OR"

    def test_idl_style_code_token(self) -> None:
        nodes = [DocumentNode("Operational Needs and Requirements", 1, children=(
            DocumentNode("[iDL-OR-03-01] Thing", 2, tables=(_table(("Code", "iDL-OR-03-01")),)),
        ))]
        (entity,) = walk_sections(nodes, make_standard_dialect("TCF")).entities
        assert entity.type == "OR"
        assert entity.title == "Thing"

    def test_missing_code_is_error(self) -> None:
        nodes = [DocumentNode("Operational Changes", 1, children=(
            DocumentNode("No code", 2, tables=(_table(("Purpose", "p")),)),
        ))]
        outcome = walk_sections(nodes, make_standard_dialect("TCF"))
        assert outcome.entities == []
        assert outcome.issues[0].kind == "missing_field"
        assert outcome.issues[0].severity == "error"


class TestRegistry:
    def test_folder_scoped_exact_match(self) -> None:
        registry = build_default_registry()
        assert registry.get("IDL", "iDLADP") is IDL_SECTIONS_DIALECT
        assert "IDL/iDLADP" in registry
        with pytest.raises(DialectNotFoundError, match="IDL/unknown"):
            registry.get("IDL", "unknown")
        with pytest.raises(DialectNotFoundError):
            registry.get("IDL")

    def test_plain_drg_accepts_any_folder(self) -> None:
        registry = build_default_registry()
        assert registry.get("NM_B2B") is NM_B2B_DIALECT
        assert registry.get("NM_B2B", "anything") is NM_B2B_DIALECT
        assert registry.get("NMUI").name == "standard:NMUI"
        assert registry.get("4DT").name == "four_dt"
        assert registry.get("AIRPORT").name == "airport"
        assert registry.get("ASM_ATFCM").reads_rows

    def test_unknown_drg(self) -> None:
        with pytest.raises(DialectNotFoundError, match="available"):
            build_default_registry().get("NOPE")

    def test_dialect_requires_capability(self) -> None:
        with pytest.raises(ValueError):
            Dialect(name="empty", drg="X")

    def test_policy_for_folder(self) -> None:
        assert IDL_SECTIONS_DIALECT.policy_for("iDLADP").root == ("iDLADP",)
        assert NM_B2B_DIALECT.policy_for("x") == NM_B2B_DIALECT.reference_policy
        assert ReferencePolicy().root == ()


class TestFieldHelpers:
    def test_field_map_two_and_four_columns(self) -> None:
        table = Table((
            (Cell("**Code:**"), Cell("ON-1")),
            (Cell("Title"), Cell("T"), Cell("Owner"), Cell("NM")),
            (Cell("code"), Cell("ignored")),
        ))
        assert field_map([table]) == {"code": "ON-1", "title": "T", "owner": "NM"}

    def test_placeholders(self) -> None:
        assert is_placeholder("Click or tap here to enter text.")
        assert is_placeholder("  **TBD** ")
        assert is_placeholder(None)
        assert not is_placeholder("real text")

    def test_plain_text(self) -> None:
        assert plain_text("**bold** and *it*") == "bold and it"
        assert plain_text("- item") == "item"

    def test_compose_sections(self) -> None:
        assert compose_sections("Base", ("Extra", "more"), ("Empty", "TBD")) == (
            "Base\n\n**Extra**\n\nmore"
        )
        assert compose_sections(None, ("Empty", None)) is None

    def test_marker_scanner_longest_prefix(self) -> None:
        scanner = MarkerScanner({"Flow": "flow", "Flow examples:": "examples"}, terminators=("Impact:",))
        fields = scanner.scan(["Flow examples: one", "two", "Impact: stop", "ignored", "Flow x"])
        assert fields == {"examples": "one\n\ntwo", "flow": "x"}

    def test_resolve_stakeholders(self) -> None:
        resolution = resolve_stakeholders("NMOC (end user)\nANSPs\nMartians")
        assert [r.external_id for r in resolution.resolved] == [
            "stakeholder:network/nm/nmoc",
            "stakeholder:network/ansp",
        ]
        assert resolution.unresolved_text == "Martians"
