"""Tests for the drafting-group dialects in odp.dialects."""
from odp.dialects.airport import AIRPORT_DIALECT, chapter, parse_regulatory_reference, parse_stakeholders
from odp.dialects.asm_atfcm import requirement_notes
from odp.dialects.asm_atfcm import extract_rows as asm_atfcm_rows
from odp.dialects.flow import FLOW_DIALECT, strip_version
from odp.dialects.four_dt import CONOPS as FOUR_DT_CONOPS
from odp.dialects.four_dt import extract_rows as four_dt_rows
from odp.dialects.four_dt import split_source
from odp.dialects.idl_sections import IDL_CONOPS, IDL_SECTIONS_DIALECT
from odp.dialects.idl_tables import IDL_TABLES_DIALECT, parse_paragraphs
from odp.dialects.nm_b2b import CIR_2021_116, CONOPS, NM_B2B_DIALECT
from odp.dialects.rerouting import (
    extract_rows,
    parse_year,
    split_change_description,
    split_need_definition,
)
from odp.rich_text import delta_plain_text, delta_to_markup
from odp.external_ids import derive_flat_id
from odp.types import AnnotatedReference, Cell, DocumentNode, DocumentReference, Milestone, Table
from odp.walker import WalkContext, walk_sections


def _table(*pairs: tuple[str, str]) -> Table:
    return Table(tuple((Cell(label), Cell(value)) for label, value in pairs))


# ---------------------------------------------------------------------------
# NM B2B
# ---------------------------------------------------------------------------


def nm_b2b_sections() -> list[DocumentNode]:
    return [DocumentNode("NM B2B", 1, children=(
        DocumentNode("Flight Management", 2, children=(
            DocumentNode("ONs", 3, children=(
                DocumentNode("Filing", 4, paragraphs=(
                    "Statement:", "Filing must work.", "Rationale: Because.",
                )),
            )),
            DocumentNode("ORs", 3, children=(
                DocumentNode("Validate", 4, paragraphs=(
                    "Statement: Validate plans.",
                    "Implemented ONs:",
                    "- ./Filing",
                    "References:",
                    "- document:nm_b2b_conops: Section 5",
                )),
            )),
        )),
    ))]


class TestNmB2b:
    def test_need_fields_and_default_conops(self) -> None:
        outcome = walk_sections(nm_b2b_sections(), NM_B2B_DIALECT)
        need = outcome.entities[0]
        assert need.external_id == "on:nm_b2b/flight_management/filing"
        assert need.path == ("Flight Management",)
        assert delta_plain_text(need.statement) == "Filing must work."
        assert delta_plain_text(need.rationale) == "Because."
        assert need.document_references == (
            DocumentReference(CONOPS.external_id, "Section: 'Flight Management'"),
        )

    def test_requirement_raw_references(self) -> None:
        outcome = walk_sections(nm_b2b_sections(), NM_B2B_DIALECT)
        req = outcome.entities[1]
        assert req.type == "OR"
        assert req.implemented_ons == ("./Filing",)
        assert req.document_references == (DocumentReference("document:nm_b2b_conops", "Section 5"),)

    def test_sections_without_statement_are_folders(self) -> None:
        nodes = [DocumentNode("NM B2B", 1, children=(
            DocumentNode("ONs", 2, children=(
                DocumentNode("Group", 3, children=(
                    DocumentNode("Leaf", 4, paragraphs=("Statement: s",)),
                )),
            )),
        ))]
        (need,) = walk_sections(nodes, NM_B2B_DIALECT).entities
        assert need.path == ("Group",)
        assert need.document_references[0].note == "Section: ''"

    def test_blank_title_is_missing_field_error(self) -> None:
        nodes = [DocumentNode("NM B2B", 1, children=(
            DocumentNode("ONs", 2, children=(
                DocumentNode("   ", 3, paragraphs=("Statement: s",)),
                DocumentNode("Kept", 3, paragraphs=("Statement: t",)),
            )),
        ))]
        outcome = walk_sections(nodes, NM_B2B_DIALECT)
        assert [e.title for e in outcome.entities] == ["Kept"]
        (issue,) = outcome.issues
        assert (issue.severity, issue.kind, issue.entity_type) == ("error", "missing_field", "ON")


# ---------------------------------------------------------------------------
# iDL sections
# ---------------------------------------------------------------------------


def idl_sections() -> list[DocumentNode]:
    return [
        DocumentNode("4 Operational Needs", 1, section_number="4", children=(
            DocumentNode("4.1 Data", 2, children=(
                DocumentNode("4.1.1 Publish", 3, paragraphs=(
                    "<p><b>Statement:</b> Publish data.</p>",
                    "<p>Rationale: Needed.</p>",
                    "<p>ConOPS References:</p>",
                    "<ul><li>Section 3.2</li><li>&lt;Insert reference&gt;</li></ul>",
                )),
            )),
        )),
        DocumentNode("5 Operational Requirements", 1, section_number="5", children=(
            DocumentNode("5.1 Check", 2, paragraphs=(
                "Statement: Check data.",
                "Implemented ONs:",
                "* /Data/Publish",
                "Dependencies: ./Other",
            )),
        )),
        DocumentNode("6 Annex", 1, children=(
            DocumentNode("Stray", 2, paragraphs=("Statement: ignored",)),
        )),
    ]


class TestIdlSections:
    def test_folder_prefixes_every_path(self) -> None:
        outcome = walk_sections(idl_sections(), IDL_SECTIONS_DIALECT, folder="iDLADP")
        need, req = outcome.entities
        assert need.external_id == "on:idl/idladp/data/publish"
        assert need.path == ("iDLADP", "Data")
        assert req.path == ("iDLADP",)

    def test_html_fields(self) -> None:
        need = walk_sections(idl_sections(), IDL_SECTIONS_DIALECT, folder="iDLADP").entities[0]
        assert "Publish data." in delta_plain_text(need.statement)
        assert "Statement" not in delta_plain_text(need.statement)
        assert "Needed." in delta_plain_text(need.rationale)

    def test_conops_placeholder_skipped(self) -> None:
        need = walk_sections(idl_sections(), IDL_SECTIONS_DIALECT, folder="iDLADP").entities[0]
        assert need.document_references == (DocumentReference(IDL_CONOPS.external_id, "Section 3.2"),)

    def test_requirement_references(self) -> None:
        req = walk_sections(idl_sections(), IDL_SECTIONS_DIALECT, folder="iDLADP").entities[1]
        assert req.implemented_ons == ("/Data/Publish",)
        assert req.depends_on_requirements == ("./Other",)

    def test_unknown_root_section_skipped(self) -> None:
        titles = [e.title for e in walk_sections(idl_sections(), IDL_SECTIONS_DIALECT).entities]
        assert "Stray" not in titles

    def test_number_only_title_is_missing_field_error(self) -> None:
        nodes = [DocumentNode("4 Operational Needs", 1, section_number="4", children=(
            DocumentNode("4.1", 2, paragraphs=("Statement: Untitled.",)),
        ))]
        outcome = walk_sections(nodes, IDL_SECTIONS_DIALECT, folder="iDLADP")
        assert outcome.entities == []
        assert [(i.severity, i.kind) for i in outcome.issues] == [("error", "missing_field")]


# ---------------------------------------------------------------------------
# iDL tables
# ---------------------------------------------------------------------------


def idl_table_sections() -> list[DocumentNode]:
    paragraphs = (
        "Operational Need (ON)",
        "**ON #:** iDL-ON-10-01",
        "**Title:** Publish data",
        "**Need Statement:** Data shall be published.",
        "**Stakeholders:**",
        "NM",
        "Martians",
        "**OR #:** iDL-OR-10-01",
        "**Title:** Validate",
        "**Detailed Requirement:** Check it.",
        "**ON Reference:** iDL-ON-10-01",
        "**OR #:** iDL-OR-10-02",
        "**Title:** Orphan",
        "**Detailed Requirement:** x",
        "**ON Reference:** iDL-ON-99-99",
        "**UC #:** iDL-UC-10-01",
        "**Title:** Daily use",
        "**Flow of Actions:** Step one",
        "**ON Reference:** iDL-ON-10-01",
    )
    table = _table(
        ("**OR #:**", "iDL-OR-11-01"),
        ("**Title:**", "Table requirement"),
        ("**Detailed Requirement:**", "Do it."),
        ("**ON Reference:**", "iDL-ON-10-01"),
    )
    return [DocumentNode("AURA", 1, paragraphs=paragraphs, children=(
        DocumentNode("Tables", 2, tables=(table,)),
    ))]


class TestIdlTables:
    def _outcome(self):
        return walk_sections(idl_table_sections(), IDL_TABLES_DIALECT, folder="AURA")

    def test_codes_are_ids(self) -> None:
        ids = [e.external_id for e in self._outcome().entities]
        assert ids == ["iDL-ON-10-01", "iDL-OR-10-01", "iDL-OR-10-02", "iDL-OR-11-01"]

    def test_everything_at_folder(self) -> None:
        assert all(e.path == ("AURA",) and e.parent is None for e in self._outcome().entities)

    def test_use_case_injected_into_flows(self) -> None:
        need = self._outcome().entities[0]
        markup = delta_to_markup(need.flows)
        assert "**Daily use**" in markup
        assert "Step one" in markup

    def test_unknown_on_reference_warned_and_dropped(self) -> None:
        outcome = self._outcome()
        orphan = outcome.get("iDL-OR-10-02")
        assert orphan is not None
        assert orphan.implemented_ons == ()
        assert outcome.get("iDL-OR-10-01").implemented_ons == ("iDL-ON-10-01",)
        assert outcome.get("iDL-OR-11-01").implemented_ons == ("iDL-ON-10-01",)
        assert any(
            i.kind == "unresolved_reference" and "iDL-ON-99-99" in i.message for i in outcome.issues
        )

    def test_stakeholders(self) -> None:
        outcome = self._outcome()
        need = outcome.entities[0]
        assert [s.external_id for s in need.impacts_stakeholders] == ["stakeholder:network/nm"]
        assert "Martians" in delta_plain_text(need.private_notes)
        assert any(i.kind == "unresolved_stakeholder" for i in outcome.issues)

    def test_record_split(self) -> None:
        records = parse_paragraphs(["**ON #:**", "iDL-ON-01-02", "**Title:** Late code"])
        assert records[0].fields == {"code": "iDL-ON-01-02", "title": "Late code"}


# ---------------------------------------------------------------------------
# FLOW
# ---------------------------------------------------------------------------


def flow_sections() -> list[DocumentNode]:
    return [DocumentNode("FLOW document", 1, children=(
        DocumentNode("01 - Capacity", 2, children=(
            DocumentNode("Operational Need (ON)", 3, identifier="ON-7", tables=(_table(
                ("Title:", "Balance demand"),
                ("Need Statement:", "Balance it."),
                ("Rationale:", "Because."),
            ),)),
            DocumentNode("Operational Requirement (OR)", 3, tables=(_table(
                ("Title:", "Measure load"),
                ("Detailed Requirement:", "Measure."),
                ("ON Reference:", "ON-7_v1.0"),
                ("Dependencies:", "Other req; Unknown"),
                ("Stakeholders:", "FMP and Martians"),
            ),)),
            DocumentNode("Operational Requirement (OR)", 3, tables=(_table(
                ("Title:", "Other req"),
                ("Detailed Requirement:", "Other."),
                ("Rationale:", "R."),
            ),)),
            DocumentNode("Operational Requirement (OR)", 3, tables=(_table(
                ("Title:", "No statement"),
                ("Detailed Requirement:", "Click or tap here to enter text."),
            ),)),
            DocumentNode("Use Case", 3, tables=(_table(
                ("ON Reference:", "Balance demand"),
                ("Flow:", "Step"),
            ),)),
        )),
    ))]


class TestFlow:
    def _outcome(self):
        return walk_sections(flow_sections(), FLOW_DIALECT)

    def test_titles_from_table_and_folder_segment(self) -> None:
        need = self._outcome().entities[0]
        assert need.title == "Balance demand"
        assert need.path == ("Capacity",)
        assert need.external_id == "on:flow/capacity/balance_demand"
        assert "Identifier: ON-7" in delta_plain_text(need.private_notes)

    def test_missing_statement_dropped_with_error(self) -> None:
        outcome = self._outcome()
        assert "No statement" not in [e.title for e in outcome.entities]
        errors = [i for i in outcome.issues if i.severity == "error"]
        assert len(errors) == 1
        assert errors[0].kind == "missing_field"

    def test_missing_rationale_is_warning(self) -> None:
        warnings = [i for i in self._outcome().issues if i.kind == "missing_field" and i.severity == "warning"]
        assert [w.title for w in warnings] == ["Measure load"]

    def test_on_reference_and_dependencies(self) -> None:
        outcome = self._outcome()
        req = outcome.get("or:flow/capacity/measure_load")
        assert req.implemented_ons == ("on:flow/capacity/balance_demand",)
        assert req.depends_on_requirements == ("or:flow/capacity/other_req",)
        assert "Unknown" in delta_plain_text(req.private_notes)
        assert [s.external_id for s in req.impacts_stakeholders] == ["stakeholder:network/ansp/fmp"]

    def test_use_case_flows_by_title(self) -> None:
        need = self._outcome().get("on:flow/capacity/balance_demand")
        assert "Flow: Step" in delta_plain_text(need.flows)

    def test_strip_version(self) -> None:
        assert strip_version("ASM_ATFCM-ON-3_v1.0") == "ASM_ATFCM-ON-3"
        assert strip_version("  ") is None


# ---------------------------------------------------------------------------
# Rerouting
# ---------------------------------------------------------------------------


RRT_ROWS = [
    {
        "ON ID": "ON-1",
        "ON": "Reroute proposals",
        "ON Definition": "What: Propose reroutes. Why: Reduce delay. Focus: Summer",
        "OC ID": "RR-OC-1",
        "OC Name": "RR tool",
        "OC Description": "Long story. In essence: Short purpose.",
        "Target maturity": "2026",
        "Target implementation": "Q3 27",
        "Title": "Compute routes",
        "What (Detailed Requirement)": "Compute.",
        "Stakeholders": "FMP, External users / Martians",
    },
    {"ON ID": "ON-1", "OC ID": "RR-OC-1", "Title": "Rank routes", "What (Detailed Requirement)": "Rank."},
    {"Title": "", "ON ID": None},
]


class TestRerouting:
    def _outcome(self):
        return extract_rows({"NM-RR": RRT_ROWS}, WalkContext(drg="RRT"))

    def test_entities(self) -> None:
        outcome = self._outcome()
        assert [e.type for e in outcome.entities] == ["ON", "OC", "OR", "OR"]

    def test_change_milestones_and_satisfies(self) -> None:
        change = self._outcome().get("oc:rrt/rr_tool")
        assert change.milestones == (
            Milestone("M1", "wave:2026", ("API_PUBLICATION",)),
            Milestone("M2", "wave:2027", ("OPS_DEPLOYMENT",)),
        )
        assert change.satisfies_requirements == (
            "or:rrt/reroute_proposals/compute_routes",
            "or:rrt/reroute_proposals/rank_routes",
        )
        assert delta_plain_text(change.purpose) == "Short purpose."
        assert delta_plain_text(change.details) == "Long story."

    def test_requirements_implement_shared_need(self) -> None:
        outcome = self._outcome()
        need_id = "on:rrt/reroute_proposals/reroute_proposals"
        for req in outcome.by_type("OR"):
            assert req.implemented_ons == (need_id,)
            assert req.path == ("Reroute proposals",)
        first = outcome.by_type("OR")[0]
        assert [s.external_id for s in first.impacts_stakeholders] == ["stakeholder:network/ansp/fmp"]

    def test_need_definition_split(self) -> None:
        statement, rationale = split_need_definition("What: A. Why: B. Focus: C")
        assert statement == "A.\n\n**Focus:**\n\nC"
        assert rationale == "B."

    def test_helpers(self) -> None:
        assert parse_year("Q3 2027") == "2027"
        assert parse_year("27") == "2027"
        assert parse_year("soon") is None
        assert split_change_description("Only details") == (None, "Only details")


# ---------------------------------------------------------------------------
# 4DT
# ---------------------------------------------------------------------------


FOUR_DT_SHEETS = {
    "Operational Needs": [
        {
            "Title": "Plan trajectories",
            "Need Statement": "Share 4D trajectories.",
            "Rationale": "Predictability.",
            "Originator": "NM",
            "Source": "Workshop 2024 CONOPS Section 4.2",
        },
        {"Title": "  "},
    ],
    "Operational Requirements": [
        {
            "Title": "Exchange EFPL",
            "Detailed Requirement": "Exchange it.",
            "Fit Criteria": "Within one minute.",
            "Opportunities/Risks": "Fewer re-plans.",
            "Operational Need": "plan TRAJECTORIES",
            "Stakeholders": "AU, CIV or MIL ANSP / Martians",
            "CONOPS Section": "4.2",
            "Source Reference": "p. 12",
        },
        {"Title": "Lonely", "Operational Need": "Unknown need"},
    ],
}


class TestFourDt:
    def _outcome(self):
        return four_dt_rows(FOUR_DT_SHEETS, WalkContext(drg="4DT", derive_id=derive_flat_id))

    def test_flat_ids(self) -> None:
        ids = [e.external_id for e in self._outcome().entities]
        assert ids == ["on:4dt/plan_trajectories", "or:4dt/exchange_efpl", "or:4dt/lonely"]

    def test_need_source_split(self) -> None:
        need = self._outcome().entities[0]
        assert need.document_references == (DocumentReference(FOUR_DT_CONOPS.external_id, "Section 4.2"),)
        notes = delta_plain_text(need.private_notes)
        assert "Originator: NM" in notes
        assert "Workshop 2024" in notes
        assert FOUR_DT_CONOPS.external_id == "document:4d_trajectory_conops"

    def test_requirement_fields(self) -> None:
        req = self._outcome().get("or:4dt/exchange_efpl")
        assert req.implemented_ons == ("on:4dt/plan_trajectories",)
        assert [s.external_id for s in req.impacts_stakeholders] == [
            "stakeholder:network/airspace_user", "stakeholder:network/ansp",
        ]
        assert req.document_references == (DocumentReference(FOUR_DT_CONOPS.external_id, "4.2. p. 12"),)
        assert "**Fit Criteria:**" in delta_to_markup(req.statement)
        assert "Fewer re-plans." in delta_plain_text(req.rationale)

    def test_unknown_need_title_not_linked(self) -> None:
        assert self._outcome().get("or:4dt/lonely").implemented_ons == ()

    def test_split_source(self) -> None:
        assert split_source("Workshop CONOPS 3.1") == ("Workshop", "3.1")
        assert split_source("CONOPS") == (None, None)
        assert split_source("Interviews") == ("Interviews", None)


# ---------------------------------------------------------------------------
# ASM / ATFCM
# ---------------------------------------------------------------------------


ASM_ATFCM_ROWS = [
    {
        "#": 1,
        "ON Title:": "Share airspace",
        "ON Statement": "Share it.",
        "ON Rationale": "Because.",
        "Assigned to": "Team A",
        "CONOPS Improvement reference": "IMP-1",
        "OR Title:": "Publish AUP",
        "Detailed requirement:\r\nStatement": "Publish.",
        "Fit Criteria: (keep it under the statement)": "TBD",
        "Rationale:": "Needed.",
        "Opportunities & Risks:\r\n(keep)": "Faster",
        "Stakeholders:": "AMC; External Systems, Martians",
        "Dependencies:": "N/A",
        "Remark": "check",
        "Step": "Step 1",
    },
    {
        "#": 2,
        "ON Title:": "Share airspace",
        "ON Statement": "Share it more.",
        "CONOPS Improvement reference": "imp-1",
        "OR Title:": "Update AUP",
        "Detailed requirement:\nStatement": "Update.",
        "Step": "Step 1",
    },
    {"#": 3, "OR Title:": "Loose", "Step": "Step 2"},
]


class TestAsmAtfcm:
    def _outcome(self):
        ctx = WalkContext(drg="ASM_ATFCM", derive_id=derive_flat_id)
        return asm_atfcm_rows({"ON OR OC": ASM_ATFCM_ROWS}, ctx)

    def test_entity_order(self) -> None:
        assert [e.type for e in self._outcome().entities] == ["ON", "OR", "OR", "OR", "OC", "OC"]

    def test_need_aggregated_over_rows(self) -> None:
        need = self._outcome().get("on:asm_atfcm/share_airspace")
        statement = delta_plain_text(need.statement)
        assert "Share it." in statement
        assert "Share it more." in statement
        (reference,) = need.document_references
        assert reference.note == "CONOPS Improvement reference: IMP-1"
        assert delta_plain_text(need.private_notes) == "Assigned to: Team A"

    def test_requirement_fields(self) -> None:
        req = self._outcome().get("or:asm_atfcm/publish_aup")
        assert req.implemented_ons == ("on:asm_atfcm/share_airspace",)
        assert "Fit Criteria" not in delta_plain_text(req.statement)
        assert "Faster" in delta_plain_text(req.rationale)
        assert [s.external_id for s in req.impacts_stakeholders] == ["stakeholder:network/ansp/amc"]
        assert "Update." in delta_plain_text(self._outcome().get("or:asm_atfcm/update_aup").statement)
        assert self._outcome().get("or:asm_atfcm/loose").implemented_ons == ()

    def test_one_change_per_step(self) -> None:
        change = self._outcome().get("oc:asm_atfcm/step_1")
        assert change.satisfies_requirements == ("or:asm_atfcm/publish_aup", "or:asm_atfcm/update_aup")
        assert change.visibility == "NETWORK"
        assert self._outcome().get("oc:asm_atfcm/step_2").satisfies_requirements == ("or:asm_atfcm/loose",)

    def test_requirement_notes_skip_placeholders(self) -> None:
        notes = requirement_notes({"#": 7, "Dependencies:": "TBD", "Impacted Services:": "n/a", "Remark": "r"})
        assert notes == "# 7\n\nRemark: r"


# ---------------------------------------------------------------------------
# Airport
# ---------------------------------------------------------------------------


def airport_sections() -> list[DocumentNode]:
    return [
        DocumentNode("1 Introduction", 1, section_number="1", children=(
            DocumentNode("1.1 Summary", 2, section_number="1.1", tables=(
                _table(("ON #", "APT-ON-99"), ("Need statement", "Summary row")),
            )),
        )),
        DocumentNode("3 Turnaround", 1, section_number="3", children=(
            DocumentNode("3.1 Departure", 2, section_number="3.1", children=(
                DocumentNode("3.1.1 Share TOBT", 3, section_number="3.1.1", tables=(
                    _table(
                        ("ON #", "APT-ON-01"),
                        ("Need statement", "Share **TOBT**."),
                        ("Fit Criteria", "Always"),
                        ("Stakeholders", "NMOC (Airport Function, NOC)\nAircraft Operators\nMartians"),
                        ("Regulatory requirements", "CP1 Regulation 2021/116, AF4"),
                    ),
                    _table(("Use Case Title", "Morning peak"), ("Flow of Actions", "Step one")),
                )),
                DocumentNode("3.1.2 Publish TOBT", 3, section_number="3.1.2", tables=(
                    _table(
                        ("OR #", "APT-OR-01"),
                        ("Detailed Requirement", "Publish."),
                        ("ON Reference", "See APT-ON-01"),
                        ("Originator", "Airport DrG"),
                    ),
                )),
                DocumentNode("3.1.3 Use case", 3, section_number="3.1.3", tables=(
                    _table(("Use Case Title", "Late"), ("Flow of Actions", "Wait")),
                )),
                DocumentNode("3.1.4 Orphan", 3, section_number="3.1.4", tables=(
                    _table(("OR #", "APT-OR-02"), ("Detailed Requirement", "x"), ("ON Reference", "APT-ON-77")),
                )),
                DocumentNode("3.1.5", 3, section_number="3.1.5", tables=(_table(("OR #", "APT-OR-03")),)),
            )),
            DocumentNode("3.2 Acronyms", 2, section_number="3.2", children=(
                DocumentNode("3.2.1 Arrival", 3, section_number="3.2.1", tables=(
                    _table(("ON #", "APT-ON-02"), ("Need statement", "Arrive.")),
                )),
            )),
        )),
    ]


class TestAirport:
    def _outcome(self):
        return walk_sections(airport_sections(), AIRPORT_DIALECT)

    def test_chapters_and_paths(self) -> None:
        ids = [e.external_id for e in self._outcome().entities]
        assert ids == [
            "on:airport/departure/share_tobt",
            "or:airport/departure/publish_tobt",
            "or:airport/departure/orphan",
            "on:airport/arrival",
        ]

    def test_need_fields(self) -> None:
        need = self._outcome().entities[0]
        assert need.code == "APT-ON-01"
        assert "**Fit Criteria:**" in delta_to_markup(need.statement)
        assert "Requirement ID: APT-ON-01" in delta_plain_text(need.private_notes)
        assert need.impacts_stakeholders == (
            AnnotatedReference("stakeholder:network/nm/nmoc", "(Airport Function, NOC)"),
            AnnotatedReference("stakeholder:network/airspace_user/ao"),
        )
        assert need.document_references == (DocumentReference(CIR_2021_116.external_id, "AF4"),)

    def test_use_case_flows_follow_their_table(self) -> None:
        outcome = self._outcome()
        assert "Morning peak" in delta_plain_text(outcome.entities[0].flows)
        flows = delta_plain_text(outcome.get("or:airport/departure/publish_tobt").flows)
        assert "Late" in flows
        assert "Wait" in flows
        assert outcome.get("or:airport/departure/orphan").flows is None

    def test_on_reference_by_number(self) -> None:
        outcome = self._outcome()
        req = outcome.get("or:airport/departure/publish_tobt")
        assert req.implemented_ons == ("on:airport/departure/share_tobt",)
        assert outcome.get("or:airport/departure/orphan").implemented_ons == ()
        assert any(
            i.kind == "unresolved_reference" and "APT-ON-77" in i.message for i in outcome.issues
        )

    def test_number_only_heading_is_missing_field_error(self) -> None:
        errors = [i for i in self._outcome().issues if i.severity == "error"]
        assert [(i.kind, i.entity_type) for i in errors] == [("missing_field", "OR")]

    def test_helpers(self) -> None:
        assert chapter(DocumentNode("7 Annex", 1)) == 7
        assert chapter(DocumentNode("Untitled", 1)) is None
        refs, unknown = parse_stakeholders("GHA  CAA (ops)")
        assert [r.external_id for r in refs] == [
            "stakeholder:network/ground_handling_agent", "stakeholder:network/national_authority",
        ]
        assert refs[1].note == "(ops)"
        assert unknown == ()
        assert parse_regulatory_reference("Some other rule, art. 2") is None
