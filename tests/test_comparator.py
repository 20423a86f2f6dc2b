"""Tests for odp.comparator and odp.aggregator modules."""
from dataclasses import replace

from odp.aggregator import build_templating_data, group_by_drg, wave_key
from odp.comparator import compare_entities
from odp.rich_text import markup_to_delta
from odp.types import AnnotatedReference, DocumentReference, Entity, Milestone


def _req(**kwargs) -> Entity:
    base = dict(type="OR", title="Req", external_id="or:x/req", drg="FLOW")
    base.update(kwargs)
    return Entity(**base)


class TestCompareEntities:
    def test_identical(self) -> None:
        entity = _req(statement=markup_to_delta("s"), implemented_ons=("a", "b"))
        assert compare_entities(entity, entity) == compare_entities(entity, replace(entity))
        assert not compare_entities(entity, entity).has_changes

    def test_empty_delta_equals_none(self) -> None:
        assert not compare_entities(_req(rationale='{"ops":[]}'), _req()).has_changes
        assert not compare_entities(_req(rationale='{"ops":[{"insert":"\\n"}]}'), _req()).has_changes

    def test_title_trimmed(self) -> None:
        assert not compare_entities(_req(title="Req "), _req()).has_changes

    def test_reference_order_ignored(self) -> None:
        result = compare_entities(_req(implemented_ons=("a", "b")), _req(implemented_ons=("b", "a", "a")))
        assert not result.has_changes

    def test_annotated_note_change_detected(self) -> None:
        old = _req(impacts_stakeholders=(AnnotatedReference("s:1", "x"),))
        new = _req(impacts_stakeholders=(AnnotatedReference("s:1", "y"),))
        assert compare_entities(old, new).fields() == ["impacts_stakeholders"]

    def test_path_and_parent(self) -> None:
        result = compare_entities(_req(path=("A",)), _req(parent="on:x/p"))
        assert result.fields() == ["path", "parent"]

    def test_change_fields(self) -> None:
        old = Entity(type="OC", title="C", external_id="oc:x/c", drg="FLOW", visibility="NM")
        new = replace(old, visibility="NETWORK", statement=markup_to_delta("ignored for OCs"))
        result = compare_entities(old, new)
        assert result.fields() == ["visibility"]
        assert result.changes[0].old == "NM"
        assert result.changes[0].new == "NETWORK"

    def test_rich_text_change(self) -> None:
        result = compare_entities(_req(statement=markup_to_delta("a")), _req(statement=markup_to_delta("b")))
        assert result.fields() == ["statement"]

    def test_document_reference_change(self) -> None:
        old = _req(document_references=(DocumentReference("document:a"),))
        assert compare_entities(old, _req()).fields() == ["document_references"]


def _scope() -> list[Entity]:
    need = Entity(type="ON", title="Need", external_id="on:nm_b2b/need", drg="NM_B2B",
                  statement=markup_to_delta("**Bold** need"))
    req = Entity(type="OR", title="Req", external_id="or:nm_b2b/req", drg="NM_B2B",
                 implemented_ons=("on:nm_b2b/need",))
    stray = Entity(type="OR", title="Stray", external_id="or:x/stray", drg="SOMETHING")
    change = Entity(
        type="OC", title="Change", external_id="oc:nm_b2b/change", drg="NM_B2B",
        satisfies_requirements=("or:nm_b2b/req",),
        milestones=(
            Milestone("M2", "wave:2028", ("OPS_DEPLOYMENT",)),
            Milestone("M1", "wave:2027", ("API_PUBLICATION", "CUSTOM")),
        ),
    )
    return [need, req, stray, change]


class TestTemplatingData:
    def test_reverse_links(self) -> None:
        data = build_templating_data(_scope(), title="Edition")
        (group,) = data["operationalNeeds"]
        need = group["items"][0]
        assert need["implementingORs"] == [{"id": "or:nm_b2b/req", "title": "Req"}]
        assert need["satisfiedByChange"] is None
        assert need["statement"] == "**Bold** need"
        req = data["operationalRequirements"][0]["items"][0]
        assert req["satisfiedByChange"] == {"id": "oc:nm_b2b/change", "title": "Change"}

    def test_groups_ordered_unassigned_last(self) -> None:
        data = build_templating_data(_scope(), title="Edition")
        assert [g["drg"] for g in data["operationalRequirements"]] == ["NM B2B", "UNASSIGNED"]

    def test_milestones_sorted_and_waves(self) -> None:
        data = build_templating_data(_scope(), title="Edition")
        change = data["operationalChanges"][0]["items"][0]
        assert [m["title"] for m in change["milestones"]] == ["M1", "M2"]
        assert [w["id"] for w in data["waves"]] == ["wave:2027", "wave:2028"]
        groups = data["waves"][0]["eventTypeGroups"]
        assert [g["eventType"] for g in groups] == ["API_PUBLICATION", "OTHER"]
        assert groups[0]["eventTypeLabel"] == "API PUBLICATION"
        assert groups[0]["milestones"][0]["operationalChange"]["id"] == "oc:nm_b2b/change"

    def test_malformed_rich_text_left_empty(self) -> None:
        broken = Entity(type="ON", title="N", external_id="on:x/n", drg="FLOW", statement="{bad")
        data = build_templating_data([broken], title="T")
        assert data["operationalNeeds"][0]["items"][0]["statement"] == ""

    def test_wave_key(self) -> None:
        assert sorted(["wave:2028", None, "wave:2027.2", "wave:2027"], key=wave_key) == [
            "wave:2027", "wave:2027.2", "wave:2028", None,
        ]

    def test_group_by_drg_omits_empty(self) -> None:
        assert group_by_drg([]) == []
