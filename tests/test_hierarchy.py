"""Tests for odp.hierarchy module."""
from odp.dialects.base import ReferencePolicy
from odp.hierarchy import HierarchyResolver, flatten
from odp.types import DocumentReference, Entity, Err, Ok, ReferenceDocument


def _on(title: str, external_id: str, **kwargs) -> Entity:
    return Entity(type="ON", title=title, external_id=external_id, drg="NM_B2B", **kwargs)


def _or(title: str, external_id: str, **kwargs) -> Entity:
    return Entity(type="OR", title=title, external_id=external_id, drg="NM_B2B", **kwargs)


def _normalize(token: str, path=(), target="ON", policy=ReferencePolicy()) -> str:
    return HierarchyResolver.normalize_reference(
        token, current_path=path, drg="NM_B2B", target_type=target, policy=policy,
    )


class TestBuildTree:
    def test_folders_and_natural_order(self) -> None:
        resolver = HierarchyResolver([
            _on("Ten", "ON-10", code="ON-10", path=("beta",)),
            _on("Two", "ON-2", code="ON-2", path=("beta",)),
            _on("Nested", "ON-3", code="ON-3", path=("Alpha", "Inner")),
            _or("Root req", "OR-1", code="OR-1"),
        ])
        tree = resolver.build_tree()
        assert [f.name for f in tree.folders] == ["Alpha", "beta"]
        assert [e.code for e in tree.folders[1].needs] == ["ON-2", "ON-10"]
        assert tree.folders[0].children[0].name == "Inner"
        assert [e.code for e in tree.root_requirements] == ["OR-1"]

    def test_children_and_orphans(self) -> None:
        resolver = HierarchyResolver([
            _on("Parent", "ON-1", code="ON-1", path=("A",)),
            _on("Child B", "ON-1.10", code="ON-1.10", parent="ON-1"),
            _on("Child A", "ON-1.2", code="ON-1.2", parent="ON-1"),
            _or("Lost", "OR-9", parent="missing"),
        ])
        tree = resolver.build_tree()
        assert [e.code for e in tree.children_of("ON-1")] == ["ON-1.2", "ON-1.10"]
        assert [e.external_id for e in tree.orphans] == ["OR-9"]
        assert [e.external_id for e in tree.root_requirements] == ["OR-9"]

    def test_children_list_needs_before_requirements(self) -> None:
        tree = HierarchyResolver([
            _on("Parent", "ON-1", code="ON-1"),
            _or("Req", "OR-1", code="OR-1", parent="ON-1"),
            _on("Later need", "ON-5", code="ON-5", parent="ON-1"),
            _on("Early need", "ON-2", code="ON-2", parent="ON-1"),
        ]).build_tree()
        assert [e.code for e in tree.children_of("ON-1")] == ["ON-2", "ON-5", "OR-1"]

    def test_refinement_cycle_members_become_roots(self) -> None:
        tree = HierarchyResolver([
            _on("A", "ON-1", code="ON-1", parent="ON-2"),
            _on("B", "ON-2", code="ON-2", parent="ON-1"),
            _or("Below A", "OR-1", code="OR-1", parent="ON-1"),
        ]).build_tree()
        assert [e.external_id for e in tree.cycles] == ["ON-1", "ON-2"]
        assert [e.external_id for e in tree.root_needs] == ["ON-1", "ON-2"]
        assert tree.children == {"ON-1": [tree.children_of("ON-1")[0]]}
        assert tree.children_of("ON-1")[0].external_id == "OR-1"
        assert tree.orphans == []

    def test_changes_collected(self) -> None:
        change = Entity(type="OC", title="C", external_id="OC-1", drg="RRT", code="OC-1")
        assert HierarchyResolver([change]).build_tree().changes == [change]

    def test_flatten_depth_first(self) -> None:
        tree = HierarchyResolver([
            _or("R", "OR-1", code="OR-1", path=("A",)),
            _on("N", "ON-1", code="ON-1", path=("A",)),
            _on("Deep", "ON-2", code="ON-2", path=("A", "B")),
        ]).build_tree()
        assert [(p, e.external_id) for p, e in flatten(tree)] == [
            (("A",), "ON-1"),
            (("A",), "OR-1"),
            (("A", "B"), "ON-2"),
        ]


class TestEffectivePath:
    def test_inherited_through_parents(self) -> None:
        resolver = HierarchyResolver([
            _on("P", "p", path=("A", "B")),
            _on("C", "c", parent="p"),
            _on("G", "g", parent="c"),
        ])
        assert resolver.effective_path("g") == Ok(("A", "B"))

    def test_root_entity_has_empty_path(self) -> None:
        assert HierarchyResolver([_on("P", "p")]).effective_path("p") == Ok(())

    def test_cycle_is_error(self) -> None:
        resolver = HierarchyResolver([_on("A", "a", parent="b"), _on("B", "b", parent="a")])
        result = resolver.effective_path("a")
        assert isinstance(result, Err)
        assert "no path" in result.error

    def test_missing_ancestor(self) -> None:
        result = HierarchyResolver([_on("A", "a", parent="gone")]).effective_path("a")
        assert isinstance(result, Err)
        assert "not in scope" in result.error


class TestNormalizeReference:
    def test_relative(self) -> None:
        assert _normalize("./Child", path=("A", "B")) == "on:nm_b2b/a/b/child"

    def test_relative_without_path(self) -> None:
        assert _normalize("./Child") == "on:nm_b2b/child"

    def test_absolute_uses_root(self) -> None:
        policy = ReferencePolicy(root=("iDLADP",))
        assert _normalize("/Sub/Title", policy=policy) == "on:nm_b2b/idladp/sub/title"

    def test_coded_and_plain(self) -> None:
        assert _normalize("[ON-12] Title") == "ON-12"
        assert _normalize("ON-12 [Title]") == "ON-12"

    def test_plain_as_path_drops_ignored_segments(self) -> None:
        policy = ReferencePolicy(plain_as_path=True, ignore_segments=frozenset({"ons"}))
        assert _normalize("Flight/ONs/Filing", policy=policy) == "on:nm_b2b/flight/filing"

    def test_idempotent_on_ids(self) -> None:
        assert _normalize("on:nm_b2b/a/b [note]") == "on:nm_b2b/a/b"

    def test_normalize_entities_uses_effective_path(self) -> None:
        resolver = HierarchyResolver([
            _on("Parent", "p", path=("A",)),
            _or("Req", "r", parent="p", implemented_ons=("./Sibling", "./Sibling")),
        ])
        normalized = {e.external_id: e for e in resolver.normalize_entities(ReferencePolicy())}
        assert normalized["r"].implemented_ons == ("on:nm_b2b/a/sibling",)
        assert normalized["p"] is resolver.get("p")


class TestValidate:
    def test_dangling_reference_one_warning_entity_kept(self) -> None:
        resolver = HierarchyResolver([
            _on("Need", "on:a"),
            _or("Req", "or:a", implemented_ons=("on:a", "on:missing")),
        ])
        report = resolver.validate()
        assert report.tallies["implemented_ons"].total == 2
        assert report.tallies["implemented_ons"].resolved == 1
        assert [i.kind for i in report.issues] == ["unresolved_reference"]
        assert "or:a" in resolver

    def test_documents_checked_against_known(self) -> None:
        doc = ReferenceDocument("ConOPS", "document:conops")
        resolver = HierarchyResolver([
            _on("N", "on:n", document_references=(
                DocumentReference("document:conops"), DocumentReference("document:other"),
            )),
        ])
        report = resolver.validate(documents=[doc])
        assert report.tallies["document_references"].resolved == 1
        assert report.unresolved == 1

    def test_cycle_reported(self) -> None:
        resolver = HierarchyResolver([_on("A", "a", parent="b"), _on("B", "b", parent="a")])
        kinds = [i.kind for i in resolver.validate().issues]
        assert kinds.count("refinement_cycle") == 2
