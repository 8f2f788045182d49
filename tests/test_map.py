"""Tests for the graph engine."""

from typing import Any

import pytest

from adjmap import (
    ROOT_ID,
    AdjacencyMap,
    EvaluationError,
    ExpandedEdgeValue,
    ExpressionError,
    MapDefinitionError,
    NodeDefinition,
    process_definition,
)


def build(raw: dict[str, Any], scenario_name: str = "") -> AdjacencyMap:
    return AdjacencyMap(process_definition(raw), scenario_name)


@pytest.fixture
def project_raw() -> dict[str, Any]:
    """A small project map: tasks depend on each other and add up cost."""
    return {
        "version": 1,
        "description": "Project plan",
        "properties": {
            "cost": {
                "value": {"operator": "+", "a": {"ref": "."}, "b": {"constant": "amount"}},
                "combine": "sum",
                "constants": {"amount": 1},
            },
            "risk": {"value": {"ref": "risk"}, "combine": "max", "hide": True},
            "score": {
                "value": {"operator": "*", "a": {"result": "cost"}, "b": {"result": "risk"}},
                "calculateWhen": "always",
            },
        },
        "root": {"risk": 0.1},
        "nodes": {
            "design": {"displayName": "Design", "edges": [{"type": "cost", "amount": 5}]},
            "build": {
                "description": "Build it",
                "edges": {"design": {"cost": {"amount": 2}, "risk": {}}},
            },
            "ship": {"edges": [{"type": "cost", "ref": "build"}, {"type": "cost", "ref": "design"}]},
            "audit": {"values": {"cost": 100}},
        },
    }


@pytest.fixture
def project(project_raw: dict[str, Any]) -> AdjacencyMap:
    return build(project_raw)


class TestPropertyOrder:
    def test_dependencies_come_first(self, project: AdjacencyMap) -> None:
        order = project.property_names
        assert order.index("cost") < order.index("score")
        assert order.index("risk") < order.index("score")

    def test_dependency_cycle(self) -> None:
        raw = {
            "version": 1,
            "properties": {"a": {"value": {"result": "b"}}, "b": {"value": {"result": "a"}}},
            "nodes": {},
        }
        with pytest.raises(MapDefinitionError, match="Property dependencies form a cycle"):
            build(raw)

    def test_self_dependency(self) -> None:
        raw = {"version": 1, "properties": {"a": {"value": {"result": "."}}}, "nodes": {}}
        with pytest.raises(MapDefinitionError, match="cycle"):
            build(raw)


class TestValues:
    def test_computed_from_edges(self, project: AdjacencyMap) -> None:
        # design: root cost (0) + 5; build: design cost (5) + 2
        assert project.node("design").values["cost"] == 5.0
        assert project.node("build").values["cost"] == 7.0
        # ship: (build + 1) + (design + 1)
        assert project.node("ship").values["cost"] == 14.0

    def test_combiner_applied(self, project: AdjacencyMap) -> None:
        assert project.node("build").values["risk"] == pytest.approx(0.1)

    def test_result_reads_earlier_properties(self, project: AdjacencyMap) -> None:
        assert project.node("build").values["score"] == pytest.approx(0.7)

    def test_explicit_value_wins(self, project: AdjacencyMap) -> None:
        assert project.node("audit").values["cost"] == 100.0

    def test_no_edges_inherits_root(self, project: AdjacencyMap) -> None:
        assert project.node("design").values["risk"] == project.root_values["risk"] == 0.1
        assert project.node("audit").values["risk"] == 0.1

    def test_calculate_always_without_edges(self, project: AdjacencyMap) -> None:
        assert project.node("audit").values["score"] == pytest.approx(10.0)

    def test_root_values(self, project: AdjacencyMap) -> None:
        assert dict(project.root_values) == {"cost": 0.0, "risk": 0.1, "score": 0.0}
        assert project.root.values is project.root_values

    def test_values_are_read_only(self, project: AdjacencyMap) -> None:
        with pytest.raises(TypeError):
            project.node("design").values["cost"] = 1  # type: ignore[index]

    def test_deep_chain(self) -> None:
        nodes: dict[str, Any] = {"n0": {"edges": [{"type": "depth"}]}}
        for i in range(1, 1500):
            nodes[f"n{i}"] = {"edges": [{"type": "depth", "ref": f"n{i - 1}"}]}
        raw = {
            "version": 1,
            "properties": {"depth": {"value": {"operator": "+", "a": {"ref": "depth"}, "b": 1}}},
            "nodes": nodes,
        }
        assert build(raw).node("n1499").values["depth"] == 1500.0

    def test_evaluation_error_surfaces_from_accessor(self) -> None:
        raw = {
            "version": 1,
            "properties": {"x": {"value": {"ref": "."}, "calculateWhen": "always"}},
            "nodes": {"a": {}},
        }
        adjacency_map = build(raw)
        with pytest.raises(EvaluationError, match="empty array"):
            _ = adjacency_map.node("a").values


class TestImpliedEdges:
    @pytest.fixture
    def implied_raw(self) -> dict[str, Any]:
        return {
            "version": 1,
            "properties": {
                "a": {"value": 1, "implies": ["b"]},
                "b": {"value": {"constant": "weight"}, "constants": {"weight": 3}},
                "c": {"value": 1, "implies": "*"},
            },
            "nodes": {"r": {}, "n": {"edges": [{"type": "a", "ref": "r"}]}},
        }

    def test_implied_edge_added(self, implied_raw: dict[str, Any]) -> None:
        edges = build(implied_raw).node("n").edges
        assert edges == (
            ExpandedEdgeValue(source="n", ref="r", type="a"),
            ExpandedEdgeValue(source="n", ref="r", type="b", constants={"weight": 3.0}, implied=True),
        )

    def test_implied_edge_computes_with_declared_constants(self, implied_raw: dict[str, Any]) -> None:
        assert build(implied_raw).node("n").values["b"] == 3.0

    def test_authored_type_not_duplicated(self, implied_raw: dict[str, Any]) -> None:
        implied_raw["nodes"]["n"]["edges"].append({"type": "b", "ref": "r", "weight": 7})
        edges = build(implied_raw).node("n").edges
        assert [(edge.type, edge.implied) for edge in edges] == [("a", False), ("b", False)]

    def test_implied_edges_do_not_imply_further(self, implied_raw: dict[str, Any]) -> None:
        implied_raw["properties"]["b"]["implies"] = ["c"]
        edges = build(implied_raw).node("n").edges
        assert [edge.type for edge in edges] == ["a", "b"]

    def test_implied_per_target(self, implied_raw: dict[str, Any]) -> None:
        implied_raw["nodes"]["n"]["edges"] = [{"type": "c", "ref": "r"}, {"type": "a"}]
        edges = build(implied_raw).node("n").edges
        assert [(edge.ref, edge.type, edge.implied) for edge in edges] == [
            ("r", "c", False),
            (ROOT_ID, "a", False),
            ("r", "a", True),
            ("r", "b", True),
            (ROOT_ID, "b", True),
        ]

    def test_implied_flag_readable_as_constant(self, implied_raw: dict[str, Any]) -> None:
        implied_raw["properties"]["b"]["value"] = {"constant": "implied"}
        assert build(implied_raw).node("n").values["b"] == 1.0


class TestValidation:
    def base(self, **overrides: Any) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "version": 1,
            "properties": {"cost": {"value": {"ref": "cost"}}, "risk": {"value": 1}},
            "tags": {"critical": {}},
            "nodes": {"a": {}, "b": {"edges": [{"type": "cost", "ref": "a"}]}},
        }
        raw.update(overrides)
        return raw

    def test_valid(self) -> None:
        build(self.base())

    def test_result_not_in_dependencies(self) -> None:
        raw = self.base()
        raw["properties"]["risk"] = {"value": {"result": "cost"}, "dependencies": []}
        with pytest.raises(ExpressionError, match="not declared in the dependencies of property 'risk'"):
            build(raw)

    def test_edge_cycle(self) -> None:
        raw = self.base()
        raw["nodes"]["a"]["edges"] = [{"type": "cost", "ref": "b"}]
        with pytest.raises(MapDefinitionError, match="Edges between nodes form a cycle"):
            build(raw)

    def test_self_edge(self) -> None:
        raw = self.base()
        raw["nodes"]["a"]["edges"] = [{"type": "cost", "ref": "a"}]
        with pytest.raises(MapDefinitionError, match="cycle"):
            build(raw)

    def test_unknown_ref(self) -> None:
        raw = self.base()
        raw["nodes"]["b"]["edges"] = [{"type": "cost", "ref": "zzz"}]
        with pytest.raises(MapDefinitionError, match="ref 'zzz' is not a defined node"):
            build(raw)

    def test_unknown_edge_type(self) -> None:
        raw = self.base()
        raw["nodes"]["b"]["edges"] = [{"type": "quality"}]
        with pytest.raises(MapDefinitionError, match="edge type 'quality' is not a defined property"):
            build(raw)

    def test_unknown_node_value(self) -> None:
        raw = self.base()
        raw["nodes"]["a"]["values"] = {"quality": 1}
        with pytest.raises(MapDefinitionError, match="'quality' is not a defined property"):
            build(raw)

    def test_unknown_root_value(self) -> None:
        with pytest.raises(MapDefinitionError, match="root: 'quality'"):
            build(self.base(root={"quality": 1}))

    def test_unknown_tag_on_node(self) -> None:
        raw = self.base()
        raw["nodes"]["a"]["tags"] = ["urgent"]
        with pytest.raises(MapDefinitionError, match="'urgent' is not a defined tag"):
            build(raw)

    def test_empty_node_id(self) -> None:
        raw = self.base()
        raw["nodes"][""] = {}
        with pytest.raises(MapDefinitionError, match="reserved for the root"):
            build(raw)

    def test_undeclared_edge_constant(self) -> None:
        raw = self.base()
        raw["properties"]["cost"] = {"value": {"constant": "weight"}}
        with pytest.raises(ExpressionError, match="constant 'weight' is not declared"):
            build(raw)

    def test_map_edge_display_checked_per_property(self) -> None:
        raw = self.base(display={"edge": {"width": {"constant": "weight"}}})
        raw["properties"]["cost"]["constants"] = {"weight": 2}
        with pytest.raises(ExpressionError, match="constant 'weight' is not declared in the constants of edge display of 'risk'"):
            build(raw)

    def test_property_display_replaces_map_edge_display(self) -> None:
        raw = self.base(display={"edge": {"width": {"constant": "weight"}}})
        raw["properties"]["cost"]["constants"] = {"weight": 2}
        raw["properties"]["risk"]["display"] = {"width": 1}
        build(raw)

    def test_input_not_allowed_in_property_value(self) -> None:
        raw = self.base()
        raw["properties"]["cost"] = {"value": "input"}
        with pytest.raises(ExpressionError, match="input access is not available"):
            build(raw)

    def test_edge_access_not_allowed_in_node_display(self) -> None:
        raw = self.base()
        raw["nodes"]["a"]["display"] = {"radius": {"ref": "cost"}}
        with pytest.raises(ExpressionError, match="parent-value access is not available in node display"):
            build(raw)

    def test_tags_not_allowed_in_edge_combiner(self) -> None:
        raw = self.base(display={"edgeCombiner": {"width": {"has": "critical"}}})
        with pytest.raises(ExpressionError, match="tag-has access is not available in edge combiner display"):
            build(raw)

    def test_scenario_unknown_property(self) -> None:
        raw = self.base(scenarios={"s": {"nodes": {"a": {"quality": 1}}}})
        with pytest.raises(MapDefinitionError, match="'quality' is not a defined property"):
            build(raw)

    def test_scenario_unknown_node(self) -> None:
        raw = self.base(scenarios={"s": {"nodes": {"zzz": {"cost": 1}}}})
        with pytest.raises(MapDefinitionError, match="'zzz' is not a defined node"):
            build(raw)

    def test_default_scenario_cannot_be_declared(self) -> None:
        raw = self.base(scenarios={"": {}})
        with pytest.raises(MapDefinitionError, match="default scenario"):
            build(raw)


class TestQueries:
    def test_node_metadata(self, project: AdjacencyMap) -> None:
        assert project.node("design").display_name == "Design"
        assert project.node("build").display_name == "build"
        assert project.node("build").description == "Build it"
        assert project.root.display_name == "(root)"
        assert project.root.is_root

    def test_unknown_node(self, project: AdjacencyMap) -> None:
        with pytest.raises(KeyError, match="zzz"):
            project.node("zzz")

    def test_node_ids_and_nodes(self, project: AdjacencyMap) -> None:
        assert project.node_ids == ["design", "build", "ship", "audit"]
        assert [node.id for node in project.nodes] == project.node_ids

    def test_parents_and_children(self, project: AdjacencyMap) -> None:
        assert project.node("ship").parents == ["build", "design"]
        assert project.node("design").parents == []
        assert project.node("design").children == ["build", "ship"]
        assert project.root.children == ["design"]
        assert project.node("audit").parents == []

    def test_all_edges(self, project: AdjacencyMap) -> None:
        assert [(edge.source, edge.ref) for edge in project.edges] == [
            ("design", ROOT_ID),
            ("build", "design"),
            ("build", "design"),
            ("ship", "build"),
            ("ship", "design"),
        ]

    def test_summary_values(self, project: AdjacencyMap) -> None:
        summary = project.summary_values()
        assert summary["cost"] == 5 + 7 + 14 + 100
        assert summary["risk"] == pytest.approx(0.1)

    def test_format_values_hides_hidden(self, project: AdjacencyMap) -> None:
        text = project.node("design").format_values()
        assert text.splitlines() == ["Design", "  cost: 5", "  score: 0.5"]

    def test_format_values_with_hidden(self, project: AdjacencyMap) -> None:
        text = project.node("design").format_values(include_hidden=True)
        assert "  risk: 0.1" in text.splitlines()

    def test_format_summary(self, project: AdjacencyMap) -> None:
        assert project.format_summary().splitlines()[:2] == ["Summary", "  cost: 126"]

    def test_shared_definition(self, project_raw: dict[str, Any]) -> None:
        definition = process_definition(project_raw)
        first, second = AdjacencyMap(definition), AdjacencyMap(definition)
        assert first.node("ship").values == second.node("ship").values


class TestTags:
    @pytest.fixture
    def tagged(self) -> AdjacencyMap:
        return build(
            {
                "version": 1,
                "tags": {
                    "critical": {"constants": {"weight": 3}},
                    "external": {"constants": {"weight": 2}},
                },
                "properties": {
                    "depends": {"value": {"has": "critical", "which": "extended"}, "extendTags": True},
                    "weight": {
                        "value": {"tagConstant": "weight", "default": 1},
                        "combine": "max",
                        "calculateWhen": "always",
                    },
                },
                "nodes": {
                    "vendor": {"tags": ["external"]},
                    "core": {"tags": ["critical"], "edges": [{"type": "depends", "ref": "vendor"}]},
                    "app": {"edges": [{"type": "depends", "ref": "core"}]},
                },
            },
        )

    def test_own_tags(self, tagged: AdjacencyMap) -> None:
        assert tagged.node("core").tags.own == frozenset({"critical"})

    def test_tags_extended_along_edges(self, tagged: AdjacencyMap) -> None:
        assert tagged.node("app").tags.all == frozenset({"critical", "external"})
        assert tagged.node("app").tags.extended == frozenset({"critical", "external"})

    def test_extension_is_per_property(self, tagged: AdjacencyMap) -> None:
        # "weight" does not extend tags, so only own tags count
        assert tagged.node("core").values["weight"] == 3.0
        assert tagged.node("vendor").values["weight"] == 2.0
        assert tagged.node("app").values["weight"] == 1.0

    def test_has_on_extended_tags(self, tagged: AdjacencyMap) -> None:
        assert tagged.node("core").values["depends"] == 0.0
        assert tagged.node("app").values["depends"] == 1.0


class TestCaches:
    def test_values_are_memoized(self, project: AdjacencyMap) -> None:
        assert project.node("ship").values == project.node("ship").values
        assert project.node("ship") is project.node("ship")

    def test_invalidate_caches_recomputes_same_values(self, project: AdjacencyMap) -> None:
        before = {node.id: dict(node.values) for node in project.nodes}
        project.invalidate_caches()
        assert {node.id: dict(node.values) for node in project.nodes} == before

    def test_root_node_definition(self, project: AdjacencyMap) -> None:
        assert isinstance(project.root.definition, NodeDefinition)
        assert project.root.edges == ()
        assert project.root.render_edges == ()
