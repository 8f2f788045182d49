"""Tests for reading map files and exporting values."""

import json
import tomllib
from pathlib import Path
from typing import Any

import pytest

from adjmap import (
    AdjacencyMap,
    MapDefinitionError,
    export_values_to_toml,
    load_map,
    load_raw_definition,
    process_definition,
)
from adjmap._io import values_to_dict

MAP_TOML = """\
version = 1
description = "Two step plan"

[properties.cost]
value = { operator = "+", a = { ref = "." }, b = { constant = "amount" } }
combine = "sum"
constants = { amount = 1 }

[properties.internal]
value = 1
hide = true

[nodes.a]
edges = [{ type = "cost", amount = 4 }]

[nodes.b]
edges = { a = { cost = { amount = 2 } } }

[scenarios.cheap]
nodes = { a = { cost = 1 } }
"""


@pytest.fixture
def map_data() -> dict[str, Any]:
    return tomllib.loads(MAP_TOML)


class TestLoad:
    def test_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "plan.toml"
        path.write_text(MAP_TOML)

        definition = load_map(path)

        assert definition.description == "Two step plan"
        assert AdjacencyMap(definition).node("b").values["cost"] == 6.0

    def test_json(self, tmp_path: Path, map_data: dict[str, Any]) -> None:
        path = tmp_path / "plan.json"
        path.write_text(json.dumps(map_data))

        assert load_raw_definition(path) == map_data
        assert AdjacencyMap(load_map(path)).node("a").values["cost"] == 4.0

    def test_unsupported_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "plan.yaml"
        path.write_text("version: 1\n")

        with pytest.raises(MapDefinitionError, match="Unsupported map file type '.yaml'"):
            load_raw_definition(path)

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "plan.json"
        path.write_text("{not json")

        with pytest.raises(MapDefinitionError, match="Invalid JSON"):
            load_raw_definition(path)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "plan.toml"
        path.write_text("version = \n")

        with pytest.raises(MapDefinitionError, match="Invalid TOML"):
            load_raw_definition(path)

    def test_top_level_must_be_object(self, tmp_path: Path) -> None:
        path = tmp_path / "plan.json"
        path.write_text("[1, 2]")

        with pytest.raises(MapDefinitionError, match="must be an object"):
            load_raw_definition(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(MapDefinitionError, match="Could not read map file"):
            load_raw_definition(tmp_path / "absent.json")

    def test_not_utf8(self, tmp_path: Path) -> None:
        path = tmp_path / "plan.json"
        path.write_bytes(b'{"version": \xff}')

        with pytest.raises(MapDefinitionError, match="Could not read map file"):
            load_raw_definition(path)


class TestExport:
    @pytest.fixture
    def adjacency_map(self, tmp_path: Path) -> AdjacencyMap:
        path = tmp_path / "plan.toml"
        path.write_text(MAP_TOML)
        return AdjacencyMap(load_map(path))

    def test_values_to_dict(self, adjacency_map: AdjacencyMap) -> None:
        assert values_to_dict(adjacency_map) == {
            "root": {"cost": 0.0},
            "nodes": {"a": {"cost": 4.0}, "b": {"cost": 6.0}},
        }

    def test_values_to_dict_with_hidden(self, adjacency_map: AdjacencyMap) -> None:
        assert values_to_dict(adjacency_map, include_hidden=True)["nodes"]["a"] == {"cost": 4.0, "internal": 0.0}

    def test_export_default_scenario(self, adjacency_map: AdjacencyMap, tmp_path: Path) -> None:
        output = tmp_path / "values.toml"

        export_values_to_toml(adjacency_map, output)

        with output.open("rb") as f:
            data = tomllib.load(f)
        assert "scenario" not in data
        assert data["root"] == {"cost": 0.0}
        assert data["nodes"]["b"] == {"cost": 6.0}

    def test_export_scenario(self, adjacency_map: AdjacencyMap, tmp_path: Path) -> None:
        output = tmp_path / "values.toml"
        adjacency_map.scenario_name = "cheap"

        export_values_to_toml(adjacency_map, output)

        with output.open("rb") as f:
            data = tomllib.load(f)
        assert data["scenario"] == "cheap"
        assert data["nodes"]["b"] == {"cost": 3.0}


class TestExampleMap:
    @pytest.fixture
    def adjacency_map(self) -> AdjacencyMap:
        return AdjacencyMap(load_map(Path(__file__).parent.parent / "examples" / "project_plan.toml"))

    def test_values(self, adjacency_map: AdjacencyMap) -> None:
        release = adjacency_map.node("release").values
        assert release["effort"] == 35.0
        assert release["risk"] == pytest.approx(0.4)
        assert release["cost"] == pytest.approx(49.0)

    def test_risk_follows_tags(self, adjacency_map: AdjacencyMap) -> None:
        assert adjacency_map.node("design").values["risk"] == pytest.approx(0.25)
        assert adjacency_map.node("frontend").values["risk"] == pytest.approx(0.25)
        assert adjacency_map.node("backend").values["risk"] == pytest.approx(0.4)

    def test_scenarios(self, adjacency_map: AdjacencyMap) -> None:
        adjacency_map.scenario_name = "outsourced"
        assert adjacency_map.node("release").values["effort"] == 21.0
        adjacency_map.scenario_name = "slipping"
        assert adjacency_map.node("release").values["effort"] == 23.5

    def test_node_render(self, adjacency_map: AdjacencyMap) -> None:
        assert adjacency_map.node("vendor_api").render().fill.hex == "#ffa500"
        assert adjacency_map.node("design").render().radius == 4.0
        assert adjacency_map.node("release").render().radius == 12.0


class TestExportNodeIds:
    def test_node_named_like_root_label(self, tmp_path: Path) -> None:
        raw = {
            "version": 1,
            "properties": {"cost": {"value": 1}},
            "root": {"cost": 2},
            "nodes": {"(root)": {"values": {"cost": 9}}},
        }
        adjacency_map = AdjacencyMap(process_definition(raw))
        output = tmp_path / "values.toml"

        export_values_to_toml(adjacency_map, output)

        with output.open("rb") as f:
            data = tomllib.load(f)
        assert data["root"] == {"cost": 2.0}
        assert data["nodes"]["(root)"] == {"cost": 9.0}
